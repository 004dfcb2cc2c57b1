from __future__ import annotations

import httpx

from storefront.core.config import settings
from storefront.core.logging import get_logger, reconciliation_alert
from storefront.services.payment_providers import (
    ChargeResult,
    PaymentProviderConfigurationError,
    PaymentProviderError,
)

logger = get_logger(__name__)


def _get_secret_key() -> str:
    key = settings.STRIPE_SECRET_KEY
    if not key:
        raise PaymentProviderConfigurationError(
            "Stripe API key not configured. Please set STRIPE_SECRET_KEY environment variable."
        )
    return key


def _json_body(response: httpx.Response) -> dict | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _error_message(response: httpx.Response) -> str:
    error = (_json_body(response) or {}).get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.text


class StripeGateway:
    """Charges a tokenized source through the Stripe charges API."""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def charge(self, amount_minor_units: int, currency: str, instrument_ref: str) -> ChargeResult:
        headers = {"Authorization": f"Bearer {_get_secret_key()}"}
        form = {
            "amount": str(amount_minor_units),
            "currency": currency.lower(),
            "source": instrument_ref,
            "description": settings.PAYMENT_DESCRIPTION,
        }

        try:
            async with httpx.AsyncClient(
                base_url=settings.STRIPE_API_BASE_URL,
                transport=self._transport,
                timeout=settings.PAYMENT_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post("/v1/charges", data=form, headers=headers)
        except httpx.HTTPError as exc:
            raise PaymentProviderError(f"Stripe connection error: {exc}") from exc

        if response.status_code == 402:
            return ChargeResult.declined(_error_message(response))
        if response.status_code == 401:
            raise PaymentProviderConfigurationError(f"Stripe rejected credentials: {_error_message(response)}")
        if response.is_error:
            raise PaymentProviderError(f"Stripe error: {_error_message(response)}")

        body = _json_body(response)
        if body is None:
            # Stripe accepted the request, so the card may have been charged.
            reconciliation_alert(
                "Unreadable Stripe charge response; charge outcome unknown",
                status_code=response.status_code,
                amount_minor_units=amount_minor_units,
            )
            raise PaymentProviderError("Stripe returned an unreadable charge response")
        if body.get("status") == "failed" or body.get("paid") is False:
            return ChargeResult.declined(body.get("failure_message") or "charge failed")

        logger.info("Stripe charge succeeded", extra={"charge_id": body.get("id"), "amount": amount_minor_units})
        return ChargeResult.approved(body.get("id"))
