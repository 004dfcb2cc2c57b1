"""Payment provider integrations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class PaymentProviderError(Exception):
    """Base error for payment providers."""


class PaymentProviderConfigurationError(PaymentProviderError):
    """Raised when provider configuration is invalid or missing."""


@dataclass(frozen=True, slots=True)
class ChargeResult:
    success: bool
    reference: str | None = None
    failure_reason: str | None = None

    @classmethod
    def approved(cls, reference: str | None) -> "ChargeResult":
        return cls(success=True, reference=reference)

    @classmethod
    def declined(cls, reason: str) -> "ChargeResult":
        return cls(success=False, failure_reason=reason)


class PaymentGateway(Protocol):
    async def charge(self, amount_minor_units: int, currency: str, instrument_ref: str) -> ChargeResult:
        ...


def get_payment_gateway() -> PaymentGateway:
    """Gateway used when the caller does not inject one."""
    from storefront.services.payment_providers.stripe import StripeGateway

    return StripeGateway()
