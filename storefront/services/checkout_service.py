"""Checkout: turn a cart into an order and settle its payment.

Once the PENDING order has been committed, every exit path either returns
that order or raises only after FAILED has been committed, so a checkout is
never silently lost and never left PENDING by an exception. The one
exception is a store that cannot be written at all; that case is raised as
``OrderPersistenceError`` and logged for reconciliation.
"""

from __future__ import annotations

import asyncio
import time
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.logging import get_logger, reconciliation_alert
from storefront.core.metrics import record_checkout_outcome, record_gateway_call
from storefront.db.operations import commit_async
from storefront.domain.enums import OrderStatus
from storefront.schemas.order import OrderRead, PaymentInfo
from storefront.services import cart_service, order_service
from storefront.services.exceptions import (
    ConfigurationError,
    InvalidStateError,
    OrderPersistenceError,
    PaymentFailedError,
)
from storefront.services.payment_providers import (
    ChargeResult,
    PaymentGateway,
    PaymentProviderConfigurationError,
    PaymentProviderError,
    get_payment_gateway,
)
from storefront.services.pricing import to_minor_units

logger = get_logger(__name__)


async def checkout(
    db: AsyncSession,
    *,
    cart_id: uuid.UUID,
    user_id: uuid.UUID,
    payment_info: PaymentInfo | None = None,
    gateway: PaymentGateway | None = None,
) -> OrderRead:
    try:
        cart = await cart_service.load_cart(db, cart_id, user_id=user_id)
        items = [item for item in cart.items if item.quantity > 0]
        if not items:
            record_checkout_outcome("empty_cart")
            raise InvalidStateError("cart empty")

        order = await order_service.create_order(
            db,
            user_id=user_id,
            currency=cart.currency,
            lines=items,
            cart_id=cart.id,
        )
        await commit_async(db)
    except SQLAlchemyError as exc:
        logger.exception("Could not create order from cart", extra={"cart_id": str(cart_id)})
        raise OrderPersistenceError("could not create order") from exc

    snapshot = order_service.to_snapshot(order)
    logger.info(
        "Order created from cart",
        extra={
            "order_id": str(snapshot.id),
            "cart_id": str(cart_id),
            "total_amount": str(snapshot.total_amount),
        },
    )

    if payment_info is None:
        record_checkout_outcome("pending")
        return snapshot

    return await _charge_and_settle(
        db,
        snapshot,
        instrument_ref=payment_info.instrument_ref,
        gateway=gateway or get_payment_gateway(),
    )


async def _charge_and_settle(
    db: AsyncSession,
    order: OrderRead,
    *,
    instrument_ref: str,
    gateway: PaymentGateway,
) -> OrderRead:
    amount = to_minor_units(order.total_amount)
    failure: PaymentFailedError | None = None
    result: ChargeResult | None = None

    started = time.perf_counter()
    try:
        result = await asyncio.wait_for(
            gateway.charge(amount, order.currency, instrument_ref),
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )
    except asyncio.CancelledError:
        record_gateway_call("cancelled", time.perf_counter() - started)
        reconciliation_alert(
            "Checkout cancelled during payment; charge outcome unknown",
            order_id=str(order.id),
            amount_minor_units=amount,
        )
        failure = PaymentFailedError("checkout cancelled during payment", order_id=order.id)
        await asyncio.shield(_record_failure(db, order, failure))
        raise
    except asyncio.TimeoutError:
        # The charge may still have gone through on the provider's side.
        reconciliation_alert(
            "Payment gateway timed out; charge outcome unknown",
            order_id=str(order.id),
            amount_minor_units=amount,
            timeout_seconds=settings.PAYMENT_TIMEOUT_SECONDS,
        )
        failure = PaymentFailedError("payment gateway timed out", order_id=order.id)
    except PaymentProviderConfigurationError as exc:
        failure = ConfigurationError(str(exc), order_id=order.id)
    except PaymentProviderError as exc:
        failure = PaymentFailedError(str(exc), order_id=order.id)
    except Exception as exc:
        logger.exception("Unexpected payment gateway error", extra={"order_id": str(order.id)})
        failure = PaymentFailedError(f"payment gateway error: {exc}", order_id=order.id)

    if failure is None and result is not None and not result.success:
        failure = PaymentFailedError(result.failure_reason or "payment declined", order_id=order.id)
    record_gateway_call("failed" if failure else "succeeded", time.perf_counter() - started)

    if failure is not None:
        await _record_failure(db, order, failure)
        raise failure

    try:
        completed = await order_service.update_status(
            db,
            order.id,
            OrderStatus.complete,
            payment_reference=result.reference,
        )
        await commit_async(db)
    except (asyncio.CancelledError, Exception) as exc:
        reconciliation_alert(
            "Charge succeeded but order could not be marked COMPLETE",
            order_id=str(order.id),
            payment_reference=result.reference,
        )
        if isinstance(exc, SQLAlchemyError):
            raise OrderPersistenceError(
                "charge succeeded but the order could not be marked COMPLETE",
                order_id=order.id,
            ) from exc
        raise

    record_checkout_outcome("complete")
    logger.info(
        "Checkout completed",
        extra={"order_id": str(order.id), "payment_reference": result.reference},
    )
    return completed


async def _record_failure(db: AsyncSession, order: OrderRead, failure: PaymentFailedError) -> None:
    try:
        await order_service.update_status(
            db,
            order.id,
            OrderStatus.failed,
            failure_reason=failure.detail[:500],
        )
        await commit_async(db)
    except SQLAlchemyError as exc:
        reconciliation_alert(
            "Payment failed but order could not be marked FAILED",
            order_id=str(order.id),
            reason=failure.detail,
        )
        raise OrderPersistenceError(
            "payment failed and the order could not be marked FAILED",
            order_id=order.id,
            payment_error=failure,
        ) from exc

    record_checkout_outcome("failed")
    logger.warning(
        "Checkout payment failed",
        extra={
            "order_id": str(order.id),
            "reason": failure.detail,
            "retryable": failure.retryable,
        },
    )
