import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.db.session_async import AsyncSessionLocal
from storefront.domain.enums import OrderStatus
from storefront.models.order import Order
from storefront.schemas.order import PaymentInfo
from storefront.services import checkout_service, order_service
from storefront.services.exceptions import (
    ConfigurationError,
    InvalidStateError,
    InvalidTransitionError,
    OrderPersistenceError,
    PaymentFailedError,
    ResourceNotFoundError,
)
from storefront.services.payment_providers import (
    ChargeResult,
    PaymentProviderConfigurationError,
    PaymentProviderError,
)

CARD = PaymentInfo(instrument_ref="tok_visa")


async def _order_count() -> int:
    async with AsyncSessionLocal() as session:
        return (await session.execute(select(func.count()).select_from(Order))).scalar_one()


async def _stored_status(order_id) -> OrderStatus:
    # Fresh session: proves the status was committed, not just flushed.
    async with AsyncSessionLocal() as session:
        order = await session.get(Order, order_id)
        return order.status


@pytest.mark.asyncio
async def test_checkout_without_payment_leaves_order_pending(async_db_session: AsyncSession, sample_cart):
    order = await checkout_service.checkout(
        async_db_session, cart_id=sample_cart.id, user_id=sample_cart.user_id
    )

    assert order.status == OrderStatus.pending
    assert order.total_amount == Decimal("25.50")
    assert order.cart_id == sample_cart.id
    assert [(i.unit_price, i.quantity) for i in order.items] == [
        (Decimal("10.00"), 2),
        (Decimal("5.50"), 1),
    ]
    assert await _stored_status(order.id) == OrderStatus.pending


@pytest.mark.asyncio
async def test_checkout_empty_cart_creates_nothing(async_db_session: AsyncSession, user, make_cart, make_gateway):
    cart = make_cart(user, [])
    gateway = make_gateway()

    with pytest.raises(InvalidStateError) as excinfo:
        await checkout_service.checkout(
            async_db_session, cart_id=cart.id, user_id=user.id, payment_info=CARD, gateway=gateway
        )

    assert excinfo.value.detail == "cart empty"
    assert excinfo.value.retryable is False
    assert gateway.calls == []
    assert await _order_count() == 0


@pytest.mark.asyncio
async def test_checkout_unknown_or_foreign_cart(async_db_session: AsyncSession, sample_cart):
    with pytest.raises(ResourceNotFoundError):
        await checkout_service.checkout(async_db_session, cart_id=uuid.uuid4(), user_id=sample_cart.user_id)
    with pytest.raises(ResourceNotFoundError):
        await checkout_service.checkout(async_db_session, cart_id=sample_cart.id, user_id=uuid.uuid4())
    assert await _order_count() == 0


@pytest.mark.asyncio
async def test_successful_charge_completes_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(ChargeResult.approved("ch_ok"))

    order = await checkout_service.checkout(
        async_db_session,
        cart_id=sample_cart.id,
        user_id=sample_cart.user_id,
        payment_info=CARD,
        gateway=gateway,
    )

    assert order.status == OrderStatus.complete
    assert order.total_amount == Decimal("25.50")
    assert order.payment_reference == "ch_ok"
    assert gateway.calls == [(2550, "USD", "tok_visa")]
    assert await _stored_status(order.id) == OrderStatus.complete


@pytest.mark.asyncio
async def test_declined_charge_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(ChargeResult.declined("card declined"))

    with pytest.raises(PaymentFailedError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    error = excinfo.value
    assert error.detail == "card declined"
    assert error.retryable is True
    assert len(gateway.calls) == 1
    assert await _stored_status(error.order_id) == OrderStatus.failed

    stored = await order_service.get_order(async_db_session, error.order_id)
    assert stored.failure_reason == "card declined"
    assert stored.total_amount == Decimal("25.50")


@pytest.mark.asyncio
async def test_provider_error_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(exc=PaymentProviderError("Stripe error: processing_error"))

    with pytest.raises(PaymentFailedError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    assert "processing_error" in excinfo.value.detail
    assert len(gateway.calls) == 1
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.failed


@pytest.mark.asyncio
async def test_unexpected_gateway_exception_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(exc=RuntimeError("socket closed"))

    with pytest.raises(PaymentFailedError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    assert "socket closed" in excinfo.value.detail
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.failed


@pytest.mark.asyncio
async def test_misconfigured_gateway_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(exc=PaymentProviderConfigurationError("Stripe API key not configured"))

    with pytest.raises(ConfigurationError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    assert isinstance(excinfo.value, PaymentFailedError)
    assert excinfo.value.retryable is False
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.failed


@pytest.mark.asyncio
async def test_missing_stripe_key_fails_order_with_default_gateway(
    async_db_session: AsyncSession, sample_cart, monkeypatch
):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")

    with pytest.raises(ConfigurationError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
        )

    assert "STRIPE_SECRET_KEY" in excinfo.value.detail
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.failed


@pytest.mark.asyncio
async def test_gateway_timeout_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_TIMEOUT_SECONDS", 0.05)
    gateway = make_gateway(delay=1.0)

    with pytest.raises(PaymentFailedError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    assert excinfo.value.detail == "payment gateway timed out"
    assert len(gateway.calls) == 1
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.failed


@pytest.mark.asyncio
async def test_each_checkout_creates_a_new_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    declined = make_gateway(ChargeResult.declined("card declined"))
    with pytest.raises(PaymentFailedError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=declined,
        )
    failed_id = excinfo.value.order_id

    retried = await checkout_service.checkout(
        async_db_session,
        cart_id=sample_cart.id,
        user_id=sample_cart.user_id,
        payment_info=CARD,
        gateway=make_gateway(),
    )

    assert retried.id != failed_id
    assert retried.status == OrderStatus.complete
    assert await _stored_status(failed_id) == OrderStatus.failed
    assert await _order_count() == 2

    with pytest.raises(InvalidTransitionError):
        await order_service.update_status(async_db_session, failed_id, OrderStatus.complete)


@pytest.mark.asyncio
async def test_cart_with_only_zero_quantity_lines_is_empty(
    async_db_session: AsyncSession, user, make_cart, make_gateway
):
    cart = make_cart(user, [("10.00", 0)])
    gateway = make_gateway()

    with pytest.raises(InvalidStateError):
        await checkout_service.checkout(
            async_db_session, cart_id=cart.id, user_id=user.id, payment_info=CARD, gateway=gateway
        )

    assert gateway.calls == []
    assert await _order_count() == 0


@pytest.mark.asyncio
async def test_zero_quantity_lines_are_left_out_of_the_order(async_db_session: AsyncSession, user, make_cart):
    cart = make_cart(user, [("10.00", 0), ("5.50", 2)])

    order = await checkout_service.checkout(async_db_session, cart_id=cart.id, user_id=user.id)

    assert [(i.unit_price, i.quantity) for i in order.items] == [(Decimal("5.50"), 2)]
    assert order.total_amount == Decimal("11.00")


@pytest.mark.asyncio
async def test_cancelled_checkout_fails_order(async_db_session: AsyncSession, sample_cart, make_gateway):
    gateway = make_gateway(delay=5.0)
    task = asyncio.create_task(
        checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )
    )
    while not gateway.calls:
        await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    async with AsyncSessionLocal() as session:
        orders = (await session.execute(select(Order))).scalars().all()
    assert [order.status for order in orders] == [OrderStatus.failed]
    assert orders[0].failure_reason == "checkout cancelled during payment"


def _failing_commits(monkeypatch, *, succeed_first: int) -> None:
    """Let the first ``succeed_first`` commits through, then fail like a dropped connection."""
    real_commit = checkout_service.commit_async
    calls = 0

    async def commit(db):
        nonlocal calls
        calls += 1
        if calls > succeed_first:
            await db.rollback()
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit(db)

    monkeypatch.setattr(checkout_service, "commit_async", commit)


@pytest.mark.asyncio
async def test_store_failure_creating_order_is_wrapped(async_db_session: AsyncSession, sample_cart, monkeypatch):
    _failing_commits(monkeypatch, succeed_first=0)

    with pytest.raises(OrderPersistenceError) as excinfo:
        await checkout_service.checkout(async_db_session, cart_id=sample_cart.id, user_id=sample_cart.user_id)

    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert excinfo.value.order_id is None
    assert excinfo.value.retryable is False
    assert await _order_count() == 0


@pytest.mark.asyncio
async def test_store_failure_recording_failed_keeps_payment_error(
    async_db_session: AsyncSession, sample_cart, make_gateway, monkeypatch
):
    _failing_commits(monkeypatch, succeed_first=1)

    with pytest.raises(OrderPersistenceError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=make_gateway(ChargeResult.declined("card declined")),
        )

    error = excinfo.value
    assert isinstance(error.__cause__, OperationalError)
    assert isinstance(error.payment_error, PaymentFailedError)
    assert error.payment_error.detail == "card declined"
    assert await _stored_status(error.order_id) == OrderStatus.pending


@pytest.mark.asyncio
async def test_store_failure_after_successful_charge_is_wrapped(
    async_db_session: AsyncSession, sample_cart, make_gateway, monkeypatch
):
    _failing_commits(monkeypatch, succeed_first=1)
    gateway = make_gateway(ChargeResult.approved("ch_lost"))

    with pytest.raises(OrderPersistenceError) as excinfo:
        await checkout_service.checkout(
            async_db_session,
            cart_id=sample_cart.id,
            user_id=sample_cart.user_id,
            payment_info=CARD,
            gateway=gateway,
        )

    assert excinfo.value.payment_error is None
    assert len(gateway.calls) == 1
    assert await _stored_status(excinfo.value.order_id) == OrderStatus.pending
