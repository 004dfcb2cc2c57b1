from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from typing import Any, List, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.logging import get_logger
from storefront.db.operations import flush_async
from storefront.domain import order_state
from storefront.domain.enums import OrderStatus
from storefront.models.order import Order, OrderItem
from storefront.schemas.order import OrderRead
from storefront.services.exceptions import ResourceNotFoundError
from storefront.services.pricing import compute_total, line_total, to_money

logger = get_logger(__name__)


class OrderLineSource(Protocol):
    product_id: uuid.UUID
    unit_price: Any
    quantity: int


async def _load_order_eager(db: AsyncSession, order: Order) -> None:
    await db.refresh(order)
    await db.refresh(order, attribute_names=["items"])


def to_snapshot(order: Order) -> OrderRead:
    return OrderRead.model_validate(order)


async def create_order(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    currency: str,
    lines: Iterable[OrderLineSource],
    cart_id: uuid.UUID | None = None,
) -> Order:
    """Insert a PENDING order whose items are copies of ``lines``."""
    lines = list(lines)
    order = Order(
        user_id=user_id,
        cart_id=cart_id,
        currency=currency,
        status=OrderStatus.pending,
        total_amount=compute_total(lines),
    )
    db.add(order)
    await flush_async(db, order)

    for position, line in enumerate(lines):
        unit_price = to_money(line.unit_price)
        db.add(
            OrderItem(
                order_id=order.id,
                product_id=line.product_id,
                position=position,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=line_total(unit_price, line.quantity),
            )
        )
    await db.flush()
    await _load_order_eager(db, order)
    return order


async def get_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    order = await db.get(Order, order_id, options=[selectinload(Order.items)])
    if not order:
        raise ResourceNotFoundError("Order not found")
    await _load_order_eager(db, order)
    return order


async def list_orders_for_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    status_filter: OrderStatus | None = None,
    limit: int = 100,
    offset: int = 0,
) -> Sequence[Order]:
    stmt = (
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.user_id == user_id)
        .order_by(Order.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    if status_filter:
        stmt = stmt.where(Order.status == status_filter)

    result = await db.execute(stmt)
    orders: List[Order] = list(result.scalars().all())
    return orders


async def update_status(
    db: AsyncSession,
    order_id: uuid.UUID,
    new_status: OrderStatus,
    **changes: Any,
) -> OrderRead:
    """Persist a status transition and return the resulting snapshot.

    The transition is validated against the current stored status, so a
    terminal order raises ``InvalidTransitionError`` and is not written.
    """
    order = await get_order(db, order_id)
    updated = order_state.transition(to_snapshot(order), new_status, **changes)

    order.status = updated.status
    for field in changes:
        setattr(order, field, getattr(updated, field))
    db.add(order)
    await db.flush()
    await _load_order_eager(db, order)

    logger.info(
        "Order status updated",
        extra={"order_id": str(order.id), "status": order.status.value},
    )
    return to_snapshot(order)
