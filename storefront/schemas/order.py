# storefront/schemas/order.py
from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from storefront.domain.enums import OrderStatus


class OrderItemRead(BaseModel):
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True, frozen=True)


class OrderRead(BaseModel):
    """Immutable view of an order; the state machine only ever sees these."""

    id: UUID
    user_id: UUID
    cart_id: Optional[UUID] = None
    status: OrderStatus
    currency: str
    total_amount: Decimal
    failure_reason: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: tuple[OrderItemRead, ...] = ()

    model_config = ConfigDict(from_attributes=True, frozen=True)


class PaymentInfo(BaseModel):
    # Opaque token from the payment provider, never raw card data.
    instrument_ref: str = Field(..., min_length=1, max_length=255)

    model_config = ConfigDict(str_strip_whitespace=True)


class CheckoutRequest(BaseModel):
    user_id: UUID
    payment_info: Optional[PaymentInfo] = None
