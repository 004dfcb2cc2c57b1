# storefront/schemas/cart.py
from __future__ import annotations
from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import List
from uuid import UUID
from datetime import datetime
from decimal import Decimal

from storefront.core.config import settings


class CartCreate(BaseModel):
    user_id: UUID
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)


class CartItemCreate(BaseModel):
    product_id: UUID
    quantity: int = Field(..., gt=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartItemRead(BaseModel):
    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    id: UUID
    user_id: UUID
    currency: str
    created_at: datetime
    updated_at: datetime | None = None

    items: List[CartItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def total_amount(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0.00"))
