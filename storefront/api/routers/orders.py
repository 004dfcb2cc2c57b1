from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.session_async import get_async_db
from storefront.domain.enums import OrderStatus
from storefront.schemas.order import OrderRead
from storefront.services import order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=List[OrderRead])
async def list_orders(
    user_id: UUID = Query(...),
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.list_orders_for_user(
        db,
        user_id,
        status_filter=status_filter,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    return await order_service.get_order(db, order_id)
