from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.db.operations import commit_async
from storefront.db.session_async import get_async_db
from storefront.schemas.cart import CartCreate, CartItemCreate, CartItemUpdate, CartRead
from storefront.schemas.order import CheckoutRequest, OrderRead
from storefront.services import cart_service, checkout_service

router = APIRouter(prefix="/carts", tags=["carts"])


@router.post("", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def create_cart(
    payload: CartCreate,
    db: AsyncSession = Depends(get_async_db),
):
    cart = await cart_service.create_cart(db, payload=payload)
    await commit_async(db)
    return cart


@router.get("/users/{user_id}", response_model=CartRead)
async def get_user_cart(
    user_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    return await cart_service.get_cart_for_user(db, user_id)


@router.get("/{cart_id}", response_model=CartRead)
async def get_cart(
    cart_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    return await cart_service.get_cart(db, cart_id)


@router.post("/{cart_id}/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    cart_id: UUID,
    item: CartItemCreate,
    db: AsyncSession = Depends(get_async_db),
):
    cart = await cart_service.get_cart(db, cart_id)
    updated = await cart_service.add_item(db, cart=cart, item_payload=item)
    await commit_async(db)
    return updated


@router.put("/{cart_id}/items/{item_id}", response_model=CartRead)
async def update_cart_item(
    cart_id: UUID,
    item_id: UUID,
    payload: CartItemUpdate,
    db: AsyncSession = Depends(get_async_db),
):
    cart = await cart_service.get_cart(db, cart_id)
    updated = await cart_service.update_item(db, cart=cart, item_id=item_id, payload=payload)
    await commit_async(db)
    return updated


@router.delete("/{cart_id}/items/{item_id}", response_model=CartRead)
async def remove_cart_item(
    cart_id: UUID,
    item_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    cart = await cart_service.get_cart(db, cart_id)
    updated = await cart_service.remove_item(db, cart=cart, item_id=item_id)
    await commit_async(db)
    return updated


@router.post("/{cart_id}/checkout", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def checkout_cart(
    cart_id: UUID,
    payload: CheckoutRequest,
    db: AsyncSession = Depends(get_async_db),
):
    # The service commits at its own checkpoints; a payment error still
    # leaves the FAILED order persisted.
    return await checkout_service.checkout(
        db,
        cart_id=cart_id,
        user_id=payload.user_id,
        payment_info=payload.payment_info,
    )
