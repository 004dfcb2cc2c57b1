from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.logging import get_logger
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.cart import CartCreate, CartItemCreate, CartItemUpdate
from storefront.services.exceptions import InvalidStateError, ResourceNotFoundError
from storefront.services.pricing import line_total, to_money

logger = get_logger(__name__)


async def _refresh_cart(db: AsyncSession, cart: Cart) -> None:
    await db.refresh(cart)
    await db.refresh(cart, attribute_names=["items"])


def _get_item(cart: Cart, item_id: uuid.UUID) -> CartItem | None:
    for item in cart.items:
        if item.id == item_id:
            return item
    return None


async def create_cart(db: AsyncSession, *, payload: CartCreate) -> Cart:
    user = await db.get(User, payload.user_id)
    if not user:
        raise ResourceNotFoundError("User not found")

    cart = Cart(user_id=user.id, currency=payload.currency.upper())
    db.add(cart)
    await db.flush()
    await _refresh_cart(db, cart)
    logger.info("Cart created", extra={"cart_id": str(cart.id), "user_id": str(user.id)})
    return cart


async def get_cart(db: AsyncSession, cart_id: uuid.UUID) -> Cart:
    cart = await db.get(Cart, cart_id, options=[selectinload(Cart.items)])
    if not cart:
        raise ResourceNotFoundError("Cart not found")
    await _refresh_cart(db, cart)
    return cart


async def get_cart_for_user(db: AsyncSession, user_id: uuid.UUID) -> Cart:
    stmt = (
        select(Cart)
        .options(selectinload(Cart.items))
        .where(Cart.user_id == user_id)
        .order_by(Cart.created_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    cart = result.scalars().first()
    if not cart:
        raise ResourceNotFoundError("Cart not found for user")
    await _refresh_cart(db, cart)
    return cart


async def load_cart(
    db: AsyncSession,
    cart_id: uuid.UUID,
    *,
    user_id: uuid.UUID | None = None,
) -> Cart:
    """Cart with its items loaded.

    When ``user_id`` is given, a cart owned by someone else is reported as
    missing rather than leaking its existence.
    """
    cart = await get_cart(db, cart_id)
    if user_id is not None and cart.user_id != user_id:
        raise ResourceNotFoundError("Cart not found")
    return cart


async def get_items(
    db: AsyncSession,
    cart_id: uuid.UUID,
    *,
    user_id: uuid.UUID | None = None,
) -> list[CartItem]:
    """Line items of a cart in insertion order."""
    cart = await load_cart(db, cart_id, user_id=user_id)
    return list(cart.items)


async def add_item(
    db: AsyncSession,
    *,
    cart: Cart,
    item_payload: CartItemCreate,
) -> Cart:
    await _refresh_cart(db, cart)

    product = await db.get(Product, item_payload.product_id)
    if not product or not product.active:
        raise ResourceNotFoundError("Product not found")
    if product.currency.upper() != cart.currency.upper():
        raise InvalidStateError(
            f"Product is priced in {product.currency.upper()}, cart is in {cart.currency.upper()}"
        )

    existing = next((i for i in cart.items if i.product_id == product.id), None)
    if existing:
        existing.quantity += item_payload.quantity
        existing.line_total = line_total(existing.unit_price, existing.quantity)
    else:
        unit_price = to_money(product.price)
        position = max((i.position for i in cart.items), default=-1) + 1
        db.add(
            CartItem(
                cart=cart,
                product_id=product.id,
                position=position,
                quantity=item_payload.quantity,
                unit_price=unit_price,
                line_total=line_total(unit_price, item_payload.quantity),
            )
        )

    db.add(cart)
    await db.flush()
    await _refresh_cart(db, cart)
    return cart


async def update_item(
    db: AsyncSession,
    *,
    cart: Cart,
    item_id: uuid.UUID,
    payload: CartItemUpdate,
) -> Cart:
    await _refresh_cart(db, cart)

    item = _get_item(cart, item_id)
    if not item:
        raise ResourceNotFoundError("Cart item not found")

    item.quantity = payload.quantity
    item.line_total = line_total(item.unit_price, item.quantity)

    db.add(cart)
    await db.flush()
    await _refresh_cart(db, cart)
    return cart


async def remove_item(
    db: AsyncSession,
    *,
    cart: Cart,
    item_id: uuid.UUID,
) -> Cart:
    await _refresh_cart(db, cart)

    item = _get_item(cart, item_id)
    if not item:
        raise ResourceNotFoundError("Cart item not found")

    cart.items.remove(item)
    db.add(cart)
    await db.flush()
    await _refresh_cart(db, cart)
    return cart
