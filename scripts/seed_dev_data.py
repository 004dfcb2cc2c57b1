"""Seed development users, products and one cart per user without raw SQL."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal

import sys
from pathlib import Path

# Ensure project root is on PYTHONPATH when running as a script.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import select

from storefront.core.config import settings
from storefront.db.session_async import AsyncSessionLocal
from storefront.models.cart import Cart
from storefront.models.product import Product
from storefront.models.user import User
from storefront.schemas.cart import CartCreate
from storefront.services import cart_service


@dataclass(frozen=True, slots=True)
class DevUser:
    email: str
    full_name: str


@dataclass(frozen=True, slots=True)
class DevProduct:
    title: str
    price: Decimal


DEV_USERS: tuple[DevUser, ...] = (
    DevUser(email="user1.dev@example.com", full_name="Dev Customer One"),
    DevUser(email="user2.dev@example.com", full_name="Dev Customer Two"),
)

DEV_PRODUCTS: tuple[DevProduct, ...] = (
    DevProduct(title="Canvas Tote", price=Decimal("10.00")),
    DevProduct(title="Enamel Mug", price=Decimal("5.50")),
    DevProduct(title="Wool Beanie", price=Decimal("24.99")),
)


async def seed_dev_data() -> None:
    """Insert development rows that do not exist yet."""
    logger = logging.getLogger("seed_dev_data")
    logger.info("Seeding development data into %s", settings.ASYNC_DATABASE_URL)

    created = 0
    skipped = 0

    async with AsyncSessionLocal() as session:
        for dev_product in DEV_PRODUCTS:
            result = await session.execute(select(Product).where(Product.title == dev_product.title))
            if result.scalars().first():
                skipped += 1
                continue
            session.add(
                Product(
                    title=dev_product.title,
                    price=dev_product.price,
                    currency=settings.DEFAULT_CURRENCY,
                )
            )
            created += 1

        for dev_user in DEV_USERS:
            result = await session.execute(select(User).where(User.email == dev_user.email))
            user = result.scalars().first()
            if user is None:
                user = User(email=dev_user.email, full_name=dev_user.full_name)
                session.add(user)
                await session.flush()
                created += 1
                logger.debug("Created user %s", dev_user.email)
            else:
                skipped += 1

            has_cart = await session.execute(select(Cart.id).where(Cart.user_id == user.id).limit(1))
            if has_cart.first() is None:
                await cart_service.create_cart(session, payload=CartCreate(user_id=user.id))
                created += 1

        await session.commit()

    logger.info("Seed completed: %s created, %s skipped", created, skipped)


async def main() -> None:
    await seed_dev_data()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
