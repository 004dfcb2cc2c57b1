# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import asyncio
import os
import uuid
from decimal import Decimal
from typing import Generator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")

from storefront.main import app
from storefront.db.session import Base, engine as sync_engine
from storefront.db.session_async import AsyncSessionLocal, async_engine
from storefront.models.cart import Cart, CartItem
from storefront.models.product import Product
from storefront.models.user import User
from storefront.services.payment_providers import ChargeResult

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)


class FakeGateway:
    """Gateway double that records every charge attempt."""

    def __init__(self, result: ChargeResult | None = None, *, exc: Exception | None = None, delay: float = 0.0):
        self.result = result or ChargeResult.approved("ch_test_123")
        self.exc = exc
        self.delay = delay
        self.calls: list[tuple[int, str, str]] = []

    async def charge(self, amount_minor_units: int, currency: str, instrument_ref: str) -> ChargeResult:
        self.calls.append((amount_minor_units, currency, instrument_ref))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


# ---------- Fixtures ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Create the SQLite schema once per session."""
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest_asyncio.fixture(autouse=True)
async def dispose_async_engine():
    """Drop pooled aiosqlite connections so none outlive the test's event loop."""
    yield
    await async_engine.dispose()


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest_asyncio.fixture(scope="function")
async def async_db_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_gateway():
    return FakeGateway


# --- Seed data (sync, committed before the async code reads it) ---

@pytest.fixture(scope="function")
def user(db_session: Session) -> User:
    customer = User(email=f"user-{uuid.uuid4()}@example.com", full_name="Test Customer")
    db_session.add(customer)
    db_session.commit()
    db_session.refresh(customer)
    return customer


@pytest.fixture
def make_product(db_session: Session):
    def _make(price: str, *, active: bool = True, currency: str = "USD") -> Product:
        product = Product(title=f"Prod-{uuid.uuid4()}", price=Decimal(price), currency=currency, active=active)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_cart(db_session: Session, make_product):
    """Build a cart for ``owner`` holding ``(price, quantity)`` lines."""

    def _make(owner: User, lines: list[tuple[str, int]] = ()) -> Cart:
        cart = Cart(user_id=owner.id, currency="USD")
        db_session.add(cart)
        db_session.flush()
        for position, (price, quantity) in enumerate(lines):
            product = make_product(price)
            unit_price = Decimal(price)
            db_session.add(
                CartItem(
                    cart_id=cart.id,
                    product_id=product.id,
                    position=position,
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=unit_price * quantity,
                )
            )
        db_session.commit()
        db_session.refresh(cart)
        return cart

    return _make


@pytest.fixture
def sample_cart(user: User, make_cart) -> Cart:
    """10.00 x 2 + 5.50 x 1 = 25.50"""
    return make_cart(user, [("10.00", 2), ("5.50", 1)])
