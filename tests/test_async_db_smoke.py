import pytest
from sqlalchemy import text

from storefront.db.session_async import AsyncSessionLocal, get_async_db


@pytest.mark.asyncio
async def test_async_engine_executes_simple_query() -> None:
    async with AsyncSessionLocal() as session:
        result = await session.execute(text("SELECT 1"))
        assert result.scalar_one() == 1


@pytest.mark.asyncio
async def test_get_async_db_yields_a_working_session() -> None:
    dependency = get_async_db()
    session = await anext(dependency)
    try:
        result = await session.execute(text("SELECT count(*) FROM orders"))
        assert result.scalar_one() == 0
    finally:
        await dependency.aclose()
