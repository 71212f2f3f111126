"""Integration-test fixtures.

Requires a running PostgreSQL with migrations applied (alembic upgrade head).
Each test gets its own engine so no pool outlives the event loop that
created it. Without a reachable database the tests are skipped.
"""

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings


@pytest_asyncio.fixture
async def session_factory():  # type: ignore[no-untyped-def]
    engine = create_async_engine(settings.DATABASE_URL)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1 FROM orders LIMIT 1"))
    except (OSError, DBAPIError) as exc:
        await engine.dispose()
        pytest.skip(f"database not available: {exc}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    async with factory() as session:
        await session.execute(text("DELETE FROM orders WHERE user_id LIKE 'it-%'"))
        await session.commit()
    await engine.dispose()
