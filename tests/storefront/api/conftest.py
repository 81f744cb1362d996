"""Fixtures wiring the FastAPI app to a temporary SQLite database."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.cache import CacheClient, get_cache_client
from storefront.db.connection import get_db
from storefront.db.models import Base
from storefront.main import app
from tests.storefront.conftest import seed_products

CATALOGUE = ("p1", "p2", "p3", "a", "b", "c", "d")


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    pytest.importorskip("aiosqlite")
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as setup:
        await seed_products(setup, *CATALOGUE)
        await setup.commit()
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def http_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[httpx.AsyncClient]:
    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as db_session:
            try:
                yield db_session
                await db_session.commit()
            except Exception:
                await db_session.rollback()
                raise

    async def override_cache_client() -> CacheClient:
        return CacheClient(None)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_client] = override_cache_client
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
