"""Shared fixtures and test doubles for the storefront suites."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Callable, Iterable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.client.favorites_store import create_favorites_store
from storefront.client.storage import MemoryPersistentStore
from storefront.db.models import Base, Product


class MemoryCache:
    """In-memory cache double that mimics :class:`storefront.cache.CacheClient`."""

    def __init__(self) -> None:
        self.store: dict[str, object] = {}
        self.deleted: list[str] = []

    async def get_json(self, key: str) -> object | None:
        return self.store.get(key)

    async def set_json(self, key: str, value: object, ttl: int | None = None) -> None:
        self.store[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.store.pop(key, None)
            self.deleted.append(key)

    async def delete_pattern(self, pattern: str) -> None:
        prefix = pattern.rstrip("*")
        for key in [key for key in self.store if key.startswith(prefix)]:
            await self.delete(key)


class FakeFavoritesApi:
    """Scriptable in-memory favorites server for sync engine tests.

    ``calls`` records every request as it is issued. ``gates`` block a method
    until the event is set; ``failures`` queue exceptions raised once the gate
    opens. With ``list_on_arrival`` the listing is taken when the request
    arrives rather than when it is answered, like a server reply still in
    transit.
    """

    def __init__(self, server: dict[str, Iterable[str]] | None = None) -> None:
        self.server: dict[str, dict[str, None]] = {
            user: dict.fromkeys(ids) for user, ids in (server or {}).items()
        }
        self.calls: list[tuple[str, str, str | None]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.list_on_arrival = False

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    async def _enter(self, method: str) -> None:
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        queued = self.failures[method]
        if queued:
            raise queued.pop(0)

    def calls_for(self, method: str) -> list[tuple[str, str | None]]:
        return [(user, pid) for name, user, pid in self.calls if name == method]

    async def list_ids(self, user_id: str) -> list[str]:
        self.calls.append(("list", user_id, None))
        arrived = list(self.server.get(user_id, {}))
        await self._enter("list")
        if self.list_on_arrival:
            return arrived
        return list(self.server.get(user_id, {}))

    async def add(self, user_id: str, product_id: str) -> None:
        self.calls.append(("add", user_id, product_id))
        await self._enter("add")
        self.server.setdefault(user_id, {})[product_id] = None

    async def remove(self, user_id: str, product_id: str) -> None:
        self.calls.append(("remove", user_id, product_id))
        await self._enter("remove")
        self.server.get(user_id, {}).pop(product_id, None)


class RecordingSleep:
    """Stand-in for :func:`asyncio.sleep` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


async def settle(predicate: Callable[[], bool], *, rounds: int = 200) -> None:
    """Yield to the event loop until ``predicate`` holds."""

    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def storage() -> MemoryPersistentStore:
    return MemoryPersistentStore()


@pytest.fixture
def favorites(storage: MemoryPersistentStore):
    return create_favorites_store(storage)


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


async def seed_products(session: AsyncSession, *product_ids: str) -> None:
    for product_id in product_ids:
        session.add(Product(id=product_id, name=f"Product {product_id}", slug=f"slug-{product_id}"))
    await session.flush()


@pytest_asyncio.fixture
async def session() -> AsyncIterator[AsyncSession]:
    """Provide an in-memory SQLite session with freshly created tables."""
    pytest.importorskip("aiosqlite")
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as db_session:
        yield db_session
        if db_session.in_transaction():
            await db_session.rollback()
    await engine.dispose()
