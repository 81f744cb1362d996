"""Unit tests for the favorites service persistence and caching logic."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.cache import favorite_ids_key, favorite_products_key
from storefront.db.models import Base, Favorite
from storefront.services.favorites import FavoritesCache, FavoritesPersistence
from storefront.services.favorites_service import FavoritesService
from tests.storefront.conftest import MemoryCache, seed_products


def _service(session: AsyncSession, cache: MemoryCache) -> FavoritesService:
    return FavoritesService(
        persistence=FavoritesPersistence(session),
        cache=FavoritesCache(cache),
        default_page_size=12,
    )


async def _row_count(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        select(func.count(Favorite.id)).where(Favorite.user_id == user_id)
    )
    return int(result.scalar_one())


@pytest.mark.asyncio
async def test_create_is_idempotent(session: AsyncSession, memory_cache: MemoryCache) -> None:
    await seed_products(session, "p1")
    service = _service(session, memory_cache)

    first = await service.create(user_id="u1", product_id="p1")
    second = await service.create(user_id="u1", product_id="p1")

    assert first.created is True
    assert first.message == "Added to Favorites"
    assert second.created is False
    assert second.is_favorite is True
    assert await _row_count(session, "u1") == 1


@pytest.mark.asyncio
async def test_create_unknown_product_raises_lookup(
    session: AsyncSession, memory_cache: MemoryCache
) -> None:
    service = _service(session, memory_cache)

    with pytest.raises(LookupError, match="Product not found"):
        await service.create(user_id="u1", product_id="missing")


@pytest.mark.asyncio
async def test_delete_is_idempotent(session: AsyncSession, memory_cache: MemoryCache) -> None:
    await seed_products(session, "p1")
    service = _service(session, memory_cache)
    await service.create(user_id="u1", product_id="p1")

    removed = await service.delete(user_id="u1", product_id="p1")
    again = await service.delete(user_id="u1", product_id="p1")

    assert removed.is_favorite is False
    assert removed.message == "Removed from Favorites"
    assert again.is_favorite is False
    assert await _row_count(session, "u1") == 0


@pytest.mark.asyncio
async def test_list_ids_is_scoped_per_user_and_newest_first(
    session: AsyncSession, memory_cache: MemoryCache
) -> None:
    await seed_products(session, "p1", "p2", "p3")
    service = _service(session, memory_cache)
    for product_id in ("p1", "p2", "p3"):
        await service.create(user_id="u1", product_id=product_id)
    await service.create(user_id="u2", product_id="p2")

    listed = await service.list_ids(user_id="u1")

    assert listed.product_ids == ["p3", "p2", "p1"]
    assert listed.total == 3
    assert (await service.list_ids(user_id="u2")).product_ids == ["p2"]


@pytest.mark.asyncio
async def test_racing_create_and_delete_leave_last_state(
    session: AsyncSession, memory_cache: MemoryCache
) -> None:
    await seed_products(session, "p1")
    service = _service(session, memory_cache)

    for _ in range(3):
        await service.create(user_id="u1", product_id="p1")
        await service.delete(user_id="u1", product_id="p1")
    await service.create(user_id="u1", product_id="p1")
    await service.create(user_id="u1", product_id="p1")

    assert await _row_count(session, "u1") == 1
    assert (await service.list_ids(user_id="u1")).product_ids == ["p1"]


@pytest.mark.asyncio
async def test_toggle_flips_membership(session: AsyncSession, memory_cache: MemoryCache) -> None:
    await seed_products(session, "p1")
    service = _service(session, memory_cache)

    added = await service.toggle(user_id="u1", product_id="p1")
    removed = await service.toggle(user_id="u1", product_id="p1")

    assert added.is_favorite is True
    assert removed.is_favorite is False
    assert await _row_count(session, "u1") == 0


@pytest.mark.asyncio
async def test_list_ids_uses_cache_and_mutations_invalidate(
    session: AsyncSession, memory_cache: MemoryCache
) -> None:
    await seed_products(session, "p1", "p2")
    service = _service(session, memory_cache)
    await service.create(user_id="u1", product_id="p1")

    await service.list_ids(user_id="u1")
    assert memory_cache.store[favorite_ids_key("u1")] == ["p1"]

    memory_cache.store[favorite_ids_key("u1")] = ["cached"]
    assert (await service.list_ids(user_id="u1")).product_ids == ["cached"]

    await service.create(user_id="u1", product_id="p2")
    assert favorite_ids_key("u1") in memory_cache.deleted
    assert (await service.list_ids(user_id="u1")).product_ids == ["p2", "p1"]


@pytest.mark.asyncio
async def test_list_products_paginates(session: AsyncSession, memory_cache: MemoryCache) -> None:
    ids = [f"p{index}" for index in range(5)]
    await seed_products(session, *ids)
    service = _service(session, memory_cache)
    for product_id in ids:
        await service.create(user_id="u1", product_id=product_id)

    page_one = await service.list_products(user_id="u1", page=1, limit=2)
    page_three = await service.list_products(user_id="u1", page=3, limit=2)

    assert [item.id for item in page_one.items] == ["p4", "p3"]
    assert page_one.total == 5
    assert page_one.total_pages == 3
    assert [item.id for item in page_three.items] == ["p0"]
    assert page_one.items[0].slug == "slug-p4"
    assert favorite_products_key("u1", 1, 2) in memory_cache.store


@pytest.mark.asyncio
async def test_list_products_defaults_and_limits(
    session: AsyncSession, memory_cache: MemoryCache
) -> None:
    service = _service(session, memory_cache)

    empty = await service.list_products(user_id="u1")
    assert empty.limit == 12
    assert empty.total_pages == 1

    with pytest.raises(ValueError):
        await service.list_products(user_id="u1", limit=51)
    with pytest.raises(ValueError):
        await service.list_products(user_id="u1", page=0)


@pytest.mark.asyncio
async def test_missing_tables_are_reported(memory_cache: MemoryCache) -> None:
    pytest.importorskip("aiosqlite")
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as bare_session:
            service = _service(bare_session, memory_cache)

            assert (await service.list_ids(user_id="u1")).total == 0
            with pytest.raises(RuntimeError, match="tables are missing"):
                await service.create(user_id="u1", product_id="p1")
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_separate_sessions_share_unique_constraint(tmp_path) -> None:
    pytest.importorskip("aiosqlite")
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'favorites.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as setup:
            await seed_products(setup, "p1")
            await setup.commit()

        outcomes = []
        for _ in range(2):
            async with session_factory() as device_session:
                service = _service(device_session, MemoryCache())
                outcomes.append(await service.create(user_id="u1", product_id="p1"))
                await device_session.commit()

        async with session_factory() as check:
            assert await _row_count(check, "u1") == 1
        assert [outcome.created for outcome in outcomes] == [True, False]
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_reader_during_delete_cannot_pin_stale_ids(tmp_path) -> None:
    pytest.importorskip("aiosqlite")
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'favorites.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    cache = MemoryCache()
    try:
        async with session_factory() as setup:
            await seed_products(setup, "p1")
            await _service(setup, cache).create(user_id="u1", product_id="p1")

        async with session_factory() as reader:
            before = await _service(reader, cache).list_ids(user_id="u1")
        assert before.product_ids == ["p1"]
        assert favorite_ids_key("u1") in cache.store

        async with session_factory() as writer:
            await _service(writer, cache).delete(user_id="u1", product_id="p1")

        assert favorite_ids_key("u1") not in cache.store
        async with session_factory() as fresh:
            after = await _service(fresh, cache).list_ids(user_id="u1")
        assert after.product_ids == []
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_mutations_are_committed_before_cache_is_dropped(tmp_path) -> None:
    pytest.importorskip("aiosqlite")
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'favorites.db'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    cache = MemoryCache()
    try:
        async with session_factory() as setup:
            await seed_products(setup, "p1")
            await setup.commit()

        async with session_factory() as writer:
            await _service(writer, cache).create(user_id="u1", product_id="p1")
            # A concurrent request reading after the cache was dropped sees the row.
            async with session_factory() as reader:
                seen = await _service(reader, cache).list_ids(user_id="u1")
            assert seen.product_ids == ["p1"]

            await _service(writer, cache).delete(user_id="u1", product_id="p1")
            async with session_factory() as reader:
                seen = await _service(reader, cache).list_ids(user_id="u1")
            assert seen.product_ids == []
    finally:
        await engine.dispose()
