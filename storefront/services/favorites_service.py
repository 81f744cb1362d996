"""Business logic powering the favorites API endpoints.

Persistence-oriented operations delegated to :class:`FavoritesPersistence`:
* ``tables_ready`` - readiness probe ensuring tables exist before use.
* ``insert_favorite``/``delete_favorite`` - idempotent membership writes.
* ``commit`` - makes a write durable before its cache entries are dropped, so
  a concurrent reader cannot repopulate the cache from the old rows.
* ``list_product_ids``/``count_favorites``/``list_favorite_products`` - reads
  backing the membership list and the paginated "my favorites" page.

Caching handled by :class:`FavoritesCache`:
* ``read_ids``/``write_ids`` - full membership per user.
* ``read_page``/``write_page`` - product pages per user, page and limit.
* ``invalidate`` - drops every cached payload for a user after a mutation.
"""

from __future__ import annotations

import logging
import math

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache import CacheClient, get_cache_client
from storefront.db.connection import get_db
from storefront.schemas.favorites import (
    ADDED_MESSAGE,
    REMOVED_MESSAGE,
    FavoriteIdsResponse,
    FavoriteMutationResponse,
    FavoriteProductPage,
    FavoriteProductSummary,
)
from storefront.services.favorites import FavoritesCache, FavoritesPersistence
from storefront.settings import MAX_FAVORITES_PAGE_SIZE, get_settings

logger = logging.getLogger(__name__)

_TABLES_MISSING = (
    "Favorites tables are missing; start the API once or call init_models() to create them."
)


class FavoritesService:
    """Server-side favorites store keyed by ``(user_id, product_id)``."""

    def __init__(
        self,
        *,
        persistence: FavoritesPersistence,
        cache: FavoritesCache,
        default_page_size: int | None = None,
    ) -> None:
        self._persistence = persistence
        self._cache = cache
        self._default_page_size = default_page_size or get_settings().favorites_page_size

    async def _require_tables(self) -> None:
        if not await self._persistence.tables_ready():
            raise RuntimeError(_TABLES_MISSING)

    async def create(self, *, user_id: str, product_id: str) -> FavoriteMutationResponse:
        """Add ``product_id`` to the user's favorites.

        Repeated creates are no-ops reported with ``created=False``; an unknown
        product raises :class:`LookupError`.
        """

        await self._require_tables()
        if not await self._persistence.product_exists(product_id):
            raise LookupError("Product not found")

        created = await self._persistence.insert_favorite(
            user_id=user_id, product_id=product_id
        )
        if created:
            await self._persistence.commit()
            await self._cache.invalidate(user_id=user_id)
        else:
            logger.debug("Favorite %s already present for user %s", product_id, user_id)
        return FavoriteMutationResponse(
            product_id=product_id,
            is_favorite=True,
            created=created,
            message=ADDED_MESSAGE,
        )

    async def delete(self, *, user_id: str, product_id: str) -> FavoriteMutationResponse:
        """Remove ``product_id`` from the user's favorites; absent is a no-op."""

        await self._require_tables()
        removed = await self._persistence.delete_favorite(
            user_id=user_id, product_id=product_id
        )
        if removed:
            await self._persistence.commit()
            await self._cache.invalidate(user_id=user_id)
        return FavoriteMutationResponse(
            product_id=product_id,
            is_favorite=False,
            message=REMOVED_MESSAGE,
        )

    async def toggle(self, *, user_id: str, product_id: str) -> FavoriteMutationResponse:
        await self._require_tables()
        if await self._persistence.favorite_exists(user_id=user_id, product_id=product_id):
            return await self.delete(user_id=user_id, product_id=product_id)
        return await self.create(user_id=user_id, product_id=product_id)

    async def list_ids(self, *, user_id: str) -> FavoriteIdsResponse:
        if not await self._persistence.tables_ready():
            return FavoriteIdsResponse(product_ids=[], total=0)

        cached = await self._cache.read_ids(user_id=user_id)
        if cached is not None:
            return FavoriteIdsResponse(product_ids=cached, total=len(cached))

        product_ids = await self._persistence.list_product_ids(user_id=user_id)
        await self._cache.write_ids(user_id=user_id, product_ids=product_ids)
        return FavoriteIdsResponse(product_ids=product_ids, total=len(product_ids))

    async def list_products(
        self,
        *,
        user_id: str,
        page: int = 1,
        limit: int | None = None,
    ) -> FavoriteProductPage:
        """Return one page of the user's favorite products, newest first."""

        limit = limit or self._default_page_size
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= limit <= MAX_FAVORITES_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_FAVORITES_PAGE_SIZE}")

        if not await self._persistence.tables_ready():
            return FavoriteProductPage(items=[], page=page, limit=limit, total=0, total_pages=1)

        cached = await self._cache.read_page(user_id=user_id, page=page, limit=limit)
        if cached is not None:
            return cached

        total = await self._persistence.count_favorites(user_id=user_id)
        rows = await self._persistence.list_favorite_products(
            user_id=user_id, offset=(page - 1) * limit, limit=limit
        )
        payload = FavoriteProductPage(
            items=[
                FavoriteProductSummary(
                    id=product.id,
                    name=product.name,
                    slug=product.slug,
                    favorited_at=favorite.created_at,
                )
                for product, favorite in rows
            ],
            page=page,
            limit=limit,
            total=total,
            total_pages=max(1, math.ceil(total / limit)),
        )
        await self._cache.write_page(user_id=user_id, page=page, limit=limit, payload=payload)
        return payload


async def get_favorites_service(
    session: AsyncSession = Depends(get_db),
    cache_client: CacheClient = Depends(get_cache_client),
) -> FavoritesService:
    """FastAPI dependency that wires the orchestrator together."""

    return FavoritesService(
        persistence=FavoritesPersistence(session),
        cache=FavoritesCache(cache_client),
    )
