"""Caching helpers dedicated to favorites orchestration."""

from __future__ import annotations

from storefront.cache import (
    CacheClient,
    favorite_ids_key,
    favorite_products_key,
    favorite_products_pattern,
)
from storefront.schemas.favorites import FavoriteProductPage


class FavoritesCache:
    """Typed read-through helpers for favorites payloads.

    Membership lists and product pages are cached per user; every mutation
    drops both so a subsequent read reflects the database.
    """

    def __init__(self, client: CacheClient) -> None:
        self._client = client

    async def read_ids(self, *, user_id: str) -> list[str] | None:
        cached = await self._client.get_json(favorite_ids_key(user_id))
        if not isinstance(cached, list):
            return None
        return [str(item) for item in cached]

    async def write_ids(self, *, user_id: str, product_ids: list[str]) -> None:
        await self._client.set_json(favorite_ids_key(user_id), list(product_ids))

    async def read_page(
        self, *, user_id: str, page: int, limit: int
    ) -> FavoriteProductPage | None:
        cached = await self._client.get_json(favorite_products_key(user_id, page, limit))
        return FavoriteProductPage(**cached) if isinstance(cached, dict) else None

    async def write_page(
        self, *, user_id: str, page: int, limit: int, payload: FavoriteProductPage
    ) -> None:
        await self._client.set_json(
            favorite_products_key(user_id, page, limit),
            payload.model_dump(mode="json"),
        )

    async def invalidate(self, *, user_id: str) -> None:
        """Delete every cached favorites artifact for ``user_id``."""

        await self._client.delete(favorite_ids_key(user_id))
        await self._client.delete_pattern(favorite_products_pattern(user_id))
