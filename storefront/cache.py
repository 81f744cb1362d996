from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from redis.asyncio import Redis as RedisClient
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from storefront.settings import get_settings

logger = logging.getLogger(__name__)

_DEFAULT_TTL_SECONDS = 600
_FAVORITE_IDS_PREFIX = "favorites:ids"
_FAVORITE_PRODUCTS_PREFIX = "favorites:products"

_redis_client: RedisClient | None = None
_client_lock = asyncio.Lock()
# Monotonic deadline before which no reconnect is attempted; ``None`` when healthy.
_redis_disabled: float | None = None


def _redis_url() -> str:
    return get_settings().redis_url


def _retry_backoff_seconds() -> float:
    return get_settings().redis_retry_backoff_seconds


def _redis_factory() -> type[RedisClient]:
    """Return the Redis client class; tests swap this for a stub factory."""

    return RedisClient


def _is_redis_connection_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` represents a Redis connectivity failure."""

    return isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError))


def favorite_ids_key(user_id: str) -> str:
    return f"{_FAVORITE_IDS_PREFIX}:{user_id}"


def favorite_products_key(user_id: str, page: int, limit: int) -> str:
    return f"{_FAVORITE_PRODUCTS_PREFIX}:{user_id}:{page}:{limit}"


def favorite_products_pattern(user_id: str) -> str:
    return f"{_FAVORITE_PRODUCTS_PREFIX}:{user_id}:*"


async def get_redis() -> RedisClient | None:
    """Get Redis client, returning None while the connection is unavailable."""
    global _redis_client, _redis_disabled

    if _redis_disabled is not None and time.monotonic() < _redis_disabled:
        logger.debug("Redis connection in cool-down after previous failure; skipping attempt.")
        return None

    # ALWAYS acquire lock first to prevent TOCTOU race
    async with _client_lock:
        if _redis_client is not None:
            return _redis_client

        if _redis_disabled is not None and time.monotonic() < _redis_disabled:
            return None

        client: RedisClient = _redis_factory().from_url(
            _redis_url(), decode_responses=True, encoding="utf-8"
        )
        try:
            # Test connection before storing the singleton instance.
            await client.ping()
        except Exception as exc:  # noqa: BLE001 - filtered below
            if not _is_redis_connection_error(exc):
                raise
            backoff = _retry_backoff_seconds()
            _redis_disabled = time.monotonic() + backoff
            _redis_client = None
            logger.warning(
                "Redis connection failed: %s. Caching disabled. Retrying after %.0fs.",
                exc,
                backoff,
            )
            await client.aclose()
            return None

        _redis_client = client
        _redis_disabled = None
        logger.info("Redis connection established successfully")
        return _redis_client


class CacheClient:
    """JSON cache facade that degrades to no-ops while Redis is unavailable."""

    def __init__(self, redis: RedisClient | None) -> None:
        self._redis = redis

    async def get_json(self, key: str) -> Any:
        if self._redis is None:
            return None
        try:
            payload = await self._redis.get(key)
        except Exception as exc:  # noqa: BLE001 - filtered below
            if _is_redis_connection_error(exc):
                logger.debug("Redis get failed for key %s: %s", key, exc)
                return None
            raise
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Discarding undecodable cache payload for key %s", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        if self._redis is None:
            return
        encoded = json.dumps(value, default=str)
        try:
            await self._redis.set(key, encoded, ex=ttl or _DEFAULT_TTL_SECONDS)
        except Exception as exc:  # noqa: BLE001 - filtered below
            if _is_redis_connection_error(exc):
                logger.debug("Redis set failed for key %s: %s", key, exc)
                return
            raise

    async def delete(self, *keys: str) -> None:
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as exc:  # noqa: BLE001 - filtered below
            if _is_redis_connection_error(exc):
                logger.debug("Redis delete failed: %s", exc)
                return
            raise

    async def delete_pattern(self, pattern: str) -> None:
        if self._redis is None:
            return
        try:
            async for key in self._redis.scan_iter(match=pattern):
                await self._redis.delete(key)
        except Exception as exc:  # noqa: BLE001 - filtered below
            if _is_redis_connection_error(exc):
                logger.debug("Redis delete_pattern failed for %s: %s", pattern, exc)
                return
            raise


async def get_cache_client() -> CacheClient:
    redis = await get_redis()
    return CacheClient(redis)


async def close_redis() -> None:
    """Close the global Redis connection gracefully and clear any cool-down."""
    global _redis_client, _redis_disabled
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
    _redis_disabled = None


__all__ = [
    "CacheClient",
    "close_redis",
    "favorite_ids_key",
    "favorite_products_key",
    "favorite_products_pattern",
    "get_cache_client",
    "get_redis",
]
