"""HTTP client for the favorites API consumed by the sync engine."""

from __future__ import annotations

import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from storefront.client.errors import (
    AuthenticationRequiredError,
    FavoriteRejectedError,
    SyncTransportError,
)

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


class FavoritesApi(Protocol):
    """Remote favorites membership, one call per operation."""

    async def list_ids(self, user_id: str) -> list[str]: ...

    async def add(self, user_id: str, product_id: str) -> None: ...

    async def remove(self, user_id: str, product_id: str) -> None: ...


class FavoritesApiClient:
    """``httpx`` implementation of :class:`FavoritesApi`.

    Failures are translated into :mod:`storefront.client.errors`:
    transport problems and 5xx become :class:`SyncTransportError`, 401 becomes
    :class:`AuthenticationRequiredError` and any other 4xx becomes
    :class:`FavoriteRejectedError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._base_url = base_url.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        user_id: str,
        *,
        ok: tuple[int, ...],
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method, self._url(path), headers={USER_ID_HEADER: user_id}
            )
        except httpx.HTTPError as exc:
            raise SyncTransportError(
                f"{method} {path} failed: {exc.__class__.__name__}: {exc}",
                endpoint=path,
            ) from exc

        status = response.status_code
        if status in ok:
            return response
        if status == 401:
            raise AuthenticationRequiredError(f"{method} {path} requires authentication")
        if 400 <= status < 500:
            raise FavoriteRejectedError(
                f"{method} {path} rejected with HTTP {status}: {response.text[:200]}",
                status_code=status,
                endpoint=path,
            )
        raise SyncTransportError(
            f"{method} {path} failed with HTTP {status}",
            status_code=status,
            endpoint=path,
        )

    async def list_ids(self, user_id: str) -> list[str]:
        response = await self._request("GET", "/favorites", user_id, ok=(200,))
        try:
            payload = response.json()
            ids = payload["product_ids"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SyncTransportError(
                "GET /favorites returned an invalid payload",
                status_code=response.status_code,
                endpoint="/favorites",
            ) from exc
        if not isinstance(ids, list):
            raise SyncTransportError(
                "GET /favorites returned a non-list product_ids",
                status_code=response.status_code,
                endpoint="/favorites",
            )
        return [str(item) for item in ids]

    async def add(self, user_id: str, product_id: str) -> None:
        path = f"/favorites/{quote(product_id, safe='')}"
        await self._request("POST", path, user_id, ok=(200, 201))

    async def remove(self, user_id: str, product_id: str) -> None:
        path = f"/favorites/{quote(product_id, safe='')}"
        await self._request("DELETE", path, user_id, ok=(200, 204))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> FavoritesApiClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["FavoritesApi", "FavoritesApiClient", "USER_ID_HEADER"]
