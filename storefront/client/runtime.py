"""Composition root for one isolated client core.

Each :class:`ClientCore` owns its storage, stores, session and sync engine;
nothing here is a module-level singleton, so several cores (tests, multiple
profiles) can live in one process.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from storefront.client.api_client import FavoritesApi, FavoritesApiClient
from storefront.client.favorites_store import LocalSetStore, create_favorites_store
from storefront.client.preferences import (
    LocalScalarStore,
    create_color_store,
    create_theme_store,
)
from storefront.client.session import SessionProvider, SessionState
from storefront.client.storage import FilePersistentStore, PersistentStore
from storefront.client.sync import SyncEngine, SyncWarning
from storefront.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class ClientCore:
    storage: PersistentStore
    favorites: LocalSetStore
    color: LocalScalarStore
    theme: LocalScalarStore
    session: SessionProvider
    api: FavoritesApi
    sync: SyncEngine

    async def start(self) -> None:
        await self.sync.start()

    async def aclose(self) -> None:
        """Stop syncing, flush pending writes and release the HTTP client."""

        await self.sync.close()
        for store in (self.favorites, self.color, self.theme):
            await store.flush()
        close = getattr(self.api, "aclose", None)
        if close is not None:
            await close()


def _log_warning(warning: SyncWarning) -> None:
    logger.debug("Sync warning recorded for %s: %s", warning.identity, warning.message)


def create_client_core(
    settings: AppSettings | None = None,
    *,
    storage: PersistentStore | None = None,
    api: FavoritesApi | None = None,
    session: SessionProvider | None = None,
) -> ClientCore:
    """Wire a client core from settings, overriding any collaborator."""

    settings = settings or get_settings()
    storage = storage or FilePersistentStore(settings.client_storage_dir)
    api = api or FavoritesApiClient(settings.api_base_url)
    session = session or SessionState()

    favorites = create_favorites_store(storage)
    sync = SyncEngine(
        favorites,
        api,
        session,
        max_attempts=settings.sync_max_attempts,
        backoff_base_seconds=settings.sync_backoff_base_seconds,
        backoff_max_seconds=settings.sync_backoff_max_seconds,
        on_warning=_log_warning,
    )
    return ClientCore(
        storage=storage,
        favorites=favorites,
        color=create_color_store(storage),
        theme=create_theme_store(storage),
        session=session,
        api=api,
        sync=sync,
    )


__all__ = ["ClientCore", "create_client_core"]
