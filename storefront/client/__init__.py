"""Local-first client core: persisted favorites and preferences plus server sync."""

from storefront.client.favorites_store import LocalSetStore, create_favorites_store
from storefront.client.preferences import (
    InvalidPreferenceError,
    LocalScalarStore,
    create_color_store,
    create_theme_store,
)
from storefront.client.runtime import ClientCore, create_client_core
from storefront.client.session import SessionState
from storefront.client.storage import FilePersistentStore, MemoryPersistentStore
from storefront.client.sync import SyncEngine, SyncPhase, SyncWarning

__all__ = [
    "ClientCore",
    "FilePersistentStore",
    "InvalidPreferenceError",
    "LocalScalarStore",
    "LocalSetStore",
    "MemoryPersistentStore",
    "SessionState",
    "SyncEngine",
    "SyncPhase",
    "SyncWarning",
    "create_client_core",
    "create_color_store",
    "create_theme_store",
    "create_favorites_store",
]
