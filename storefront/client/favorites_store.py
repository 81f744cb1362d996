"""Client-resident favorites set, persisted under ``favoritesStore``.

The set is the UI's source of truth: every mutation is applied synchronously
and persisted, and the sync engine reconciles with the server afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator

from storefront.client.storage import PersistentStore
from storefront.client.versioned import UnrecognizedStateError, VersionedStoreController

logger = logging.getLogger(__name__)

FAVORITES_STORE_KEY = "favoritesStore"
FAVORITES_STORE_VERSION = 1

_KEEP_OWNER: Any = object()


def validate_product_id(product_id: Any) -> str:
    """Return ``product_id`` unchanged or raise :class:`ValueError`.

    Ids travel as a single URL path segment, so ``/`` is rejected.
    """

    if not isinstance(product_id, str) or not product_id.strip() or "/" in product_id:
        raise ValueError(f"Invalid product id: {product_id!r}")
    return product_id


class FavoritesSnapshot(BaseModel):
    """Persisted favorites state (current version)."""

    ids: list[str] = Field(default_factory=list)
    owner: str | None = None

    @field_validator("ids")
    @classmethod
    def _dedupe_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(validate_product_id(item) for item in value))


def _migrate_v0(state: Any) -> dict[str, Any]:
    """Legacy store persisted ``ids`` with ``currentUserId``/``loaded``/``loading``."""

    if not isinstance(state, dict) or not isinstance(state.get("ids"), list):
        raise UnrecognizedStateError("legacy favorites state has no id list")
    owner = state.get("currentUserId")
    return {"ids": state["ids"], "owner": owner if isinstance(owner, str) and owner else None}


@dataclass(frozen=True)
class FavoriteChange:
    product_id: str
    present: bool
    revision: int


@dataclass(frozen=True, eq=False)
class SetSnapshot:
    """Point-in-time copy of the set; mutations after it are journaled."""

    ids: tuple[str, ...]
    revision: int


ChangeListener = Callable[[FavoriteChange], None]


class LocalSetStore:
    """Ordered, persisted set of favorited product ids."""

    def __init__(self, controller: VersionedStoreController[FavoritesSnapshot]) -> None:
        self._controller = controller
        self._ids: dict[str, None] = {}
        self._owner: str | None = None
        self._loaded = False
        self._revision = 0
        self._open_snapshots: list[SetSnapshot] = []
        self._journal: list[FavoriteChange] = []
        self._listeners: list[ChangeListener] = []

    # -- reads --------------------------------------------------------------

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._ids)

    @property
    def owner(self) -> str | None:
        return self._owner

    @property
    def revision(self) -> int:
        return self._revision

    def hydrate(self) -> None:
        """Load persisted favorites once; later calls are no-ops."""

        if self._loaded:
            return
        state = self._controller.load()
        self._ids = dict.fromkeys(state.ids)
        self._owner = state.owner
        self._loaded = True
        logger.debug("Hydrated %s favorites (owner=%s)", len(self._ids), self._owner)

    def contains(self, product_id: str) -> bool:
        return self._loaded and product_id in self._ids

    def membership(self, product_id: str) -> bool | None:
        """``None`` until hydrated, then whether ``product_id`` is a favorite."""

        if not self._loaded:
            return None
        return product_id in self._ids

    # -- mutations ----------------------------------------------------------

    def toggle(self, product_id: str) -> bool:
        """Flip membership of ``product_id`` and return the new membership."""

        validate_product_id(product_id)
        self.hydrate()
        present = product_id not in self._ids
        self._apply(product_id, present)
        return present

    def add(self, product_id: str) -> bool:
        validate_product_id(product_id)
        self.hydrate()
        if product_id in self._ids:
            return False
        self._apply(product_id, True)
        return True

    def remove(self, product_id: str) -> bool:
        validate_product_id(product_id)
        self.hydrate()
        if product_id not in self._ids:
            return False
        self._apply(product_id, False)
        return True

    def _apply(self, product_id: str, present: bool) -> None:
        if present:
            self._ids[product_id] = None
        else:
            self._ids.pop(product_id, None)
        self._revision += 1
        change = FavoriteChange(product_id=product_id, present=present, revision=self._revision)
        if self._open_snapshots:
            self._journal.append(change)
        self._persist()
        self._notify(change)

    def snapshot(self) -> SetSnapshot:
        """Capture the current ids and start journaling later mutations."""

        self.hydrate()
        snap = SetSnapshot(ids=self.ids, revision=self._revision)
        self._open_snapshots.append(snap)
        return snap

    def release(self, snapshot: SetSnapshot) -> None:
        """Stop journaling on behalf of ``snapshot``; unknown snapshots are ignored."""

        self._open_snapshots = [snap for snap in self._open_snapshots if snap is not snapshot]
        if not self._open_snapshots:
            self._journal.clear()
            return
        oldest = min(snap.revision for snap in self._open_snapshots)
        self._journal = [change for change in self._journal if change.revision > oldest]

    def replace_all(
        self,
        ids: Iterable[str],
        *,
        since: SetSnapshot | None = None,
        owner: str | None = _KEEP_OWNER,
    ) -> tuple[str, ...]:
        """Install ``ids`` as the whole set.

        With ``since``, mutations made after that snapshot are re-applied on top
        of ``ids`` so they are not lost to the replacement.
        """

        merged = dict.fromkeys(validate_product_id(item) for item in ids)
        self.hydrate()
        if since is not None:
            if not any(snap is since for snap in self._open_snapshots):
                raise ValueError("Snapshot is no longer open")
            for change in self._journal:
                if change.revision <= since.revision:
                    continue
                if change.present:
                    merged[change.product_id] = None
                else:
                    merged.pop(change.product_id, None)
        self._ids = merged
        if owner is not _KEEP_OWNER:
            self._owner = owner
        self._revision += 1
        self._persist()
        return self.ids

    def clear(self, *, owner: str | None = None) -> None:
        """Empty the set (identity switch); open snapshots are dropped."""

        self.hydrate()
        self._ids = {}
        self._owner = owner
        self._revision += 1
        self._open_snapshots.clear()
        self._journal.clear()
        self._persist()

    # -- subscriptions ------------------------------------------------------

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: FavoriteChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # noqa: BLE001 - one listener must not block others
                logger.exception("Favorites change listener failed for %s", change.product_id)

    def _persist(self) -> None:
        self._controller.save(FavoritesSnapshot(ids=list(self._ids), owner=self._owner))

    async def flush(self) -> None:
        await self._controller.flush()


def create_favorites_store(store: PersistentStore) -> LocalSetStore:
    controller = VersionedStoreController(
        store,
        FAVORITES_STORE_KEY,
        model=FavoritesSnapshot,
        version=FAVORITES_STORE_VERSION,
        migrations={0: _migrate_v0},
    )
    return LocalSetStore(controller)


__all__ = [
    "FAVORITES_STORE_KEY",
    "FAVORITES_STORE_VERSION",
    "FavoriteChange",
    "FavoritesSnapshot",
    "LocalSetStore",
    "SetSnapshot",
    "create_favorites_store",
    "validate_product_id",
]
