"""Versioned, migratable persistence for a single piece of client state.

Every persisted value is wrapped in an envelope ``{"version": n, "state": ...}``.
On load the controller:

* returns the model default when nothing is stored;
* validates the state when the version is current;
* runs the migration chain ``migrations[v]`` for every ``v`` from the stored
  version up to ``version - 1`` and writes the migrated envelope back;
* otherwise (bad JSON, bad envelope, unknown or newer version, failed
  migration or validation) removes the key and returns the default.

Loading never raises. Saving updates memory synchronously and flushes to the
:class:`~storefront.client.storage.PersistentStore` from a background task.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Generic, TypeVar

from pydantic import BaseModel, Field, StrictInt

from storefront.client.storage import PersistentStore

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", bound=BaseModel)

Migration = Callable[[Any], Any]


class UnrecognizedStateError(ValueError):
    """Raised by migrations or checks when persisted state cannot be mapped."""


class StoredEnvelope(BaseModel):
    version: StrictInt = Field(..., ge=0)
    state: Any = None


class VersionedStoreController(Generic[StateT]):
    """Load, migrate and persist one pydantic model under ``key``."""

    def __init__(
        self,
        store: PersistentStore,
        key: str,
        *,
        model: type[StateT],
        version: int,
        migrations: dict[int, Migration] | None = None,
        check: Callable[[StateT], None] | None = None,
    ) -> None:
        if version < 0:
            raise ValueError("version must be >= 0")
        self._store = store
        self._key = key
        self._model = model
        self._version = version
        self._migrations = dict(migrations or {})
        self._check = check
        self._state: StateT | None = None
        self._generation = 0
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def key(self) -> str:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    @property
    def hydrated(self) -> bool:
        return self._state is not None

    def load(self) -> StateT:
        """Return the in-memory state, reading persisted state on first call."""

        if self._state is None:
            self._state = self._read()
        return self._state

    def save(self, state: StateT) -> None:
        """Replace the in-memory state and schedule a durable flush."""

        self._state = state
        self._generation += 1
        generation = self._generation
        payload = self._encode(state)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(payload)
            return
        task = loop.create_task(self._flush_async(generation, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for every scheduled flush to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _flush_async(self, generation: int, payload: str) -> None:
        # A newer save already queued its own flush.
        if generation != self._generation:
            return
        self._write(payload)

    def _encode(self, state: StateT) -> str:
        envelope = StoredEnvelope(version=self._version, state=state.model_dump(mode="json"))
        return envelope.model_dump_json()

    def _write(self, payload: str) -> None:
        try:
            self._store.set(self._key, payload)
        except Exception:  # noqa: BLE001 - persistence must not break callers
            logger.warning("Failed to persist %s", self._key, exc_info=True)

    def _discard(self, reason: str) -> StateT:
        logger.info("Discarding persisted %s: %s", self._key, reason)
        try:
            self._store.remove(self._key)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to remove persisted %s", self._key, exc_info=True)
        return self._model()

    def _read(self) -> StateT:
        try:
            raw = self._store.get(self._key)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to read persisted %s", self._key, exc_info=True)
            return self._model()
        if raw is None:
            return self._model()

        try:
            envelope = StoredEnvelope.model_validate(json.loads(raw))
        except (ValueError, TypeError, RecursionError) as exc:
            return self._discard(f"malformed envelope ({exc.__class__.__name__})")

        stored_version = envelope.version
        if stored_version > self._version:
            return self._discard(f"unknown version {stored_version}")

        state = envelope.state
        try:
            for step in range(stored_version, self._version):
                migration = self._migrations.get(step)
                if migration is None:
                    return self._discard(f"no migration from version {step}")
                state = migration(state)
            model = self._model.model_validate(state)
            if self._check is not None:
                self._check(model)
        except (ValueError, TypeError, KeyError, AttributeError, RecursionError) as exc:
            # ValidationError and UnrecognizedStateError are ValueErrors.
            return self._discard(f"unrecognized state ({exc})")

        if stored_version != self._version:
            logger.info(
                "Migrated persisted %s from version %s to %s",
                self._key,
                stored_version,
                self._version,
            )
            self._write(self._encode(model))
        return model


__all__ = [
    "Migration",
    "StoredEnvelope",
    "UnrecognizedStateError",
    "VersionedStoreController",
]
