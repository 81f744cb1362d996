"""Reconciles the local favorites set with the server for the signed-in user.

Local state always wins for the user's own recent actions: mutations are
applied to :class:`~storefront.client.favorites_store.LocalSetStore` first and
pushed afterwards, one serialised worker per product id. Every identity
transition bumps an epoch; work started under an older epoch never touches
local state or bookkeeping once it resumes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any

from storefront.client.api_client import FavoritesApi
from storefront.client.errors import (
    AuthenticationRequiredError,
    FavoriteRejectedError,
    FavoritesSyncError,
)
from storefront.client.favorites_store import FavoriteChange, LocalSetStore, SetSnapshot
from storefront.client.session import SessionProvider

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class SyncPhase(str, Enum):
    ANONYMOUS = "anonymous"
    RECONCILING = "reconciling"
    SYNCED = "synced"


@dataclass(frozen=True)
class SyncWarning:
    """Non-blocking notice that local and server state may disagree."""

    message: str
    identity: str | None
    product_id: str | None = None
    desired: bool | None = None


class SyncEngine:
    """Keeps the server's favorites converging on the local set."""

    def __init__(
        self,
        store: LocalSetStore,
        api: FavoritesApi,
        session: SessionProvider,
        *,
        max_attempts: int = 4,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_warning: Callable[[SyncWarning], None] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._store = store
        self._api = api
        self._session = session
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep
        self._on_warning = on_warning

        self._identity: Any = _UNSET
        self._epoch = 0
        self._phase = SyncPhase.ANONYMOUS
        # Last known server membership per product id for the current identity.
        self._confirmed: dict[str, bool] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        # Sequence number of the latest push attempt per product id.
        self._push_marks: dict[str, int] = {}
        self._sequence = 0
        self._reconcile_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._warnings: list[SyncWarning] = []
        self._unsynced: set[str] = set()
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None

    # -- public surface -----------------------------------------------------

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def identity(self) -> str | None:
        return None if self._identity is _UNSET else self._identity

    @property
    def warnings(self) -> tuple[SyncWarning, ...]:
        return tuple(self._warnings)

    @property
    def unsynced_ids(self) -> frozenset[str]:
        return frozenset(self._unsynced)

    async def start(self) -> None:
        """Hydrate local favorites and begin following identity transitions."""

        if self._started:
            return
        if self._closed:
            raise RuntimeError("SyncEngine is closed")
        self._started = True
        self._loop = asyncio.get_running_loop()
        self._store.hydrate()
        self._unsubscribers.append(self._store.on_change(self._on_local_change))
        self._unsubscribers.append(self._session.subscribe(self._on_session_change))
        self._on_identity_change(self._session.current_identity())

    def resync(self) -> asyncio.Task[None] | None:
        """Pull the server list again for the current identity."""

        if self._closed or not isinstance(self._identity, str):
            return None
        if self._reconcile_task is not None and not self._reconcile_task.done():
            return self._reconcile_task
        self._reconcile_task = self._spawn(self._reconcile(self._epoch, self._identity))
        return self._reconcile_task

    async def wait_idle(self) -> None:
        """Wait until no pull or push is in flight."""

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Stop following changes and cancel outstanding network work."""

        if self._closed:
            return
        self._closed = True
        self._epoch += 1
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._workers.clear()

    # -- identity -----------------------------------------------------------

    def _on_session_change(self, identity: str | None) -> None:
        """Run identity transitions on the engine's loop, whichever thread signals them."""

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop or self._loop is None:
            self._on_identity_change(identity)
        else:
            self._loop.call_soon_threadsafe(self._on_identity_change, identity)

    def _on_identity_change(self, identity: str | None) -> None:
        if self._closed or identity == self._identity:
            return
        previous = self._identity
        self._identity = identity
        self._epoch += 1
        self._confirmed = {}
        self._workers = {}
        self._push_marks = {}
        self._unsynced.clear()
        self._reconcile_task = None

        if previous is _UNSET:
            owner = self._store.owner
            if owner is not None and owner != identity:
                logger.info("Clearing favorites persisted for a different user")
                self._store.clear()
        elif previous is not None:
            self._store.clear()

        if identity is None:
            self._phase = SyncPhase.ANONYMOUS
            return
        self._phase = SyncPhase.RECONCILING
        self._reconcile_task = self._spawn(self._reconcile(self._epoch, identity))

    def _is_stale(self, epoch: int) -> bool:
        return self._closed or epoch != self._epoch

    # -- pull ---------------------------------------------------------------

    def _backoff(self, attempt: int) -> float:
        return min(self._backoff_base * (2**attempt), self._backoff_max)

    async def _reconcile(self, epoch: int, identity: str) -> None:
        attempt = 0
        while not self._is_stale(epoch):
            snapshot = self._store.snapshot()
            pull_mark = self._sequence
            # Pushes already in flight may land on either side of the listing.
            in_flight = {pid for pid, worker in self._workers.items() if not worker.done()}
            try:
                server_ids = await self._api.list_ids(identity)
            except AuthenticationRequiredError as exc:
                self._store.release(snapshot)
                if not self._is_stale(epoch):
                    self._warn(f"Favorites sync paused: {exc}")
                return
            except FavoritesSyncError as exc:
                self._store.release(snapshot)
                if self._is_stale(epoch):
                    return
                attempt += 1
                if isinstance(exc, FavoriteRejectedError) or attempt >= self._max_attempts:
                    self._warn(f"Could not load favorites from the server: {exc}")
                    return
                delay = self._backoff(attempt - 1)
                logger.warning(
                    "Favorites pull failed (attempt %s/%s): %s. Retrying in %.2fs.",
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue

            try:
                if not self._is_stale(epoch):
                    self._apply_pull(snapshot, server_ids, identity, pull_mark, in_flight)
            finally:
                self._store.release(snapshot)
            return

    def _apply_pull(
        self,
        snapshot: SetSnapshot,
        server_ids: list[str],
        identity: str,
        pull_mark: int,
        in_flight: set[str],
    ) -> None:
        server = list(dict.fromkeys(server_ids))
        server_set = set(server)
        # Ids with a push in flight, or pushed after the pull was issued, keep
        # their local membership; the server list may predate that push.
        contested = in_flight | set(self._workers) | {
            pid for pid, mark in self._push_marks.items() if mark > pull_mark
        }
        removed_remotely = {
            pid
            for pid, present in self._confirmed.items()
            if present and pid not in server_set and pid not in contested
        }

        merged = [pid for pid in snapshot.ids if pid not in removed_remotely]
        seen = set(merged)
        for pid in server:
            if pid not in seen and pid not in contested:
                merged.append(pid)
                seen.add(pid)

        local = self._store.replace_all(merged, since=snapshot, owner=identity)
        for pid in removed_remotely:
            self._confirmed[pid] = False
        for pid in server:
            if pid not in contested:
                self._confirmed[pid] = True
        self._phase = SyncPhase.SYNCED
        logger.info(
            "Favorites reconciled for %s: %s local, %s on server, %s removed remotely",
            identity,
            len(local),
            len(server),
            len(removed_remotely),
        )

        for pid in dict.fromkeys([*local, *server]):
            if self._store.contains(pid) != self._confirmed.get(pid, False):
                self._schedule_push(pid)

    # -- push ---------------------------------------------------------------

    def _on_local_change(self, change: FavoriteChange) -> None:
        if self._closed or self._phase is not SyncPhase.SYNCED:
            return
        self._schedule_push(change.product_id)

    def _schedule_push(self, product_id: str) -> None:
        worker = self._workers.get(product_id)
        if worker is not None and not worker.done():
            # The running worker re-reads local truth after its current call.
            return
        self._workers[product_id] = self._spawn(
            self._drain(product_id, self._epoch, self._identity)
        )

    async def _drain(self, product_id: str, epoch: int, identity: str) -> None:
        try:
            while not self._is_stale(epoch):
                desired = self._store.contains(product_id)
                if self._confirmed.get(product_id, False) == desired:
                    self._unsynced.discard(product_id)
                    return
                if not await self._push(product_id, desired, epoch, identity):
                    return
        finally:
            if self._workers.get(product_id) is asyncio.current_task():
                del self._workers[product_id]

    async def _push(self, product_id: str, desired: bool, epoch: int, identity: str) -> bool:
        """Send one membership change; ``False`` means stop draining this id."""

        attempt = 0
        while True:
            if self._is_stale(epoch):
                return False
            if self._store.contains(product_id) != desired:
                # Superseded locally; the caller re-reads the new desired state.
                return True
            self._sequence += 1
            self._push_marks[product_id] = self._sequence
            try:
                if desired:
                    await self._api.add(identity, product_id)
                else:
                    await self._api.remove(identity, product_id)
            except (AuthenticationRequiredError, FavoriteRejectedError) as exc:
                if not self._is_stale(epoch):
                    self._unsynced.add(product_id)
                    self._warn(
                        f"Favorite change for {product_id} was not saved: {exc}",
                        product_id=product_id,
                        desired=desired,
                    )
                return False
            except FavoritesSyncError as exc:
                if self._is_stale(epoch):
                    return False
                attempt += 1
                if attempt >= self._max_attempts:
                    self._unsynced.add(product_id)
                    self._warn(
                        f"Favorite change for {product_id} could not reach the server: {exc}",
                        product_id=product_id,
                        desired=desired,
                    )
                    return False
                delay = self._backoff(attempt - 1)
                logger.warning(
                    "Favorite push for %s failed (attempt %s/%s): %s. Retrying in %.2fs.",
                    product_id,
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                await self._sleep(delay)
                continue

            if self._is_stale(epoch):
                return False
            self._confirmed[product_id] = desired
            return True

    # -- plumbing -----------------------------------------------------------

    def _warn(
        self,
        message: str,
        *,
        product_id: str | None = None,
        desired: bool | None = None,
    ) -> None:
        warning = SyncWarning(
            message=message,
            identity=self.identity,
            product_id=product_id,
            desired=desired,
        )
        self._warnings.append(warning)
        logger.warning(message)
        if self._on_warning is not None:
            try:
                self._on_warning(warning)
            except Exception:  # noqa: BLE001 - warning sinks must not break sync
                logger.exception("Sync warning callback failed")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Favorites sync task failed", exc_info=exc)


__all__ = ["SyncEngine", "SyncPhase", "SyncWarning"]
