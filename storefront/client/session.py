"""Authenticated identity as seen by the client core."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

IdentityListener = Callable[[str | None], None]


class SessionProvider(Protocol):
    """Source of the current identity and its transitions."""

    def current_identity(self) -> str | None: ...

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]: ...


class SessionState:
    """In-process :class:`SessionProvider` driven by sign-in/sign-out calls."""

    def __init__(self, identity: str | None = None) -> None:
        if identity is not None:
            identity = self._validate(identity)
        self._identity = identity
        self._listeners: list[IdentityListener] = []

    @staticmethod
    def _validate(user_id: str) -> str:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError("user_id must be a non-empty string")
        return user_id.strip()

    def current_identity(self) -> str | None:
        return self._identity

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        self._transition(self._validate(user_id))

    def sign_out(self) -> None:
        self._transition(None)

    def _transition(self, identity: str | None) -> None:
        if identity == self._identity:
            return
        logger.info("Identity changed: %s -> %s", self._identity, identity)
        self._identity = identity
        for listener in list(self._listeners):
            listener(identity)


__all__ = ["SessionProvider", "SessionState"]
