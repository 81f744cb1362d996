"""Request-scoped identifier shared by middleware, handlers and log records."""

from __future__ import annotations

import uuid
from contextvars import ContextVar, Token

__all__ = [
    "REQUEST_ID_CONTEXT",
    "REQUEST_ID_HEADER",
    "clear_request_id",
    "get_request_id",
    "new_request_id",
    "set_request_id",
]

REQUEST_ID_HEADER = "X-Request-ID"

# Each request handler runs in its own task so the ContextVar isolates ids
# between concurrent requests.
REQUEST_ID_CONTEXT: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    """Return a fresh random request identifier."""

    return str(uuid.uuid4())


def set_request_id(request_id: str) -> Token[str]:
    """Bind ``request_id`` to the active context and return the reset token."""

    return REQUEST_ID_CONTEXT.set(request_id)


def get_request_id() -> str:
    """Return the identifier for the active request, or ``""`` outside one."""

    return REQUEST_ID_CONTEXT.get()


def clear_request_id(token: Token[str] | None = None) -> None:
    """Restore the previous identifier when ``token`` is given, else blank it."""

    if token is not None:
        REQUEST_ID_CONTEXT.reset(token)
    else:
        REQUEST_ID_CONTEXT.set("")
