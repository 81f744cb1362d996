"""Exception hierarchy for favorites synchronisation failures."""

from __future__ import annotations


class FavoritesSyncError(Exception):
    """Base exception for favorites API and sync failures."""


class SyncTransportError(FavoritesSyncError):
    """Network failure, timeout or server-side (5xx) error; retryable."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AuthenticationRequiredError(FavoritesSyncError):
    """Server answered 401; sync waits for the next identity transition."""


class FavoriteRejectedError(FavoritesSyncError):
    """Server rejected the request (4xx other than 401); not retried."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


__all__ = [
    "AuthenticationRequiredError",
    "FavoriteRejectedError",
    "FavoritesSyncError",
    "SyncTransportError",
]
