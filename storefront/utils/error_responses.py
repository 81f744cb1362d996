"""Builders for the structured error payloads used by the exception handlers.

Every payload gets the active request id and a timezone-aware timestamp, so
handlers only describe the failure itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from storefront.schemas.error import (
    ErrorResponse,
    ErrorType,
    ValidationErrorDetail,
    ValidationErrorResponse,
)
from storefront.utils.request_context import get_request_id

__all__ = [
    "build_error_response",
    "build_validation_error_response",
    "validation_details_from_errors",
]


def _current_timestamp() -> datetime:
    # Separate hook so tests can pin the clock.
    return datetime.now(UTC)


def validation_details_from_errors(
    errors: Iterable[dict[str, Any]],
) -> list[ValidationErrorDetail]:
    """Flatten pydantic/FastAPI error dicts into :class:`ValidationErrorDetail`."""

    details: list[ValidationErrorDetail] = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()))
        details.append(
            ValidationErrorDetail(
                field=location or "body",
                message=str(error.get("msg", "Invalid value")),
                value=error.get("input"),
            )
        )
    return details


def build_validation_error_response(
    *,
    errors: Sequence[ValidationErrorDetail],
    message: str,
    detail: str,
    status_code: int,
    path: str,
    error_type: ErrorType = ErrorType.VALIDATION_ERROR,
    request_id: str | None = None,
) -> ValidationErrorResponse:
    """Return a ``ValidationErrorResponse`` stamped with request metadata."""

    return ValidationErrorResponse(
        error_type=error_type,
        message=message,
        detail=detail,
        status_code=status_code,
        timestamp=_current_timestamp(),
        request_id=request_id or get_request_id() or None,
        path=path,
        errors=list(errors),
    )


def build_error_response(
    *,
    error_type: ErrorType,
    message: str,
    detail: str | None,
    status_code: int,
    path: str,
    retry_after: int | None = None,
    request_id: str | None = None,
) -> ErrorResponse:
    """Return an ``ErrorResponse`` stamped with request metadata."""

    return ErrorResponse(
        error_type=error_type,
        message=message,
        detail=detail,
        status_code=status_code,
        timestamp=_current_timestamp(),
        request_id=request_id or get_request_id() or None,
        path=path,
        retry_after=retry_after,
    )
