"""Structured error payloads returned by every storefront API handler."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorType(str, Enum):
    """Categories of failures surfaced to API consumers."""

    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DATABASE_ERROR = "database_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INTERNAL_ERROR = "internal_error"
    AUTHENTICATION_ERROR = "authentication_error"
    AUTHORIZATION_ERROR = "authorization_error"


class ErrorResponse(BaseModel):
    """Uniform error envelope shared by all exception handlers."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error_type": "not_found",
                "message": "Product not found",
                "detail": "No product with id 'p-404' exists",
                "status_code": 404,
                "timestamp": "2026-03-14T09:12:00Z",
                "request_id": "6f0c9d1e-1d55-4c89-9a2b-7d7f4c0b8a11",
                "path": "/favorites/p-404",
                "retry_after": None,
            }
        }
    )

    error_type: ErrorType = Field(..., description="Category of error")
    message: str = Field(..., description="Human-readable error message")
    detail: str | None = Field(None, description="Additional context for the failure")
    status_code: int = Field(..., description="HTTP status code")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the error occurred"
    )
    request_id: str | None = Field(None, description="Identifier echoed in X-Request-ID")
    path: str | None = Field(None, description="Request path that produced the error")
    retry_after: int | None = Field(
        None, description="Seconds a client should wait before retrying"
    )


class ValidationErrorDetail(BaseModel):
    """One failed field inside a validation error payload."""

    field: str = Field(..., description="Dotted location of the offending field")
    message: str = Field(..., description="Validation error message")
    value: Any = Field(None, description="Value that failed validation")


class ValidationErrorResponse(ErrorResponse):
    """Error envelope carrying per-field validation failures."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error_type": "validation_error",
                "message": "Request validation failed",
                "detail": "1 validation error(s) occurred",
                "status_code": 422,
                "timestamp": "2026-03-14T09:12:00Z",
                "request_id": "6f0c9d1e-1d55-4c89-9a2b-7d7f4c0b8a11",
                "path": "/favorites/products",
                "errors": [
                    {"field": "query.limit", "message": "Input should be less than or equal to 50", "value": 80},
                ],
            }
        }
    )

    error_type: ErrorType = Field(default=ErrorType.VALIDATION_ERROR)
    errors: list[ValidationErrorDetail] = Field(
        default_factory=list, description="List of validation errors"
    )
