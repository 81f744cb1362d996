"""Tests asserting ``storefront.main`` exception handlers build structured payloads."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

import pytest
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError
from starlette.datastructures import Headers

import storefront.main as storefront_main
from storefront.schemas.error import ErrorResponse, ErrorType
from storefront.settings import AppSettings
from storefront.utils.request_context import clear_request_id, set_request_id


def _build_request(path: str = "/resource") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "headers": Headers().raw,
    }
    return Request(scope)


@pytest.mark.asyncio
async def test_validation_handler_flattens_errors() -> None:
    token = set_request_id("req-1")
    exc = RequestValidationError(
        [{"loc": ("query", "limit"), "msg": "too large", "input": 80}]
    )
    try:
        response = await storefront_main.validation_exception_handler(
            _build_request("/favorites/products"), exc
        )
    finally:
        clear_request_id(token)

    body = json.loads(response.body.decode())
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert body["request_id"] == "req-1"
    assert body["path"] == "/favorites/products"
    assert body["errors"] == [{"field": "query.limit", "message": "too large", "value": 80}]


@pytest.mark.asyncio
async def test_database_connection_handler_uses_builder(monkeypatch) -> None:
    called: dict[str, object] = {}

    def fake_builder(**kwargs):
        called["kwargs"] = kwargs
        return ErrorResponse(
            error_type=ErrorType.DATABASE_ERROR,
            message="Database connection failed",
            detail="Unable to reach the database",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            timestamp=datetime(2026, 1, 1, tzinfo=UTC),
            request_id="req-2",
            path="/favorites",
            retry_after=5,
        )

    monkeypatch.setattr(storefront_main, "build_error_response", fake_builder)
    exc = DBAPIError("statement", {}, Exception("boom"))

    response = await storefront_main.database_connection_exception_handler(
        _build_request("/favorites"), exc
    )

    assert called["kwargs"]["path"] == "/favorites"
    assert called["kwargs"]["retry_after"] == 5
    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


@pytest.mark.asyncio
async def test_integrity_handler_reports_conflict() -> None:
    exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    response = await storefront_main.database_integrity_exception_handler(
        _build_request("/favorites/p1"), exc
    )

    body = json.loads(response.body.decode())
    assert response.status_code == status.HTTP_409_CONFLICT
    assert body["error_type"] == "conflict"


@pytest.mark.asyncio
async def test_generic_handler_hides_details(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        response = await storefront_main.generic_exception_handler(
            _build_request("/favorites"), KeyError("secret")
        )

    body = json.loads(response.body.decode())
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert body["detail"] == "An unexpected error occurred: KeyError"
    assert "secret" not in body["detail"]
    assert "Unhandled exception" in caplog.text


def test_sanitize_database_url_masks_password() -> None:
    assert (
        storefront_main._sanitize_database_url("postgresql+psycopg://app:hunter2@db:5432/shop")
        == "postgresql+psycopg://app:***@db:5432/shop"
    )
    assert storefront_main._sanitize_database_url("sqlite+aiosqlite:///./x.db") == (
        "sqlite+aiosqlite:///./x.db"
    )


def test_validate_environment_logs_optional_warnings(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)
    candidate = AppSettings()
    monkeypatch.setattr(storefront_main, "get_settings", lambda: candidate)

    with caplog.at_level(logging.WARNING):
        storefront_main.validate_environment()

    assert "REDIS_URL is not set" in caplog.text
    assert "CORS_ALLOW_ORIGINS is not set" in caplog.text
