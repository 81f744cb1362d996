import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import (
    DatabaseError,
    DBAPIError,
    IntegrityError,
    OperationalError,
)
from sqlalchemy.exc import (
    TimeoutError as SQLAlchemyTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncEngine

from storefront.cache import close_redis
from storefront.db.connection import dispose_engine, init_models
from storefront.db.connection import (
    get_database_type as _connection_get_database_type,
)
from storefront.db.connection import (
    get_database_url as _connection_get_database_url,
)
from storefront.db.connection import (
    get_engine as _connection_get_engine,
)
from storefront.settings import get_settings

from .api import favorites
from .schemas.error import ErrorType
from .utils.error_responses import (
    build_error_response,
    build_validation_error_response,
    validation_details_from_errors,
)
from .utils.request_context import (
    REQUEST_ID_HEADER,
    clear_request_id,
    get_request_id,
    new_request_id,
    set_request_id,
)

logging.basicConfig(
    level=get_settings().log_level_numeric,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def validate_environment() -> None:
    """Log a banner listing optional configuration that is still unset."""

    warnings = get_settings().optional_config_warnings()
    if not warnings:
        return
    logger.warning("=" * 60)
    logger.warning("Environment Configuration Warnings:")
    for warning in warnings:
        logger.warning("  - %s", warning)
    logger.warning("=" * 60)


def _sanitize_database_url(url: str) -> str:
    """Mask the password component of ``url`` for log output."""
    if "://" not in url:
        return url

    scheme, rest = url.split("://", 1)
    if "@" not in rest:
        return url

    auth, host_db = rest.split("@", 1)
    if ":" in auth:
        user, _ = auth.split(":", 1)
        return f"{scheme}://{user}:***@{host_db}"
    return f"{scheme}://{auth}@{host_db}"


# Module-level proxies so tests can patch ``storefront.main.get_engine`` and
# friends without touching the connection module.
def get_database_type() -> str:
    return _connection_get_database_type()


def get_database_url() -> str:
    return _connection_get_database_url()


def get_engine() -> AsyncEngine:
    return _connection_get_engine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup preflight (config warnings, database, schema) and shutdown cleanup."""
    validate_environment()

    db_type = get_database_type()
    logger.info("=" * 60)
    logger.info("Storefront API - Database Preflight Check")
    logger.info("=" * 60)
    logger.info("Database Type: %s", db_type.upper())
    logger.info("Database URL: %s", _sanitize_database_url(get_database_url()))
    logger.info("=" * 60)

    await init_models(get_engine())

    yield

    logger.info("Shutting down Storefront API")
    await close_redis()
    await dispose_engine()


app = FastAPI(
    title="Storefront Favorites API",
    version="0.1.0",
    description="Per-user favorites membership backing the local-first storefront client.",
    lifespan=lifespan,
    redirect_slashes=False,
)


def _default_origins() -> list[str]:
    origins: list[str] = []
    for host in ("localhost", "127.0.0.1"):
        origins.extend(f"http://{host}:{port}" for port in (3000, 5173))
        origins.append(f"http://{host}")
    return origins


def _combine_origins(*origin_groups: list[str]) -> list[str]:
    """Merge origins preserving order and removing duplicates."""
    seen: set[str] = set()
    combined: list[str] = []
    for group in origin_groups:
        for origin in group:
            normalized = origin.rstrip("/")
            if normalized and normalized not in seen:
                seen.add(normalized)
                combined.append(normalized)
    return combined


allow_origins = _combine_origins(_default_origins(), get_settings().cors_allow_origins)
logger.info("Configured CORS allow_origins: %s", ", ".join(allow_origins))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Tag each request with an id, honouring one supplied by the caller."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def _json_error(payload) -> JSONResponse:
    return JSONResponse(
        status_code=payload.status_code,
        content=payload.model_dump(mode="json"),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle FastAPI request validation errors."""
    errors = validation_details_from_errors(exc.errors())
    logger.warning(
        "Validation error for request %s to %s: %s errors",
        get_request_id(),
        request.url.path,
        len(errors),
    )
    return _json_error(
        build_validation_error_response(
            message="Request validation failed",
            detail=f"{len(errors)} validation error(s)",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            path=str(request.url.path),
            errors=errors,
        )
    )


@app.exception_handler(ValidationError)
async def pydantic_validation_exception_handler(request: Request, exc: ValidationError):
    """Handle pydantic validation errors raised inside handlers."""
    errors = validation_details_from_errors(exc.errors())
    logger.warning(
        "Pydantic validation error for request %s to %s: %s errors",
        get_request_id(),
        request.url.path,
        len(errors),
    )
    return _json_error(
        build_validation_error_response(
            message="Data validation failed",
            detail=f"{len(errors)} validation error(s)",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            path=str(request.url.path),
            errors=errors,
        )
    )


@app.exception_handler(OperationalError)
@app.exception_handler(DBAPIError)
async def database_connection_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Database connection error for request %s to %s: %s",
        get_request_id(),
        request.url.path,
        exc,
    )
    return _json_error(
        build_error_response(
            error_type=ErrorType.DATABASE_ERROR,
            message="Database connection failed",
            detail="Unable to reach the database. Please try again later.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            path=str(request.url.path),
            retry_after=5,
        )
    )


@app.exception_handler(SQLAlchemyTimeoutError)
async def database_timeout_exception_handler(request: Request, exc: SQLAlchemyTimeoutError):
    logger.error(
        "Database timeout for request %s to %s: %s",
        get_request_id(),
        request.url.path,
        exc,
    )
    return _json_error(
        build_error_response(
            error_type=ErrorType.SERVICE_UNAVAILABLE,
            message="Database query timeout",
            detail="The database did not answer in time. Please try again.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            path=str(request.url.path),
            retry_after=3,
        )
    )


@app.exception_handler(IntegrityError)
async def database_integrity_exception_handler(request: Request, exc: IntegrityError):
    logger.error(
        "Database integrity error for request %s to %s: %s",
        get_request_id(),
        request.url.path,
        exc,
    )
    return _json_error(
        build_error_response(
            error_type=ErrorType.CONFLICT,
            message="Data integrity constraint violation",
            detail="The operation would violate a database constraint.",
            status_code=status.HTTP_409_CONFLICT,
            path=str(request.url.path),
        )
    )


@app.exception_handler(DatabaseError)
async def database_generic_exception_handler(request: Request, exc: DatabaseError):
    logger.error(
        "Database error for request %s to %s: %s",
        get_request_id(),
        request.url.path,
        exc,
    )
    return _json_error(
        build_error_response(
            error_type=ErrorType.DATABASE_ERROR,
            message="Database operation failed",
            detail="An error occurred while accessing the database.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            path=str(request.url.path),
            retry_after=3,
        )
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other unhandled exceptions."""
    logger.exception(
        "Unhandled exception for request %s to %s: %s",
        get_request_id(),
        request.url.path,
        type(exc).__name__,
    )
    return _json_error(
        build_error_response(
            error_type=ErrorType.INTERNAL_ERROR,
            message="Internal server error",
            detail=f"An unexpected error occurred: {type(exc).__name__}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            path=str(request.url.path),
            retry_after=5,
        )
    )


@app.get("/health", tags=["system"])
async def healthcheck() -> dict[str, str]:
    """Simple health endpoint for readiness checks."""
    return {"status": "ok"}


app.include_router(favorites.router, prefix="/favorites", tags=["favorites"])
