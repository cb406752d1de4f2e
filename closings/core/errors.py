"""Domain exceptions and the standard error envelope for all API endpoints."""
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import sentry_sdk
import structlog
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    """Standard error envelope returned by all API error handlers."""
    error: str
    message: str
    detail: Any = None
    request_id: str = "unknown"


# ── Domain exceptions ─────────────────────────────────────────────────────────


class ClosingsError(Exception):
    """Base for errors surfaced by the transaction lifecycle core."""

    error: str = "closings_error"
    status_code: int = 400

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class AuthorizationError(ClosingsError):
    error = "authorization_error"
    status_code = 403


class NotFoundError(ClosingsError):
    error = "not_found"
    status_code = 404


class InvalidAssignmentError(ClosingsError):
    error = "invalid_assignment"
    status_code = 422


class InvalidTransitionError(ClosingsError):
    error = "invalid_transition"
    status_code = 409


class StoreUnavailableError(ClosingsError):
    error = "store_unavailable"
    status_code = 503


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise any SQLAlchemy failure inside the block as StoreUnavailableError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("store_operation_failed", operation=operation, error_type=type(exc).__name__)
        raise StoreUnavailableError(f"Record store unavailable during {operation}") from exc


# ── Handlers ──────────────────────────────────────────────────────────────────


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", "unknown")


async def closings_exception_handler(request: Request, exc: ClosingsError) -> JSONResponse:
    """Render domain errors into the standard envelope."""
    request_id = _request_id(request)
    logger.info(
        "domain_error",
        error=exc.error,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.error,
            message=exc.message,
            detail=exc.detail,
            request_id=request_id,
        ).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch unhandled exceptions and return a consistent JSON envelope."""
    request_id = _request_id(request)

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        request_id=request_id,
    )

    sentry_sdk.capture_exception(exc)

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Our team has been notified.",
            "request_id": request_id,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Standardize HTTPException responses into the same JSON envelope."""
    request_id = _request_id(request)

    if isinstance(exc.detail, dict):
        error = exc.detail.get("error", f"http_{exc.status_code}")
        message = exc.detail.get("message", str(exc.detail))
        detail: Any = exc.detail.get("detail")
    else:
        error = f"http_{exc.status_code}"
        message = str(exc.detail)
        detail = exc.detail

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": error,
            "message": message,
            "detail": detail,
            "request_id": request_id,
        },
        headers=dict(exc.headers or {}),
    )
