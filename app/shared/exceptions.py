"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from app.core.database import is_lock_contention

logger = logging.getLogger(__name__)

LOCK_CONTENTION_MESSAGE = "Slot is busy, please retry"


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationException(AppException):
    """Raised when request fields are missing or malformed."""

    status_code = 400
    code = "validation_error"


class UnauthenticatedException(AppException):
    """Raised when caller identity cannot be established."""

    status_code = 401
    code = "unauthenticated"


class ForbiddenException(AppException):
    """Raised when caller role has no rights for operation."""

    status_code = 403
    code = "forbidden"


class NotFoundException(AppException):
    """Raised when entity is not found or not owned by the caller."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when entity conflicts with current state."""

    status_code = 409
    code = "conflict"


class HoldExpiredException(ConflictException):
    """Raised when a hold cannot be confirmed (lapsed or unknown)."""

    code = "hold_expired"


def error_body(message: str, code: str) -> dict[str, object]:
    return {"success": False, "message": message, "code": code, "data": None}


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code))


async def request_validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies and query params as 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    return JSONResponse(status_code=400, content=error_body(message, ValidationException.code))


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), "http_error"),
    )


async def database_exception_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """Report lock contention as a retryable conflict."""
    if is_lock_contention(exc):
        return JSONResponse(
            status_code=ConflictException.status_code,
            content=error_body(LOCK_CONTENTION_MESSAGE, ConflictException.code),
        )
    return await unhandled_exception_handler(request, exc)


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(status_code=500, content=error_body("Internal error", "internal_error"))


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(DBAPIError, database_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
