"""
API error types and the exception handlers that render them.

Every failure leaves the API in the same envelope:

    {"success": false, "message": "...", "error": {"code": "...", "details": ...}}

Routes and dependencies raise the ApiError subclasses below; FastAPI's own
validation errors, database integrity errors and unexpected exceptions are
translated by the handlers registered in register_exception_handlers().
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from starter.config import settings
from starter.core.logging import get_logger

logger = get_logger(__name__)


class ErrorCode:
    """Machine-readable error codes returned in error.code"""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    DUPLICATE_ERROR = "DUPLICATE_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.headers = headers


class AuthenticationError(ApiError):
    """Missing, invalid or expired credential. Message stays generic."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.AUTHENTICATION_ERROR

    def __init__(self, message: str = "Authentication required", details: Any = None) -> None:
        super().__init__(message, details, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.AUTHORIZATION_ERROR


class ValidationError(ApiError):
    status_code = 422
    code = ErrorCode.VALIDATION_ERROR


class DuplicateError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.DUPLICATE_ERROR


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND_ERROR


class RateLimitError(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = ErrorCode.RATE_LIMIT_ERROR


def error_body(message: str, code: str, details: Any = None) -> dict[str, Any]:
    """Build the JSON error envelope."""
    error: dict[str, Any] = {"code": code}
    if details is not None:
        error["details"] = details
    return {"success": False, "message": message, "error": error}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render an ApiError raised anywhere in the request."""
    logger.warning(
        "client_error",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.message, exc.code, exc.details)),
        headers=exc.headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render FastAPI/Pydantic request validation failures as VALIDATION_ERROR."""
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        fields=[d["field"] for d in details],
    )
    return JSONResponse(
        status_code=422,
        content=error_body("Validation failed", ErrorCode.VALIDATION_ERROR, details),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Unique constraint races (e.g. two registrations for one email) become 409."""
    logger.warning("integrity_error", path=request.url.path, error=str(exc.__cause__ or exc))
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Resource already exists", ErrorCode.DUPLICATE_ERROR),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with traceback, hide details unless DEBUG."""
    logger.error(
        "server_error",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    details = {"type": type(exc).__name__, "error": str(exc)} if settings.DEBUG else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", ErrorCode.INTERNAL_ERROR, details),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all error handlers to the application."""
    # Starlette types every handler as taking Exception
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
