"""Exception handlers turning scheduling errors into JSON responses."""

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hospital_scheduling.core.exceptions import AppException

logger = structlog.get_logger(__name__)


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: Any,
    **extra: Any,
) -> JSONResponse:
    """Build the common error body: error name, message and request path."""
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, **extra, "path": str(request.url)},
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle scheduling rule failures.

    Args:
        request: Request object
        exc: Application exception carrying its HTTP status

    Returns:
        JSON error response named after the exception class
    """
    logger.info(
        "request_rejected",
        error=exc.__class__.__name__,
        reason=exc.message,
        status_code=exc.status_code,
    )
    return error_response(request, exc.status_code, exc.__class__.__name__, exc.message)


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions (unknown routes, wrong methods)."""
    return error_response(request, exc.status_code, "HTTPException", exc.detail)


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle malformed request bodies and query parameters."""
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details=details,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("unhandled_exception", error=str(exc), exc_info=exc)
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler in this module to the application."""
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)
