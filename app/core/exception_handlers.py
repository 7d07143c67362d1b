"""Application-wide exception handlers.

Routes wrapped by ``connection_handler`` shape their own errors; these
handlers cover everything else (plain routes, request validation, framework
errors) so clients always receive the same error envelope:

    {"code": <ErrorKind>, "message": str, "retryAfter"?: int, "details"?: str}

Design:
- AppError subclasses → status from the fixed ErrorKind table
- Request validation failures → 400 VALIDATION_ERROR
- Unexpected Exception → generic 500 (safety net, no internals leaked)
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import (
    GENERIC_ERROR_MESSAGE,
    AppError,
    ErrorKind,
    build_error_body,
    error_body_for,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Send an AppError raised outside the connection handler as its envelope."""
    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "request_path": request.url.path,
            "request_id": get_request_id(),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=error_body_for(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed path/query/body parameters as VALIDATION_ERROR."""

    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        problems.append(f"{location}: {error.get('msg', 'invalid')}")

    logger.info(
        "request_validation_failed",
        extra={"request_path": request.url.path, "problem_count": len(problems)},
    )
    return JSONResponse(
        status_code=400,
        content=build_error_body(
            ErrorKind.VALIDATION_ERROR,
            "Request validation failed",
            details="; ".join(problems) or None,
        ),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for exceptions nothing else handled.

    Logs the failure for debugging while returning a generic message; no
    exception text or stack trace reaches the client.
    """
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
            "request_id": get_request_id(),
        },
    )
    return JSONResponse(
        status_code=500,
        content=build_error_body(ErrorKind.INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE),
    )


def setup_exception_handlers(app) -> None:
    """Register the AppError, request validation and catch-all handlers."""
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(RequestValidationError)(request_validation_handler)
    app.exception_handler(Exception)(general_exception_handler)
