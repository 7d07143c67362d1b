"""Application-level exception types.

This module defines the error taxonomy shared by services, adapters and the
HTTP layer. Every error carries an ``ErrorKind``; the mapping from kind to
HTTP status is a fixed table so response shaping never has to guess.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable error codes returned to API clients."""

    INVALID_REQUEST = "INVALID_REQUEST"
    REQUIRED_FIELD_ERROR = "REQUIRED_FIELD_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    TEMPORARILY_BLOCKED = "TEMPORARILY_BLOCKED"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.REQUIRED_FIELD_ERROR: 400,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMIT_EXCEEDED: 429,
    ErrorKind.TEMPORARILY_BLOCKED: 429,
    ErrorKind.INTERNAL_SERVER_ERROR: 500,
}

GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        message: Human-readable error message.
        details: Optional extra context for the client.
        kind: Error kind; fixed per subclass.
    """

    message: str
    details: str | None = None
    kind: ErrorKind = field(default=ErrorKind.INTERNAL_SERVER_ERROR, kw_only=True)

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status_code(self) -> int:
        return status_for_kind(self.kind)


@dataclass
class InvalidRequestAppError(AppError):
    """Raised when the request itself cannot be interpreted (e.g. bad JSON)."""

    kind: ErrorKind = field(default=ErrorKind.INVALID_REQUEST, kw_only=True)


@dataclass
class RequiredFieldAppError(AppError):
    """Raised when a mandatory input field is absent."""

    field_name: str = ""
    kind: ErrorKind = field(default=ErrorKind.REQUIRED_FIELD_ERROR, kw_only=True)


@dataclass
class ValidationAppError(AppError):
    """Raised when input validation fails."""

    kind: ErrorKind = field(default=ErrorKind.VALIDATION_ERROR, kw_only=True)


@dataclass
class UnauthorizedAppError(AppError):
    """Raised when credentials are missing."""

    kind: ErrorKind = field(default=ErrorKind.UNAUTHORIZED, kw_only=True)


@dataclass
class ForbiddenAppError(AppError):
    """Raised when credentials are present but not accepted."""

    kind: ErrorKind = field(default=ErrorKind.FORBIDDEN, kw_only=True)


@dataclass
class NotFoundAppError(AppError):
    kind: ErrorKind = field(default=ErrorKind.NOT_FOUND, kw_only=True)


@dataclass
class ConflictAppError(AppError):
    kind: ErrorKind = field(default=ErrorKind.CONFLICT, kw_only=True)


@dataclass
class RateLimitAppError(AppError):
    """Raised when a caller is throttled.

    ``kind`` is either RATE_LIMIT_EXCEEDED or TEMPORARILY_BLOCKED.
    """

    retry_after: int | None = None
    kind: ErrorKind = field(default=ErrorKind.RATE_LIMIT_EXCEEDED, kw_only=True)

    def __post_init__(self) -> None:
        if self.kind not in (ErrorKind.RATE_LIMIT_EXCEEDED, ErrorKind.TEMPORARILY_BLOCKED):
            raise ValueError(f"RateLimitAppError cannot carry kind {self.kind.value}")
        super().__post_init__()


@dataclass
class ConfigurationAppError(AppError):
    """Raised when required runtime configuration is missing or unusable."""

    missing_settings: tuple[str, ...] = ()
    kind: ErrorKind = field(default=ErrorKind.INTERNAL_SERVER_ERROR, kw_only=True)


def status_for_kind(kind: ErrorKind) -> int:
    """Return the HTTP status associated with an error kind."""
    return HTTP_STATUS_BY_KIND[kind]


def build_error_body(
    kind: ErrorKind,
    message: str,
    *,
    retry_after: int | None = None,
    details: str | None = None,
) -> dict[str, Any]:
    """Build the JSON error envelope sent to clients.

    Shape: ``{"code", "message", "retryAfter"?, "details"?}``; optional keys
    are omitted rather than sent as null.
    """
    body: dict[str, Any] = {"code": kind.value, "message": message}
    if retry_after is not None:
        body["retryAfter"] = retry_after
    if details:
        body["details"] = details
    return body


def error_body_for(exc: AppError) -> dict[str, Any]:
    """Build the error envelope for an AppError instance."""
    retry_after = exc.retry_after if isinstance(exc, RateLimitAppError) else None
    return build_error_body(exc.kind, exc.message, retry_after=retry_after, details=exc.details)
