"""API key check for the admin endpoints.

Keys are validated against a comma-separated list from environment variables.
The check runs inside controller logic (after rate limiting), so failures are
reported through the regular error envelope:

- missing ``X-API-Key`` → 401 UNAUTHORIZED
- unknown key → 403 FORBIDDEN
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from fastapi import Request

from app.core.config import parse_csv, settings
from app.core.errors import ForbiddenAppError, UnauthorizedAppError

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Examples:
        >>> sorted(parse_api_keys("key1, key2 , key3 "))
        ['key1', 'key2', 'key3']
        >>> parse_api_keys(None)
        set()
    """
    return parse_csv(keys_string)


def _key_hash(key: str) -> str:
    return hashlib.sha256(key.encode()).hexdigest()[:16]


def validate_api_key(provided_key: str | None) -> None:
    """Validate a provided admin API key against the configured keys.

    Pure validation logic without FastAPI dependencies for easy testing.

    Raises:
        UnauthorizedAppError: No key was provided.
        ForbiddenAppError: The key is unknown, or no keys are configured.
    """
    if not settings.app.api_key_required:
        return

    if not provided_key:
        logger.warning("auth.missing_key", extra={"auth_required": True})
        raise UnauthorizedAppError(message=f"Missing API key. Provide {API_KEY_HEADER} header.")

    valid_keys = parse_api_keys(settings.app.api_keys)
    if not valid_keys:
        logger.error("auth.keys_not_configured", extra={"auth_required": True})
        raise ForbiddenAppError(
            message="API key authentication is enabled but no valid keys are configured",
            details="Set APP_API_KEYS or disable auth with APP_API_KEY_REQUIRED=false",
        )

    if not any(hmac.compare_digest(provided_key, key) for key in valid_keys):
        logger.warning("auth.invalid_key", extra={"api_key_hash": _key_hash(provided_key)})
        raise ForbiddenAppError(message="Invalid API key")

    logger.debug("auth.success", extra={"api_key_hash": _key_hash(provided_key)})


def require_admin_key(request: Request) -> None:
    """Check the request's ``X-API-Key`` header; see ``validate_api_key``."""

    validate_api_key(request.headers.get(API_KEY_HEADER))
