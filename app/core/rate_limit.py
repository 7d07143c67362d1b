"""HTTP-side helpers for rate limiting.

Client identity resolution, access to the application's admission service
and the ``X-RateLimit-*`` header set. The admission decision itself lives in
``app.services.admission_service``.
"""

from __future__ import annotations

from fastapi import Request

from app.adapters.rate_limit.base import AdmissionResult, RateLimitConfig
from app.core.config import settings
from app.services.admission_service import AdmissionService

UNKNOWN_CLIENT = "unknown"


def get_admission_service(request: Request) -> AdmissionService:
    """Return the admission service attached to the running application."""

    return request.app.state.admission_service


def resolve_client_id(request: Request) -> str:
    """Identify the caller, normally by its network address.

    When ``APP_TRUST_FORWARDED_FOR`` is enabled (deployments behind a trusted
    reverse proxy) the first address of ``X-Forwarded-For`` wins.
    """

    if settings.app.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def build_rate_limit_headers(config: RateLimitConfig, result: AdmissionResult) -> dict[str, str]:
    """Build the rate limit response headers for an admission result.

    Rejections get ``Retry-After`` plus the full ``X-RateLimit-*`` set with a
    remaining quota of 0. Admitted requests get the informational headers
    only when the limiter produced quota data (not when rate limiting is
    disabled or the client is exempt).

    Returns:
        Header mapping, empty when headers are disabled or not applicable.
    """

    if not settings.rate_limit.include_headers:
        return {}

    if not result.allowed:
        headers = {
            "Retry-After": str(result.retry_after if result.retry_after is not None else 60),
            "X-RateLimit-Remaining": "0",
        }
        if config.max_requests_per_minute is not None:
            headers["X-RateLimit-Limit"] = str(config.max_requests_per_minute)
        if result.reset_time is not None:
            headers["X-RateLimit-Reset"] = str(result.reset_time)
        return headers

    if result.remaining_requests is None or result.reset_time is None:
        return {}

    return {
        "X-RateLimit-Limit": str(config.max_requests_per_minute),
        "X-RateLimit-Remaining": str(result.remaining_requests),
        "X-RateLimit-Reset": str(result.reset_time),
    }
