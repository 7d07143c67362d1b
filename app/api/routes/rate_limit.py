"""Admin endpoints exposing the rate limiter state."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Request

from app.core.auth import require_admin_key
from app.core.connection_handler import connection_handler
from app.core.rate_limit import get_admission_service

router = APIRouter(tags=["Rate limiting"])


async def fetch_rate_limit_config(request: Request) -> dict:
    """Effective rate limiting policy (as currently cached)."""
    require_admin_key(request)
    return get_admission_service(request).resolve_config().as_dict()


async def fetch_rate_limit_stats(request: Request) -> dict:
    require_admin_key(request)
    service = get_admission_service(request)
    return {**service.store.stats(), "config_cache": service.config_cache_stats()}


async def sweep_rate_limit_store(request: Request) -> dict:
    """Run a stale-entry sweep immediately instead of waiting for the timer."""
    require_admin_key(request)
    report = get_admission_service(request).sweep()
    return {**asdict(report), "removed": report.removed}


router.add_api_route(
    "/rate-limit/config",
    connection_handler(fetch_rate_limit_config, "fetchRateLimitConfig"),
    methods=["GET"],
)
router.add_api_route(
    "/rate-limit/stats",
    connection_handler(fetch_rate_limit_stats, "fetchRateLimitStats"),
    methods=["GET"],
)
router.add_api_route(
    "/rate-limit/sweep",
    connection_handler(sweep_rate_limit_store, "sweepRateLimitStore"),
    methods=["POST"],
)
