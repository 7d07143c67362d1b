from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness probe.

    Not rate limited, so load balancers can always reach it. Reports whether
    the background sweeper of the rate limiter is running.
    """

    service = getattr(request.app.state, "admission_service", None)
    return {
        "status": "ok",
        "sweeper_running": bool(service and service.sweeper_running),
    }
