"""Application factory for the FastAPI app.

Centralizes app construction (settings source, admission service, middleware,
handlers, routers) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.adapters.settings.in_memory import (
    DEFAULT_SETTINGS_SEED,
    InMemorySettingsCache,
    load_settings_seed,
)
from app.api.routes import health_router, rate_limit_router, settings_router
from app.core.config import Settings, settings as default_settings
from app.core.events import EventSink, LoggingEventSink
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.admission_service import AdmissionService

logger = logging.getLogger(__name__)


def build_settings_cache(config: Settings, events: EventSink) -> InMemorySettingsCache:
    """Create the settings cache from the seed file, or the built-in rows."""

    seed_file = config.app.settings_seed_file
    rows = load_settings_seed(seed_file) if seed_file else list(DEFAULT_SETTINGS_SEED)
    logger.info(
        "settings.seed_loaded",
        extra={"source": seed_file or "built-in", "settings_count": len(rows)},
    )
    return InMemorySettingsCache(rows, events=events)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    service: AdmissionService = app.state.admission_service
    await service.start()
    try:
        yield
    finally:
        await service.stop()


def create_app(
    config: Settings | None = None,
    *,
    settings_cache: InMemorySettingsCache | None = None,
    admission_service: AdmissionService | None = None,
    events: EventSink | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Settings to build from; defaults to the process settings.
        settings_cache: Pre-built settings source (tests).
        admission_service: Pre-built admission service (tests).
        events: Observability sink shared by all components.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = config or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    sink = events or LoggingEventSink()
    cache = settings_cache or build_settings_cache(cfg, sink)
    service = admission_service or AdmissionService.from_settings(cfg.rate_limit, cache, events=sink)

    app = FastAPI(
        title="Admission Gateway",
        description=(
            "Administrative settings API guarded by per-client rate limiting "
            "(per-minute and per-hour windows with temporary blocking)."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )
    app.state.settings_cache = cache
    app.state.admission_service = service

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(settings_router, prefix="/v1")
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
