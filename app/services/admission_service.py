"""Admission service: the single owner of rate limiting state.

Bundles the limiter store, the settings source the policy is read from, the
cached policy itself and the background sweeper task. One instance is built
per application and started/stopped with the application lifespan.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from app.adapters.rate_limit.base import (
    AbstractRateLimiterStore,
    AdmissionResult,
    RateLimitConfig,
    SweepReport,
)
from app.adapters.rate_limit.in_memory import InMemoryRateLimiterStore
from app.adapters.settings.base import AbstractSettingsSource
from app.core.config import RateLimitSettings, parse_csv
from app.core.events import RATE_LIMIT_EVENTS, EventSink, LoggingEventSink
from app.services.rate_limit_config import load_rate_limit_config
from app.utils.simple_cache import SimpleTTLCache

logger = logging.getLogger(__name__)

CONFIG_CACHE_KEY = "rate_limit_config"


class AdmissionService:
    """Decide whether client requests may proceed.

    Attributes:
        store: Per-client counter store.
        settings_source: Where the rate limiting policy is read from.
        events: Sink for observability events.
    """

    def __init__(
        self,
        *,
        store: AbstractRateLimiterStore,
        settings_source: AbstractSettingsSource,
        config_cache: SimpleTTLCache | None = None,
        config_refresh_seconds: float = 300,
        sweep_interval_seconds: float = 3600,
        events: EventSink | None = None,
    ) -> None:
        self.store = store
        self.settings_source = settings_source
        self.events = events or LoggingEventSink()
        self._config_cache = config_cache or SimpleTTLCache(ttl_seconds=config_refresh_seconds, max_entries=8)
        self._config_refresh_seconds = config_refresh_seconds
        self._sweep_interval_seconds = sweep_interval_seconds
        self._sweeper_task: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls,
        rate_limit_settings: RateLimitSettings,
        settings_source: AbstractSettingsSource,
        *,
        events: EventSink | None = None,
    ) -> "AdmissionService":
        """Build a service backed by the in-memory store."""

        store = InMemoryRateLimiterStore(
            max_entry_age_seconds=rate_limit_settings.max_entry_age_seconds,
            max_store_size=rate_limit_settings.max_store_size,
            eviction_margin=rate_limit_settings.eviction_margin,
            bypass_clients=parse_csv(rate_limit_settings.bypass_clients),
        )
        return cls(
            store=store,
            settings_source=settings_source,
            config_refresh_seconds=rate_limit_settings.config_refresh_seconds,
            sweep_interval_seconds=rate_limit_settings.sweep_interval_seconds,
            events=events,
        )

    def resolve_config(self) -> RateLimitConfig:
        """Return the active policy, reloading it once it is stale.

        Raises:
            ConfigurationAppError: If the policy cannot be loaded. Nothing is
                cached in that case, so the next call retries the load.
        """

        return self._config_cache.get_or_refresh(
            CONFIG_CACHE_KEY,
            lambda: load_rate_limit_config(self.settings_source, events=self.events),
            ttl_seconds=self._config_refresh_seconds,
        )

    def invalidate_config(self) -> None:
        """Force the next ``resolve_config`` call to reload the policy."""

        self._config_cache.invalidate(CONFIG_CACHE_KEY)

    def config_cache_stats(self) -> dict[str, int | float | None]:
        return self._config_cache.stats()

    def check(self, client_id: str) -> tuple[RateLimitConfig, AdmissionResult]:
        """Resolve the policy and run the admission check for ``client_id``."""

        config = self.resolve_config()
        return config, self.store.check_admission(client_id, config)

    def sweep(self) -> SweepReport:
        """Run one stale-entry sweep now."""

        report = self.store.sweep_expired_entries()
        self.events.publish(
            RATE_LIMIT_EVENTS.SWEEP_COMPLETED,
            {
                "expired_removed": report.expired_removed,
                "overflow_removed": report.overflow_removed,
                "entries": report.remaining,
            },
        )
        return report

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper_task is not None and not self._sweeper_task.done()

    async def start(self) -> None:
        """Start the periodic sweeper on the running event loop (idempotent)."""

        if self.sweeper_running:
            return
        self._sweeper_task = asyncio.create_task(self._sweep_periodically(), name="rate-limit-sweeper")
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._sweep_interval_seconds})

    async def stop(self) -> None:
        """Cancel the sweeper and wait for it to finish."""

        task, self._sweeper_task = self._sweeper_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("rate_limit.sweeper_stopped")

    async def _sweep_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval_seconds)
            try:
                # Full-table scan; runs on a worker thread, not the loop thread
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("rate_limit.sweep_failed")
