"""Tests for the admission service (policy caching, sweeps, sweeper task)."""

import asyncio
from unittest.mock import MagicMock

import pytest

from app.adapters.rate_limit.base import RejectionReason, SweepReport
from app.adapters.rate_limit.in_memory import InMemoryRateLimiterStore
from app.core.config import RateLimitSettings
from app.core.errors import ConfigurationAppError
from app.services.admission_service import AdmissionService
from app.services.settings_service import update_setting

PER_MINUTE = "rate.limiting.max.requests.per.minute"


class TestPolicyResolution:
    def test_check_returns_config_and_decision(self, make_service) -> None:
        service = make_service()

        config, result = service.check("198.51.100.1")

        assert config.max_requests_per_minute == 100
        assert result.allowed is True
        assert result.remaining_requests == 99

    def test_policy_is_cached_until_refresh_interval(self, make_service, clock, section) -> None:
        service = make_service()
        assert service.resolve_config().max_requests_per_minute == 100

        update_setting(service.settings_source, section, PER_MINUTE, "2")
        clock.advance(299)
        assert service.resolve_config().max_requests_per_minute == 100

        clock.advance(1)
        assert service.resolve_config().max_requests_per_minute == 2

    def test_invalidate_config_applies_changes_immediately(self, make_service, section) -> None:
        service = make_service()
        service.resolve_config()

        update_setting(service.settings_source, section, PER_MINUTE, "1")
        service.invalidate_config()

        service.check("198.51.100.1")
        _, result = service.check("198.51.100.1")
        assert result.reason is RejectionReason.MINUTE_LIMIT_EXCEEDED

    def test_config_refreshed_event_published_once_per_load(self, make_service, events) -> None:
        service = make_service()

        for _ in range(5):
            service.check("198.51.100.1")

        assert len(events.payloads("rate_limit.config_refreshed")) == 1

    def test_missing_configuration_is_retried_every_call(self, make_service, make_rows, events) -> None:
        service = make_service(rows=make_rows(per_hour=None))

        with pytest.raises(ConfigurationAppError):
            service.check("198.51.100.1")
        with pytest.raises(ConfigurationAppError):
            service.check("198.51.100.1")

        assert len(events.payloads("rate_limit.config_initialization_failed")) == 2

    def test_from_settings_builds_in_memory_store(self, settings_cache) -> None:
        rate_limit_settings = RateLimitSettings(
            max_store_size=10,
            eviction_margin=2,
            bypass_clients="10.0.0.1, 10.0.0.2",
        )

        service = AdmissionService.from_settings(rate_limit_settings, settings_cache)

        assert isinstance(service.store, InMemoryRateLimiterStore)
        assert service.store.is_exempt("10.0.0.2")
        assert not service.store.is_exempt("127.0.0.1")
        assert service.store.stats()["max_store_size"] == 10


class TestSweep:
    def test_sweep_publishes_report(self, make_service, clock, events) -> None:
        service = make_service()
        service.check("198.51.100.1")
        clock.advance(3601)

        report = service.sweep()

        assert report == SweepReport(expired_removed=1, overflow_removed=0, remaining=0)
        assert events.payloads("rate_limit.sweep_completed") == [
            {"expired_removed": 1, "overflow_removed": 0, "entries": 0}
        ]


class TestSweeperTask:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, settings_cache, events) -> None:
        service = AdmissionService(
            store=InMemoryRateLimiterStore(),
            settings_source=settings_cache,
            sweep_interval_seconds=3600,
            events=events,
        )

        await service.start()
        first_task = service._sweeper_task
        await service.start()

        assert service.sweeper_running is True
        assert service._sweeper_task is first_task

        await service.stop()

        assert service.sweeper_running is False
        assert first_task.cancelled()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, settings_cache) -> None:
        service = AdmissionService(store=InMemoryRateLimiterStore(), settings_source=settings_cache)

        await service.stop()

        assert service.sweeper_running is False

    @pytest.mark.asyncio
    async def test_sweeper_runs_periodically(self, settings_cache, events) -> None:
        service = AdmissionService(
            store=InMemoryRateLimiterStore(),
            settings_source=settings_cache,
            sweep_interval_seconds=0.01,
            events=events,
        )

        await service.start()
        try:
            for _ in range(100):
                if len(events.payloads("rate_limit.sweep_completed")) >= 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await service.stop()

        assert len(events.payloads("rate_limit.sweep_completed")) >= 2

    @pytest.mark.asyncio
    async def test_sweep_failure_does_not_stop_sweeper(self, settings_cache, events) -> None:
        store = MagicMock(spec=InMemoryRateLimiterStore)
        store.sweep_expired_entries.side_effect = RuntimeError("table corrupted")
        service = AdmissionService(
            store=store,
            settings_source=settings_cache,
            sweep_interval_seconds=0.01,
            events=events,
        )

        await service.start()
        try:
            for _ in range(100):
                if store.sweep_expired_entries.call_count >= 2:
                    break
                await asyncio.sleep(0.01)
            assert service.sweeper_running is True
        finally:
            await service.stop()

        assert store.sweep_expired_entries.call_count >= 2
