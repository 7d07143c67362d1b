"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It ensures that the TESTING environment variable is set to prevent
loading the .env file during tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
# This prevents Pydantic from loading the .env file in tests
os.environ["TESTING"] = "true"

# Set default env vars that all tests might need
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")

from typing import Any, Mapping  # noqa: E402

import pytest  # noqa: E402

from app.adapters.rate_limit.in_memory import InMemoryRateLimiterStore  # noqa: E402
from app.adapters.settings.base import SESSION_MANAGEMENT_SECTION, AppSetting  # noqa: E402
from app.adapters.settings.in_memory import DEFAULT_SETTINGS_SEED, InMemorySettingsCache  # noqa: E402
from app.core.events import EventDefinition  # noqa: E402
from app.services.admission_service import AdmissionService  # noqa: E402
from app.utils.simple_cache import SimpleTTLCache  # noqa: E402


class FakeClock:
    """Deterministic clock used to test window and expiry logic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class RecordingEventSink:
    """Event sink that keeps every published event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[EventDefinition, dict[str, Any]]] = []

    def publish(self, event: EventDefinition, payload: Mapping[str, Any]) -> None:
        self.events.append((event, dict(payload)))

    @property
    def names(self) -> list[str]:
        return [event.name for event, _ in self.events]

    def payloads(self, name: str) -> list[dict[str, Any]]:
        return [payload for event, payload in self.events if event.name == name]


def rate_limit_rows(
    *,
    enabled: str | None = "true",
    per_minute: str | None = "100",
    per_hour: str | None = "1000",
    block_minutes: str | None = "5",
) -> list[AppSetting]:
    """Seed rows for the rate limiting policy; None omits the row."""

    values = {
        "rate.limiting.enabled": enabled,
        "rate.limiting.max.requests.per.minute": per_minute,
        "rate.limiting.max.requests.per.hour": per_hour,
        "rate.limiting.block.duration.minutes": block_minutes,
    }
    rows = []
    for template in DEFAULT_SETTINGS_SEED:
        value = values[template.setting_name]
        if value is None:
            continue
        rows.append(template.model_copy(update={"value": value}))
    return rows


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def settings_cache(events: RecordingEventSink) -> InMemorySettingsCache:
    """Settings cache with rate limiting enabled at the seed limits."""
    return InMemorySettingsCache(rate_limit_rows(), events=events)


@pytest.fixture
def section() -> str:
    return SESSION_MANAGEMENT_SECTION


@pytest.fixture
def make_rows():
    """Factory for rate limiting seed rows (see ``rate_limit_rows``)."""
    return rate_limit_rows


@pytest.fixture
def make_service(clock, events):
    """Factory for an admission service driven by the fake clock."""

    def _build(rows=None, **store_kwargs) -> AdmissionService:
        cache = InMemorySettingsCache(rate_limit_rows() if rows is None else rows, events=events)
        return AdmissionService(
            store=InMemoryRateLimiterStore(clock=clock, **store_kwargs),
            settings_source=cache,
            config_cache=SimpleTTLCache(ttl_seconds=300, max_entries=8, clock=clock),
            events=events,
        )

    return _build


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-API-Key": "test-api-key-123"}
