"""Tests for building the rate limiting policy from settings."""

import pytest

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.settings.in_memory import InMemorySettingsCache
from app.core.errors import ConfigurationAppError
from app.services.rate_limit_config import load_rate_limit_config


def test_builds_config_from_settings(settings_cache, events) -> None:
    config = load_rate_limit_config(settings_cache, events=events)

    assert config == RateLimitConfig(
        enabled=True,
        max_requests_per_minute=100,
        max_requests_per_hour=1000,
        block_duration_minutes=5,
    )
    assert events.payloads("rate_limit.config_refreshed") == [config.as_dict()]


def test_seed_defaults_leave_limiting_disabled(make_rows, events) -> None:
    cache = InMemorySettingsCache(make_rows(enabled="false"), events=events)

    assert load_rate_limit_config(cache, events=events).enabled is False


def test_default_value_used_when_value_is_null(make_rows, events, section) -> None:
    cache = InMemorySettingsCache(make_rows(), events=events)
    row = cache.get_setting(section, "rate.limiting.max.requests.per.minute")
    cache.update_cached_setting(row.model_copy(update={"value": None, "default_value": "42"}))

    assert load_rate_limit_config(cache, events=events).max_requests_per_minute == 42


@pytest.mark.parametrize(
    ("overrides", "missing"),
    [
        ({"per_minute": None}, ["rate.limiting.max.requests.per.minute"]),
        ({"enabled": None}, ["rate.limiting.enabled"]),
        (
            {"per_hour": None, "block_minutes": None},
            ["rate.limiting.max.requests.per.hour", "rate.limiting.block.duration.minutes"],
        ),
    ],
)
def test_missing_settings_raise_configuration_error(make_rows, events, overrides, missing) -> None:
    cache = InMemorySettingsCache(make_rows(**overrides), events=events)

    with pytest.raises(ConfigurationAppError) as exc_info:
        load_rate_limit_config(cache, events=events)

    assert exc_info.value.missing_settings == tuple(missing)
    assert exc_info.value.message == "Rate limiting configuration incomplete"
    assert exc_info.value.details == f"missing {', '.join(missing)}"
    failures = events.payloads("rate_limit.config_initialization_failed")
    assert failures[0]["missing_settings"] == missing


def test_unparseable_value_counts_as_missing(make_rows, events) -> None:
    cache = InMemorySettingsCache(make_rows(per_hour="plenty"), events=events)

    with pytest.raises(ConfigurationAppError) as exc_info:
        load_rate_limit_config(cache, events=events)

    assert exc_info.value.missing_settings == ("rate.limiting.max.requests.per.hour",)
    assert "settings.cache.parse_value_error" in events.names


def test_empty_source_reports_every_key(events) -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        load_rate_limit_config(InMemorySettingsCache(events=events), events=events)

    assert len(exc_info.value.missing_settings) == 4


@pytest.mark.parametrize(("raw", "expected"), [("false", False), ("0", False), ("no", False), ("true", True)])
def test_enabled_read_as_boolean_without_schema(make_rows, events, raw, expected) -> None:
    rows = [
        row.model_copy(update={"value": raw, "validation_schema": None})
        if row.setting_name == "rate.limiting.enabled"
        else row
        for row in make_rows()
    ]
    cache = InMemorySettingsCache(rows, events=events)

    assert load_rate_limit_config(cache, events=events).enabled is expected


def test_limits_read_as_integers_without_schema(make_rows, events) -> None:
    rows = [row.model_copy(update={"validation_schema": None}) for row in make_rows(per_minute=" 7 ")]
    cache = InMemorySettingsCache(rows, events=events)

    config = load_rate_limit_config(cache, events=events)

    assert config.max_requests_per_minute == 7
    assert config.max_requests_per_hour == 1000


def test_schemaless_garbage_is_invalid_configuration(make_rows, events) -> None:
    rows = [row.model_copy(update={"validation_schema": None}) for row in make_rows(enabled="sometimes")]
    cache = InMemorySettingsCache(rows, events=events)

    with pytest.raises(ConfigurationAppError) as exc_info:
        load_rate_limit_config(cache, events=events)

    assert exc_info.value.message == "Rate limiting configuration invalid"
    assert exc_info.value.details == "not a boolean: 'sometimes'"
