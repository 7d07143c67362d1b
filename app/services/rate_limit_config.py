"""Loading the rate limiting policy from the application settings source."""

from __future__ import annotations

from app.adapters.rate_limit.base import RateLimitConfig
from app.adapters.settings.base import SESSION_MANAGEMENT_SECTION, AbstractSettingsSource
from app.adapters.settings.in_memory import coerce_setting_value
from app.core.errors import ConfigurationAppError
from app.core.events import RATE_LIMIT_EVENTS, EventSink, LoggingEventSink

ENABLED_KEY = "rate.limiting.enabled"
MAX_PER_MINUTE_KEY = "rate.limiting.max.requests.per.minute"
MAX_PER_HOUR_KEY = "rate.limiting.max.requests.per.hour"
BLOCK_DURATION_KEY = "rate.limiting.block.duration.minutes"

RATE_LIMIT_SETTING_KEYS = (
    ENABLED_KEY,
    MAX_PER_MINUTE_KEY,
    MAX_PER_HOUR_KEY,
    BLOCK_DURATION_KEY,
)

# Read with these types whatever schema the stored row carries
_BOOLEAN = {"type": "boolean"}
_INTEGER = {"type": "integer"}


def load_rate_limit_config(
    source: AbstractSettingsSource,
    *,
    events: EventSink | None = None,
) -> RateLimitConfig:
    """Read the four rate limiting settings and build a ``RateLimitConfig``.

    There are no built-in defaults: every key must exist in the settings
    source and hold a usable value.

    Args:
        source: Settings source to read from.
        events: Sink notified when the configuration cannot be built.

    Returns:
        RateLimitConfig built from the current settings.

    Raises:
        ConfigurationAppError: If any key is missing or its value is unusable.
    """
    sink = events or LoggingEventSink()

    values: dict[str, object] = {}
    missing: list[str] = []
    for key in RATE_LIMIT_SETTING_KEYS:
        setting = source.get_setting(SESSION_MANAGEMENT_SECTION, key)
        value = source.parse_setting_value(setting) if setting is not None else None
        if value is None:
            missing.append(key)
        else:
            values[key] = value

    if missing:
        details = f"missing {', '.join(missing)}"
        sink.publish(
            RATE_LIMIT_EVENTS.CONFIG_INITIALIZATION_FAILED,
            {"missing_settings": missing, "error_msg": details},
        )
        raise ConfigurationAppError(
            message="Rate limiting configuration incomplete",
            details=details,
            missing_settings=tuple(missing),
        )

    try:
        config = RateLimitConfig(
            enabled=coerce_setting_value(values[ENABLED_KEY], _BOOLEAN),
            max_requests_per_minute=coerce_setting_value(values[MAX_PER_MINUTE_KEY], _INTEGER),
            max_requests_per_hour=coerce_setting_value(values[MAX_PER_HOUR_KEY], _INTEGER),
            block_duration_minutes=coerce_setting_value(values[BLOCK_DURATION_KEY], _INTEGER),
        )
    except (TypeError, ValueError) as exc:
        sink.publish(
            RATE_LIMIT_EVENTS.CONFIG_INITIALIZATION_FAILED,
            {"error_msg": str(exc)},
        )
        raise ConfigurationAppError(
            message="Rate limiting configuration invalid",
            details=str(exc),
        ) from exc

    sink.publish(RATE_LIMIT_EVENTS.CONFIG_REFRESHED, config.as_dict())
    return config
