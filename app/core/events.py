"""Observability events emitted by the admission layer.

Events are named milestones (request received, admission checked, ...)
published to an ``EventSink``. The default sink writes them as structured log
records; deployments that own a real event bus can plug in their own sink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

logger = logging.getLogger("app.events")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class EventDefinition:
    """Catalog entry for a published event.

    Attributes:
        name: Dotted event name, stable across releases.
        severity: One of debug/info/warning/error.
        description: Short human-readable meaning of the event.
    """

    name: str
    severity: str
    description: str

    def __post_init__(self) -> None:
        if self.severity not in _LEVELS:
            raise ValueError(f"unknown severity: {self.severity}")


class EventSink(Protocol):
    def publish(self, event: EventDefinition, payload: Mapping[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Publish events as log records at the event's severity."""

    def __init__(self, event_logger: logging.Logger | None = None) -> None:
        self._logger = event_logger or logger

    def publish(self, event: EventDefinition, payload: Mapping[str, Any]) -> None:
        self._logger.log(
            _LEVELS[event.severity],
            event.name,
            extra={"event_description": event.description, **payload},
        )


class _ConnectionHandlerEvents:
    REQUEST_RECEIVED = EventDefinition(
        "connection_handler.request.received", "debug", "Request entered the connection handler"
    )
    ADMISSION_CHECKED = EventDefinition(
        "connection_handler.admission.checked", "debug", "Rate limit admission decision taken"
    )
    REJECTED = EventDefinition(
        "connection_handler.admission.rejected", "warning", "Request rejected by the rate limiter"
    )
    CONFIG_FAILED = EventDefinition(
        "connection_handler.admission.config_failed",
        "error",
        "Rate limit configuration unavailable; request refused",
    )
    LOGIC_STARTED = EventDefinition(
        "connection_handler.logic.started", "debug", "Business logic invoked"
    )
    LOGIC_COMPLETED = EventDefinition(
        "connection_handler.logic.completed", "info", "Business logic returned"
    )
    LOGIC_FAILED = EventDefinition(
        "connection_handler.logic.failed", "warning", "Business logic raised an error"
    )

    @staticmethod
    def response_sent(status_code: int) -> EventDefinition:
        severity = "error" if status_code >= 500 else "warning" if status_code >= 400 else "info"
        return EventDefinition(
            f"connection_handler.response.sent.{status_code}",
            severity,
            f"Response sent with status {status_code}",
        )


class _RateLimitEvents:
    CONFIG_INITIALIZATION_FAILED = EventDefinition(
        "rate_limit.config_initialization_failed",
        "error",
        "Rate limiting configuration incomplete or unreadable",
    )
    CONFIG_REFRESHED = EventDefinition(
        "rate_limit.config_refreshed", "info", "Rate limiting configuration reloaded"
    )
    SWEEP_COMPLETED = EventDefinition(
        "rate_limit.sweep_completed", "info", "Stale limiter entries removed"
    )


class _SettingsEvents:
    SETTING_NOT_FOUND = EventDefinition(
        "settings.cache.setting_not_found", "debug", "Requested setting is not cached"
    )
    SETTING_UPDATED = EventDefinition(
        "settings.cache.setting_updated", "info", "Setting value updated in cache"
    )
    PARSE_VALUE_ERROR = EventDefinition(
        "settings.cache.parse_value_error", "warning", "Setting value could not be converted"
    )
    CACHE_INITIALIZED = EventDefinition(
        "settings.cache.initialized", "info", "Settings cache populated"
    )


CONNECTION_HANDLER_EVENTS = _ConnectionHandlerEvents()
RATE_LIMIT_EVENTS = _RateLimitEvents()
SETTINGS_EVENTS = _SettingsEvents()
