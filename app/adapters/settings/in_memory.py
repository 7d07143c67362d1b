"""In-memory settings cache.

Holds the application settings rows keyed by ``section_path/setting_name``.
The cache is populated at startup (from a JSON seed file or the built-in
defaults) and updated in place by the settings admin endpoints.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Iterable

from pydantic import TypeAdapter

from app.adapters.settings.base import (
    SESSION_MANAGEMENT_SECTION,
    AbstractSettingsSource,
    AppSetting,
    build_setting_key,
)
from app.core.events import SETTINGS_EVENTS, EventSink, LoggingEventSink

# Initial rate limiting rows, matching what a fresh database is seeded with.
DEFAULT_SETTINGS_SEED: tuple[AppSetting, ...] = (
    AppSetting(
        section_path=SESSION_MANAGEMENT_SECTION,
        setting_name="rate.limiting.enabled",
        value="false",
        default_value="true",
        validation_schema={"type": "boolean"},
        description="Enable or disable request rate limiting for all API endpoints per user",
    ),
    AppSetting(
        section_path=SESSION_MANAGEMENT_SECTION,
        setting_name="rate.limiting.max.requests.per.minute",
        value="100",
        default_value="100",
        validation_schema={"type": "integer", "minimum": 1, "maximum": 1000000},
        description="Maximum number of requests allowed per minute per user IP address",
    ),
    AppSetting(
        section_path=SESSION_MANAGEMENT_SECTION,
        setting_name="rate.limiting.max.requests.per.hour",
        value="1000",
        default_value="1000",
        validation_schema={"type": "integer", "minimum": 1, "maximum": 1000000},
        description="Maximum number of requests allowed per hour per user IP address",
    ),
    AppSetting(
        section_path=SESSION_MANAGEMENT_SECTION,
        setting_name="rate.limiting.block.duration.minutes",
        value="5",
        default_value="5",
        validation_schema={"type": "integer", "minimum": 1, "maximum": 60},
        description="Duration of temporary block when rate limit is exceeded (in minutes)",
    ),
)

_SETTINGS_LIST = TypeAdapter(list[AppSetting])

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def load_settings_seed(path: str | Path) -> list[AppSetting]:
    """Read settings rows from a JSON file (a list of setting objects).

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If a row does not match ``AppSetting``.
    """

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return _SETTINGS_LIST.validate_python(raw)


def coerce_setting_value(raw: Any, schema: dict[str, Any] | None) -> Any:
    """Convert a stored value to the Python type declared by its schema.

    Settings are frequently persisted as strings ('true', '100'); the schema
    ``type`` decides how they are read back. Values without a schema, or with
    an unrecognised type, are returned unchanged.

    Raises:
        ValueError: If the value cannot be represented as the declared type.
    """

    declared = (schema or {}).get("type")
    if raw is None or declared is None:
        return raw

    if declared == "boolean":
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"not a boolean: {raw!r}")

    if declared == "integer":
        if isinstance(raw, bool):
            raise ValueError(f"not an integer: {raw!r}")
        if isinstance(raw, float):
            if not raw.is_integer():
                raise ValueError(f"not an integer: {raw!r}")
            return int(raw)
        return int(str(raw).strip())

    if declared == "number":
        if isinstance(raw, bool):
            raise ValueError(f"not a number: {raw!r}")
        return float(raw)

    return raw


class InMemorySettingsCache(AbstractSettingsSource):
    """Process-local settings store.

    Thread-safe; readers always see a complete row (rows are replaced, never
    mutated in place).
    """

    def __init__(
        self,
        settings: Iterable[AppSetting] = (),
        *,
        events: EventSink | None = None,
    ) -> None:
        self._events = events or LoggingEventSink()
        self._lock = threading.RLock()
        self._rows: dict[str, AppSetting] = {}
        if settings:
            self.set_cache(settings)

    def set_cache(self, settings: Iterable[AppSetting]) -> None:
        """Replace the whole cache contents."""

        rows = {setting.cache_key: setting for setting in settings}
        with self._lock:
            self._rows = rows
        self._events.publish(
            SETTINGS_EVENTS.CACHE_INITIALIZED,
            {
                "settings_count": len(rows),
                "sections_count": len({row.section_path for row in rows.values()}),
            },
        )

    def clear_cache(self) -> None:
        with self._lock:
            self._rows = {}

    def get_setting(self, section_path: str, setting_name: str) -> AppSetting | None:
        with self._lock:
            setting = self._rows.get(build_setting_key(section_path, setting_name))
        if setting is None:
            self._events.publish(
                SETTINGS_EVENTS.SETTING_NOT_FOUND,
                {"section_path": section_path, "setting_name": setting_name},
            )
        return setting

    def has_setting(self, section_path: str, setting_name: str) -> bool:
        with self._lock:
            return build_setting_key(section_path, setting_name) in self._rows

    def get_all_settings(self) -> list[AppSetting]:
        with self._lock:
            return sorted(self._rows.values(), key=lambda row: row.cache_key)

    def update_cached_setting(self, setting: AppSetting) -> None:
        """Insert or replace a single row."""

        with self._lock:
            self._rows[setting.cache_key] = setting
        self._events.publish(
            SETTINGS_EVENTS.SETTING_UPDATED,
            {"section_path": setting.section_path, "setting_name": setting.setting_name},
        )

    def replace_if(self, current: AppSetting, updated: AppSetting) -> bool:
        """Store ``updated`` only while ``current`` is still the cached row.

        Returns False, leaving the cache untouched, when another writer
        replaced the row after ``current`` was read.
        """

        with self._lock:
            if self._rows.get(current.cache_key) is not current:
                return False
            self._rows[updated.cache_key] = updated
        self._events.publish(
            SETTINGS_EVENTS.SETTING_UPDATED,
            {"section_path": updated.section_path, "setting_name": updated.setting_name},
        )
        return True

    def parse_setting_value(self, setting: AppSetting) -> Any:
        """Effective value of ``setting``: ``value``, else ``default_value``.

        Returns None (and publishes a parse error event) when the stored value
        does not fit the declared schema type.
        """

        raw = setting.value if setting.value is not None else setting.default_value
        try:
            return coerce_setting_value(raw, setting.validation_schema)
        except (TypeError, ValueError) as exc:
            self._events.publish(
                SETTINGS_EVENTS.PARSE_VALUE_ERROR,
                {
                    "section_path": setting.section_path,
                    "setting_name": setting.setting_name,
                    "error_msg": str(exc),
                },
            )
            return None
