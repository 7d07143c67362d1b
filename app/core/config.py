"""Process configuration for the admission gateway.

Three groups of environment variables, one pydantic-settings class each:

- ``APP_*``: admin API access and the settings seed
- ``LOG_*``: log format and destination
- ``RATE_LIMIT_*``: limiter store tuning (the limits themselves are
  application settings, see ``app.adapters.settings``)

``APP_ENV`` picks an optional ``.env.<env>`` file at the project root.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# .env files are looked up next to the package, not in the working directory
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_path = PROJECT_ROOT / ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_file = str(_env_path) if _env_path.is_file() else None


# Populate os.environ before the nested settings read it.
# Tests set TESTING so a developer's local .env never leaks into them.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    # BaseSettings fills fields from the environment; type checkers don't know that
    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an X-API-Key header",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )
    trust_forwarded_for: bool = Field(
        False,
        description="Use the first X-Forwarded-For address as client id (behind a trusted proxy)",
    )
    settings_seed_file: str | None = Field(
        None,
        description="JSON file with the initial application settings rows",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Process-level tuning of the rate limiter store.

    The limits themselves (enabled, per-minute, per-hour, block duration) live
    in the application settings source and are refreshed at runtime.
    """

    config_refresh_seconds: int = Field(
        300,
        description="How long a loaded rate limit configuration stays fresh",
        ge=1,
    )
    sweep_interval_seconds: int = Field(
        3600,
        description="Interval between stale-entry sweeps of the limiter store",
        ge=1,
    )
    max_entry_age_seconds: int = Field(
        3600,
        description="Entries untouched for longer than this are removed by the sweep",
        ge=1,
    )
    max_store_size: int = Field(
        500_000,
        description="Hard ceiling on tracked clients",
        ge=1,
    )
    eviction_margin: int = Field(
        1_000,
        description="Entries freed below the ceiling when it is exceeded",
        ge=0,
    )
    bypass_clients: str = Field(
        "127.0.0.1,::1,localhost",
        description="Comma-separated client ids that are never rate limited",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """All process settings; invalid values fail at import time."""

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


def parse_csv(value: str | None) -> set[str]:
    """Split a comma-separated setting into a set of trimmed, non-empty items.

    Examples:
        >>> sorted(parse_csv("a, b ,,c"))
        ['a', 'b', 'c']
        >>> parse_csv(None)
        set()
    """
    if not value:
        return set()
    return {item.strip() for item in value.split(",") if item.strip()}


# Process-wide instance; groups are built lazily by their default factories
settings = Settings()
