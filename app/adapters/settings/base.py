"""Settings source interface and the setting row model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

SESSION_MANAGEMENT_SECTION = "Application.Security.SessionManagement"


class AppSetting(BaseModel):
    """A single application setting as stored by the settings backend."""

    section_path: str = Field(..., description="Dotted section, e.g. 'Application.Security.SessionManagement'.")
    setting_name: str = Field(..., description="Setting key, unique within its section.")
    value: Any = Field(default=None, description="Current value; None means 'use default_value'.")
    default_value: Any = Field(default=None, description="Value used when no explicit value is set.")
    validation_schema: dict[str, Any] | None = Field(
        default=None,
        description="JSON schema the value must satisfy.",
    )
    description: str | None = None

    @property
    def cache_key(self) -> str:
        return build_setting_key(self.section_path, self.setting_name)


def build_setting_key(section_path: str, setting_name: str) -> str:
    return f"{section_path}/{setting_name}"


class AbstractSettingsSource(ABC):
    """Read access to application settings."""

    @abstractmethod
    def get_setting(self, section_path: str, setting_name: str) -> AppSetting | None:
        """Return the setting row, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def parse_setting_value(self, setting: AppSetting) -> Any:
        """Return the effective, type-converted value of a setting."""
        raise NotImplementedError
