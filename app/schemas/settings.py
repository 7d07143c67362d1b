"""Pydantic schemas for the settings admin endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SettingUpdateRequest(BaseModel):
    """Body of ``PUT /v1/settings/{section_path}/{setting_name}``."""

    model_config = ConfigDict(extra="forbid")

    value: Any = Field(..., description="New value; validated against the setting's JSON schema.")
    expected_value: Any = Field(
        default=None,
        description="Apply the update only if the stored value still equals this.",
    )
