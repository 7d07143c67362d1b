"""Admin endpoints for application settings."""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from pydantic import ValidationError

from app.adapters.settings.base import AppSetting
from app.adapters.settings.in_memory import InMemorySettingsCache
from app.core.auth import require_admin_key
from app.core.connection_handler import connection_handler
from app.core.errors import InvalidRequestAppError, RequiredFieldAppError, ValidationAppError
from app.core.rate_limit import get_admission_service
from app.schemas.settings import SettingUpdateRequest
from app.services.settings_service import get_setting_or_raise, update_setting

router = APIRouter(tags=["Settings"])


def _settings_cache(request: Request) -> InMemorySettingsCache:
    return request.app.state.settings_cache


def _serialize(setting: AppSetting, request: Request) -> dict:
    data = setting.model_dump()
    data["effective_value"] = _settings_cache(request).parse_setting_value(setting)
    return data


async def fetch_settings(request: Request) -> list[dict]:
    """List every cached setting with its effective value."""
    require_admin_key(request)
    return [_serialize(setting, request) for setting in _settings_cache(request).get_all_settings()]


async def fetch_setting(request: Request) -> dict:
    """Return a single setting."""
    require_admin_key(request)
    setting = get_setting_or_raise(
        _settings_cache(request),
        request.path_params["section_path"],
        request.path_params["setting_name"],
    )
    return _serialize(setting, request)


async def _read_update_body(request: Request) -> SettingUpdateRequest:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestAppError(message="Request body must be valid JSON") from exc

    if not isinstance(payload, dict):
        raise InvalidRequestAppError(message="Request body must be a JSON object")
    if "value" not in payload:
        raise RequiredFieldAppError(message="Field 'value' is required", field_name="value")

    try:
        return SettingUpdateRequest.model_validate(payload)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ValidationAppError(message="Invalid request body", details=problems) from exc


async def update_setting_value(request: Request) -> dict:
    """Validate and store a new setting value.

    Changing a setting invalidates the cached rate limiting policy so new
    limits apply to the next request.
    """
    require_admin_key(request)
    body = await _read_update_body(request)
    updated = update_setting(
        _settings_cache(request),
        request.path_params["section_path"],
        request.path_params["setting_name"],
        body.value,
        expected_value=body.expected_value,
    )
    get_admission_service(request).invalidate_config()
    return _serialize(updated, request)


router.add_api_route("/settings", connection_handler(fetch_settings, "fetchSettings"), methods=["GET"])
router.add_api_route(
    "/settings/{section_path}/{setting_name}",
    connection_handler(fetch_setting, "fetchSetting"),
    methods=["GET"],
)
router.add_api_route(
    "/settings/{section_path}/{setting_name}",
    connection_handler(update_setting_value, "updateSetting"),
    methods=["PUT"],
)
