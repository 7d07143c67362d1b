"""Reading and updating application settings.

Values are validated against the JSON schema stored with each setting before
they replace the cached row.
"""

from __future__ import annotations

import logging
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from app.adapters.settings.base import AppSetting
from app.adapters.settings.in_memory import InMemorySettingsCache, coerce_setting_value
from app.core.errors import ConflictAppError, NotFoundAppError, ValidationAppError

logger = logging.getLogger(__name__)


def validate_setting_value(setting: AppSetting, value: Any) -> list[str]:
    """Validate ``value`` against the setting's JSON schema.

    String values are converted to the schema type first, so ``"100"`` is a
    valid integer setting. Settings without a schema accept any value.

    Returns:
        A list of human-readable problems; empty when the value is valid.
    """

    schema = setting.validation_schema
    if not schema:
        return []

    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as exc:
        logger.error(
            "settings.invalid_schema",
            extra={"setting_name": setting.setting_name, "error_msg": exc.message},
        )
        return [f"setting schema is invalid: {exc.message}"]

    try:
        candidate = coerce_setting_value(value, schema)
    except (TypeError, ValueError) as exc:
        return [str(exc)]

    problems = []
    for error in Draft202012Validator(schema).iter_errors(candidate):
        location = " -> ".join(str(part) for part in error.path)
        problems.append(f"{location}: {error.message}" if location else error.message)
    return problems


def get_setting_or_raise(cache: InMemorySettingsCache, section_path: str, setting_name: str) -> AppSetting:
    setting = cache.get_setting(section_path, setting_name)
    if setting is None:
        raise NotFoundAppError(message=f"Setting {section_path}/{setting_name} not found")
    return setting


def _matches_stored_value(setting: AppSetting, expected_value: Any) -> bool:
    # Seeds store "100" while clients echo back the typed 100
    schema = setting.validation_schema
    try:
        return coerce_setting_value(setting.value, schema) == coerce_setting_value(expected_value, schema)
    except (TypeError, ValueError):
        return False


def update_setting(
    cache: InMemorySettingsCache,
    section_path: str,
    setting_name: str,
    value: Any,
    *,
    expected_value: Any = None,
) -> AppSetting:
    """Validate and store a new value for an existing setting.

    Args:
        cache: Settings cache holding the row.
        section_path: Section of the setting.
        setting_name: Name of the setting.
        value: New value.
        expected_value: If given, the update only applies when the current
            stored value still equals it once both are read with the
            setting's schema type (optimistic concurrency).

    Returns:
        The updated setting row.

    Raises:
        NotFoundAppError: The setting does not exist.
        ConflictAppError: ``expected_value`` no longer matches, or the row
            was replaced while this update was being validated.
        ValidationAppError: The value violates the setting's schema.
    """

    current = get_setting_or_raise(cache, section_path, setting_name)

    if expected_value is not None and not _matches_stored_value(current, expected_value):
        raise ConflictAppError(
            message=f"Setting {setting_name} was modified concurrently",
            details=f"expected {expected_value!r}, found {current.value!r}",
        )

    problems = validate_setting_value(current, value)
    if problems:
        logger.warning(
            "settings.validation_failed",
            extra={"setting_name": setting_name, "problems": problems},
        )
        raise ValidationAppError(
            message=f"Invalid value for setting {setting_name}",
            details="; ".join(problems),
        )

    updated = current.model_copy(update={"value": value})
    if expected_value is None:
        cache.update_cached_setting(updated)
    elif not cache.replace_if(current, updated):
        raise ConflictAppError(
            message=f"Setting {setting_name} was modified concurrently",
            details=f"expected {expected_value!r}, row changed during update",
        )
    return updated
