"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme to the admin (``/v1``) operations,
documents the path parameters that controller logic reads from
``request.path_params``, and registers tag descriptions.
"""

from __future__ import annotations

import re
from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Settings", "description": "Read and update application settings."},
    {"name": "Rate limiting", "description": "Inspect and maintain the rate limiter."},
    {"name": "Health", "description": "Liveness checks (never rate limited)."},
]

_PATH_PARAM = re.compile(r"{([^}]+)}")


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation with security, parameters and tags."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key.",
            },
        )

        tags = schema.setdefault("tags", [])
        known = {tag.get("name") for tag in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in known)

        for path, operations in schema.get("paths", {}).items():
            path_params = _PATH_PARAM.findall(path)
            for operation in operations.values():
                if not isinstance(operation, dict):
                    continue
                if path.startswith("/v1/"):
                    operation.setdefault("security", [{"ApiKeyAuth": []}])
                documented = {p.get("name") for p in operation.get("parameters", [])}
                for name in path_params:
                    if name not in documented:
                        operation.setdefault("parameters", []).append(
                            {"name": name, "in": "path", "required": True, "schema": {"type": "string"}}
                        )

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
