"""Tests for sensitive data filtering and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)


@pytest.fixture
def capture():
    """Logger with a redacting JSON handler writing into a buffer."""

    def _build(name: str) -> tuple[logging.Logger, StringIO]:
        logger = logging.getLogger(name)
        logger.setLevel(logging.INFO)
        logger.handlers.clear()
        logger.propagate = False

        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.addFilter(RequestIdFilter())
        handler.addFilter(SensitiveDataFilter())
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        return logger, stream

    yield _build
    clear_request_id()


def test_sensitive_filter_redacts_api_keys(capture):
    """Ensure SensitiveDataFilter redacts API key fields."""
    logger, stream = capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()

    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_allows_safe_fields(capture):
    """Verify limiter event fields pass through unmodified."""
    logger, stream = capture("test_safe_fields")

    logger.info(
        "connection_handler.response.sent.200",
        extra={
            "client_id": "203.0.113.7",
            "controller": "fetchSettings",
            "status_code": 200,
            "duration_ms": 1.5,
        },
    )

    record = json.loads(stream.getvalue())

    assert record["message"] == "connection_handler.response.sent.200"
    assert record["controller"] == "fetchSettings"
    assert record["status_code"] == 200
    assert "[REDACTED]" not in stream.getvalue()


def test_sensitive_filter_redacts_nested_dicts(capture):
    """Ensure nested sensitive fields are redacted."""
    logger, stream = capture("test_nested")

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "Authorization": "Bearer secret-token",
                "user-agent": "pytest",
            },
            "attempts": [{"password": "hunter2"}],
        },
    )

    output = stream.getvalue()

    assert "secret-token" not in output
    assert "hunter2" not in output
    assert "pytest" in output


def test_request_id_from_context_is_attached(capture):
    logger, stream = capture("test_request_id")
    set_request_id("req-123")

    logger.info("with_context")

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_exception_is_formatted(capture):
    logger, stream = capture("test_exception")

    try:
        raise RuntimeError("sweep failed")
    except RuntimeError:
        logger.exception("rate_limit.sweep_failed")

    record = json.loads(stream.getvalue())
    assert record["level"] == "error"
    assert "RuntimeError: sweep failed" in record["exception"]
