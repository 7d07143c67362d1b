"""Uniform request lifecycle for controller logic.

``connection_handler`` turns a plain controller function into a FastAPI
endpoint that:

1. runs the rate limit admission check before anything else,
2. invokes the controller only when the request is admitted,
3. wraps plain return values in a ``{"success": true, "data": ...}`` envelope,
4. maps ``AppError`` kinds to HTTP statuses and anything else to a generic 500,
5. publishes one observability event per lifecycle milestone.

Usage:
    async def fetch_things(request: Request) -> list[dict]:
        ...

    router.add_api_route("/things", connection_handler(fetch_things, "fetchThings"))
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Any, Awaitable, Callable

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.adapters.rate_limit.base import RejectionReason
from app.core.errors import (
    GENERIC_ERROR_MESSAGE,
    AppError,
    ErrorKind,
    build_error_body,
    error_body_for,
)
from app.core.events import CONNECTION_HANDLER_EVENTS, EventDefinition
from app.core.rate_limit import build_rate_limit_headers, get_admission_service, resolve_client_id

logger = logging.getLogger(__name__)

ControllerLogic = Callable[[Request], Any | Awaitable[Any]]

BLOCKED_MESSAGE = "Too many requests. You have been temporarily blocked. Please try again later."
RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please slow down your requests."
ADMISSION_UNAVAILABLE_MESSAGE = "Rate limiting service unavailable. Please try again later."


def _error_response(status_code: int, body: dict[str, Any], headers: dict[str, str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=headers or None)


async def _invoke(logic: ControllerLogic, request: Request) -> Any:
    if inspect.iscoroutinefunction(logic):
        return await logic(request)
    result = await run_in_threadpool(logic, request)
    if inspect.isawaitable(result):
        result = await result
    return result


def connection_handler(
    logic: ControllerLogic,
    controller_name: str | None = None,
) -> Callable[[Request], Awaitable[Response]]:
    """Wrap controller logic with admission control and response shaping.

    Args:
        logic: Callable taking the request. May be sync or async, may return
            any JSON-serializable value or a ready-made ``Response``, and may
            raise ``AppError`` (mapped to its HTTP status) or any other
            exception (sent as a generic 500).
        controller_name: Name used in events and as the endpoint name;
            defaults to the function name.

    Returns:
        An async FastAPI endpoint taking the ``Request``.
    """

    name = controller_name or getattr(logic, "__name__", "controller")

    async def endpoint(request: Request) -> Response:
        started = time.perf_counter()
        service = get_admission_service(request)
        client_id = resolve_client_id(request)

        def observe(event: EventDefinition, **payload: Any) -> None:
            service.events.publish(
                event,
                {
                    "client_id": client_id,
                    "controller": name,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    **payload,
                },
            )

        def send(response: Response, outcome: str) -> Response:
            body = getattr(response, "body", b"") or b""
            observe(
                CONNECTION_HANDLER_EVENTS.response_sent(response.status_code),
                status_code=response.status_code,
                outcome=outcome,
                response_size=len(body),
            )
            return response

        observe(
            CONNECTION_HANDLER_EVENTS.REQUEST_RECEIVED,
            method=request.method,
            path=request.url.path,
        )

        # Admission
        try:
            config, decision = service.check(client_id)
        except AppError as exc:
            observe(
                CONNECTION_HANDLER_EVENTS.CONFIG_FAILED,
                error_code=exc.code,
                error_msg=exc.details or exc.message,
                outcome="config_failed",
            )
            body = build_error_body(
                ErrorKind.INTERNAL_SERVER_ERROR,
                ADMISSION_UNAVAILABLE_MESSAGE,
                details=exc.details or exc.message,
            )
            return send(_error_response(exc.status_code, body, {}), "config_failed")
        except Exception as exc:
            logger.exception(
                "connection_handler.admission_error",
                extra={"controller": name, "error_type": type(exc).__name__},
            )
            body = build_error_body(ErrorKind.INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE)
            return send(_error_response(500, body, {}), "error")

        headers = build_rate_limit_headers(config, decision)
        observe(
            CONNECTION_HANDLER_EVENTS.ADMISSION_CHECKED,
            outcome="admitted" if decision.allowed else decision.reason.value,
            remaining_requests=decision.remaining_requests,
        )

        if not decision.allowed:
            blocked = decision.reason is RejectionReason.TEMPORARILY_BLOCKED
            kind = ErrorKind.TEMPORARILY_BLOCKED if blocked else ErrorKind.RATE_LIMIT_EXCEEDED
            observe(
                CONNECTION_HANDLER_EVENTS.REJECTED,
                reason=decision.reason.value,
                retry_after=decision.retry_after,
                outcome="rejected",
            )
            body = build_error_body(
                kind,
                BLOCKED_MESSAGE if blocked else RATE_LIMITED_MESSAGE,
                retry_after=decision.retry_after,
            )
            return send(_error_response(429, body, headers), decision.reason.value)

        # Business logic
        observe(CONNECTION_HANDLER_EVENTS.LOGIC_STARTED)
        try:
            result = await _invoke(logic, request)
            if not isinstance(result, Response):
                result = JSONResponse(
                    status_code=200,
                    content={"success": True, "data": jsonable_encoder(result)},
                )
        except AppError as exc:
            observe(
                CONNECTION_HANDLER_EVENTS.LOGIC_FAILED,
                error_code=exc.code,
                error_msg=exc.message,
                outcome="error",
            )
            return send(_error_response(exc.status_code, error_body_for(exc), headers), "error")
        except Exception as exc:
            logger.exception(
                "connection_handler.unhandled_error",
                extra={"controller": name, "error_type": type(exc).__name__},
            )
            observe(
                CONNECTION_HANDLER_EVENTS.LOGIC_FAILED,
                error_code=ErrorKind.INTERNAL_SERVER_ERROR.value,
                error_type=type(exc).__name__,
                outcome="error",
            )
            body = build_error_body(ErrorKind.INTERNAL_SERVER_ERROR, GENERIC_ERROR_MESSAGE)
            return send(_error_response(500, body, headers), "error")

        observe(CONNECTION_HANDLER_EVENTS.LOGIC_COMPLETED, outcome="success")
        for header, value in headers.items():
            result.headers.setdefault(header, value)
        return send(result, "success")

    endpoint.__name__ = name
    endpoint.__qualname__ = name
    endpoint.__doc__ = logic.__doc__
    return endpoint
