"""httpx event hooks for outgoing request IDs, logging and metrics."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Awaitable, Callable

import httpx

from admin_console.core.config import settings
from admin_console.core.metrics import emit_http_request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_START_KEY = "admin_console.started_at"

# Sensitive fields to redact from logs
SENSITIVE_FIELDS = {
    "password",
    "token",
    "access_token",
    "refresh_token",
    "secret",
    "api_key",
    "authorization",
    "cookie",
}


def _redact_sensitive_data(data: dict | None) -> dict | None:
    """Redact sensitive fields from logging data."""
    if not data:
        return data

    redacted = {}
    for key, value in data.items():
        key_lower = key.lower()
        if any(field in key_lower for field in SENSITIVE_FIELDS):
            redacted[key] = "***REDACTED***"
        elif isinstance(value, dict):
            redacted[key] = _redact_sensitive_data(value)
        elif isinstance(value, list):
            redacted[key] = [
                _redact_sensitive_data(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value
    return redacted


async def add_request_id(request: httpx.Request) -> None:
    """Attach an X-Request-ID header unless the caller already set one."""
    if REQUEST_ID_HEADER not in request.headers:
        request.headers[REQUEST_ID_HEADER] = str(uuid.uuid4())
    request.extensions[_START_KEY] = time.perf_counter()


async def log_request(request: httpx.Request) -> None:
    """Log the outgoing request as a structured JSON document."""
    request_id = request.headers.get(REQUEST_ID_HEADER, "unknown")
    request_log: dict[str, Any] = {
        "timestamp": time.time(),
        "level": "INFO",
        "type": "http_request",
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "query_params": _redact_sensitive_data(dict(request.url.params)),
        "headers": _redact_sensitive_data(dict(request.headers)),
    }

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            request_log["request_body_size"] = int(content_length)
        except ValueError:
            pass

    logger.info(json.dumps(request_log, default=str), extra={"request_id": request_id})


async def log_response(response: httpx.Response) -> None:
    """Log the response status and timing, and emit request metrics."""
    request = response.request
    request_id = request.headers.get(REQUEST_ID_HEADER, "unknown")
    started_at = request.extensions.get(_START_KEY)
    duration_ms = (
        (time.perf_counter() - started_at) * 1000 if started_at is not None else 0.0
    )

    response_log = {
        "timestamp": time.time(),
        "level": "INFO" if response.status_code < 400 else "WARNING",
        "type": "http_response",
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": round(duration_ms, 2),
    }

    log_level = logging.INFO if response.status_code < 400 else logging.WARNING
    logger.log(
        log_level, json.dumps(response_log, default=str), extra={"request_id": request_id}
    )

    emit_http_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=duration_ms,
        request_id=request_id,
    )


def build_event_hooks() -> dict[str, list[Callable[..., Awaitable[None]]]]:
    """Event hooks for an ``httpx.AsyncClient``.

    The request ID hook always runs; logging hooks follow
    ``settings.enable_request_logging``.
    """
    request_hooks: list[Callable[..., Awaitable[None]]] = [add_request_id]
    response_hooks: list[Callable[..., Awaitable[None]]] = []

    if settings.enable_request_logging:
        request_hooks.append(log_request)
        response_hooks.append(log_response)

    return {"request": request_hooks, "response": response_hooks}
