"""Request-facing log helper.

Turns a FastAPI request plus an outcome into a LogEntry, submits it to the
pipeline, and returns the matching response envelope.

Usage:
    handler = LogHandler(pipeline)
    return handler.log_error(request, exc, status_code=exc.status_code)
    return handler.log_success(request, data, "Signed in", should_log=True)
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ticketzetu.api import responses
from ticketzetu.logs.caller import CallerInspector
from ticketzetu.logs.pipeline import LogPipeline
from ticketzetu.models.enums import LogLevel
from ticketzetu.schemas.logs import LogEntry

logger = logging.getLogger(__name__)

# Checked in order; the first non-empty header wins
IP_HEADERS: tuple[str, ...] = (
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "true-client-ip",
)

_REDACTED = "[redacted]"
_SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie"})
_SENSITIVE_FIELDS = frozenset({"password", "new_password", "token", "reset_token", "code"})


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring the usual proxy headers."""
    for header in IP_HEADERS:
        value = request.headers.get(header, "").strip()
        if not value:
            continue
        if header == "x-forwarded-for":
            value = value.split(",")[0].strip()
        if value:
            return value
    if request.client is not None:
        return request.client.host
    return ""


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: (_REDACTED if k.lower() in _SENSITIVE_FIELDS else _redact(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact(v) for v in data]
    return data


def request_context(request: Request) -> str:
    """JSON blob of query, body, path params and headers for a log record.

    The body is only included when the route stored its parsed payload on
    `request.state.body`.
    """
    headers = {
        k: (_REDACTED if k.lower() in _SENSITIVE_HEADERS else v) for k, v in request.headers.items()
    }
    context = {
        "query": dict(request.query_params),
        "body": _redact(getattr(request.state, "body", None)),
        "params": dict(request.path_params),
        "headers": headers,
    }
    return json.dumps(context, default=str)


class LogHandler:
    """Builds log entries from requests and answers with the envelope."""

    def __init__(self, pipeline: LogPipeline, inspector: CallerInspector | None = None) -> None:
        self._pipeline = pipeline
        self._inspector = inspector or CallerInspector()

    def build_entry(
        self,
        request: Request | None,
        level: LogLevel,
        message: str,
        status_code: int | None = None,
        exc: BaseException | None = None,
        user_id: str | None = None,
    ) -> LogEntry:
        caller = self._inspector.capture(with_stack=level is LogLevel.ERROR, exc=exc)
        fields: dict[str, Any] = {
            "level": level,
            "message": message,
            "status_code": status_code,
            "file": caller.file,
            "line": caller.line,
            "stack": caller.stack,
            "user_id": user_id,
        }
        if request is not None:
            fields.update(
                route=request.url.path,
                method=request.method,
                ip_address=client_ip(request) or None,
                user_agent=request.headers.get("user-agent") or None,
                context=request_context(request),
            )
            if user_id is None:
                fields["user_id"] = getattr(request.state, "user_id", None)
        return LogEntry(**fields)

    def record(
        self,
        request: Request | None,
        level: LogLevel,
        message: str,
        status_code: int | None = None,
        exc: BaseException | None = None,
    ) -> None:
        """Submit an entry; never raises."""
        try:
            self._pipeline.submit(self.build_entry(request, level, message, status_code, exc))
        except Exception:
            logger.exception("Could not build log entry for %r", message)

    # ── Envelope helpers ─────────────────────────────────────────────

    def log_error(
        self,
        request: Request,
        exc: BaseException | str,
        status_code: int = 500,
    ) -> JSONResponse:
        message = str(exc) or "internal server error"
        self.record(
            request,
            LogLevel.ERROR,
            message,
            status_code,
            exc if isinstance(exc, BaseException) else None,
        )
        return responses.failed(message, status_code)

    def log_warning(
        self,
        request: Request,
        message: str,
        status_code: int = 200,
        data: Any = None,
    ) -> JSONResponse:
        self.record(request, LogLevel.WARNING, message, status_code)
        return responses.warning(message, data, status_code)

    def log_info(self, request: Request, message: str) -> None:
        """Record an informational entry without building a response."""
        self.record(request, LogLevel.INFO, message, 200)

    def log_success(
        self,
        request: Request,
        data: Any,
        message: str,
        should_log: bool = False,
        status_code: int = 200,
    ) -> JSONResponse:
        if should_log:
            self.record(request, LogLevel.INFO, message, status_code)
        return responses.success(message, data, status_code)
