"""Structured logging configuration.

Provides:
- JSON-formatted log output for machine parsing (default) or plain text
- Correlation fields (request_id, user_id, workspace_id) carried in
  context variables and injected into every record
- Flask middleware that assigns ``X-Request-ID`` and logs request
  start/completion
- ``audit_log`` for one structured ``git_audit`` entry per git step

Usage:
    from workspace_git.logging_config import setup_logging, set_context

    setup_logging()
    set_context(request_id="req-123", user_id="user-1")
    logger.info("Processing request")
    # {"timestamp": "...", "level": "INFO", "message": "Processing request",
    #  "request_id": "req-123", "user_id": "user-1", ...}
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

_CONTEXT_KEYS = ("request_id", "user_id", "workspace_id")

_context: ContextVar[dict] = ContextVar("log_context", default={})

LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FORMAT_ENV = "LOG_FORMAT"      # "json" or "text"

audit_logger = logging.getLogger("git_audit")

# Max bytes of stdout/stderr to include in audit log entries
AUDIT_OUTPUT_TRUNCATE = 1024

# Standard LogRecord attributes that are never copied as extra fields
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


# ---------------------------------------------------------------------------
# Correlation context
# ---------------------------------------------------------------------------


def set_context(**fields: Any) -> None:
    """Merge *fields* (None values ignored) into the current log context."""
    updates = {k: v for k, v in fields.items() if v is not None}
    if updates:
        _context.set({**_context.get(), **updates})


def get_context() -> dict[str, Any]:
    return dict(_context.get())


def clear_context() -> None:
    _context.set({})


def generate_request_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _timestamp(record: logging.LogRecord) -> str:
    return time.strftime(
        "%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)
    ) + f".{int(record.msecs * 1000):06d}Z"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with correlation context and extras."""

    def __init__(self, include_location: bool = True):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(get_context())

        if self.include_location:
            log_dict["location"] = f"{record.filename}:{record.lineno}:{record.funcName}"

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                log_dict[key] = value

        return json.dumps(log_dict, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format.

    2024-01-15T10:30:00.123456Z INFO [module] [req-123] Something happened
    """

    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record), record.levelname, f"[{record.name}]"]

        context = get_context()
        ctx = [str(context[k]) for k in _CONTEXT_KEYS if k in context]
        if ctx:
            parts.append(f"[{'/'.join(ctx)}]")

        parts.append(record.getMessage())
        result = " ".join(parts)
        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)
        return result


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level name. Defaults to ``$LOG_LEVEL`` or INFO.
        format_type: "json" or "text". Defaults to ``$LOG_FORMAT`` or json.
    """
    level = (level or os.environ.get(LOG_LEVEL_ENV, "INFO")).upper()
    format_type = (format_type or os.environ.get(LOG_FORMAT_ENV, "json")).lower()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


# ---------------------------------------------------------------------------
# Audit logging
# ---------------------------------------------------------------------------


def audit_log(
    *,
    event: str,
    action: str,
    decision: str,
    command: Optional[str] = None,
    reason: Optional[str] = None,
    field: Optional[str] = None,
    exit_code: Optional[int] = None,
    stdout: Optional[str] = None,
    stderr: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Emit a structured audit entry for a git step.

    stdout/stderr are truncated to AUDIT_OUTPUT_TRUNCATE characters.
    Denials log at WARNING, everything else at INFO.
    """
    entry: dict[str, Any] = {
        "event": event,
        "action": action,
        "decision": decision,
    }
    if command is not None:
        entry["command"] = command
    if reason:
        entry["reason"] = reason
    if field:
        entry["field"] = field
    if exit_code is not None:
        entry["exit_code"] = exit_code
    if duration_ms is not None:
        entry["duration_ms"] = round(duration_ms, 2)
    for name, value in (("stdout", stdout), ("stderr", stderr)):
        if value is not None:
            entry[name] = value[:AUDIT_OUTPUT_TRUNCATE]
            if len(value) > AUDIT_OUTPUT_TRUNCATE:
                entry[f"{name}_truncated"] = True

    log_fn = audit_logger.warning if decision == "deny" else audit_logger.info
    log_fn("git.%s", event, extra=entry)


# ---------------------------------------------------------------------------
# Flask integration
# ---------------------------------------------------------------------------


def flask_request_middleware(app) -> None:
    """Attach request-id assignment and request logging to a Flask app."""
    from flask import g, request

    logger = logging.getLogger("http")

    @app.before_request
    def _before_request():
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        g.request_id = request_id
        g.request_start_time = time.monotonic()
        clear_context()
        set_context(request_id=request_id)
        logger.info(
            "%s %s", request.method, request.path,
            extra={"event": "request_start"},
        )

    @app.after_request
    def _after_request(response):
        duration_ms = None
        if hasattr(g, "request_start_time"):
            duration_ms = (time.monotonic() - g.request_start_time) * 1000
        logger.info(
            "%s %s -> %s", request.method, request.path, response.status_code,
            extra={
                "event": "request_complete",
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        if hasattr(g, "request_id"):
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def _teardown_request(exception=None):
        clear_context()
