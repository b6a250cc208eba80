"""Structured logging configuration for the metrics forwarder.

Every record carries the run and scope it was emitted under. Both live in
contextvars: each scope is processed in its own asyncio task, so a scope set
inside one task is never seen by its siblings.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

_CONTEXT_FIELDS: Dict[str, ContextVar] = {
    "run_id": ContextVar("run_id", default=None),
    "scope": ContextVar("scope", default=None),
}


def set_log_context(run_id: Optional[str] = None, scope: Optional[str] = None):
    """Set contextual logging fields for the current async context."""
    for name, value in (("run_id", run_id), ("scope", scope)):
        if value is not None:
            _CONTEXT_FIELDS[name].set(value)


def clear_log_context():
    """Clear all contextual logging fields."""
    for var in _CONTEXT_FIELDS.values():
        var.set(None)


def get_log_context() -> Dict[str, str]:
    """Return the contextual fields that are currently set."""
    context = {}
    for name, var in _CONTEXT_FIELDS.items():
        value = var.get()
        if value:
            context[name] = value
    return context


class ContextFilter(logging.Filter):
    """Copies the current log context onto each record as ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = get_log_context()
        return True


def _record_context(record: logging.LogRecord) -> Dict[str, str]:
    # Records that bypassed ContextFilter fall back to the live context
    return getattr(record, "context", None) or get_log_context()


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for CloudWatch and other log indexers."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_context(record),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


class HumanReadableFormatter(logging.Formatter):
    """Single-line format for local runs, with the context appended in brackets."""

    def format(self, record: logging.LogRecord) -> str:
        msg = (
            f"[{self.formatTime(record, self.datefmt)}] "
            f"{record.levelname:8s} {record.name}: {record.getMessage()}"
        )
        context = _record_context(record)
        if context:
            msg += " [" + ", ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if record.exc_info and record.exc_info[1]:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


def configure_logging(
    environment: str = "development",
    log_level: str = "INFO",
    stream: Optional[TextIO] = None,
):
    """Configure root logging for one invocation.

    Args:
        environment: "production" for JSON output, anything else for human-readable.
        log_level: Logging level name; unknown names fall back to INFO.
        stream: Destination, stdout by default. The console command passes
            stderr so its JSON result stays alone on stdout.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Lambda pre-installs a handler on the root logger
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(ContextFilter())
    if environment == "production":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
