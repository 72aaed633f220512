"""
Structured JSON logging for the HR approval kernel.

Every logger lives under ``hr_kernel``.  Records are emitted as one JSON
object per line: timestamp, level, logger, message, the request context
bound through ``LogContext`` and any ``extra`` fields.  Engine exceptions
contribute their ``code`` and public attributes as ``exc_*`` fields.
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

_LOGGER_PREFIX = "hr_kernel"

# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

_CONTEXT_FIELDS = frozenset({"correlation_id", "actor_id", "submission_id", "step_id"})

_context: ContextVar[dict[str, str]] = ContextVar("hr_log_context", default={})


class LogContext:
    """Request-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - _CONTEXT_FIELDS
        if unknown:
            raise TypeError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context; None is ignored."""
        _context.set(cls._merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields inside a ``with`` block and restore the previous ones."""
        token = _context.set(cls._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED and key not in entry
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            entry["exc_type"] = type(exc).__name__
            entry["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                entry["exc_code"] = code
                entry.update(
                    (f"exc_{key}", value)
                    for key, value in vars(exc).items()
                    if not key.startswith("_")
                )
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``hr_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_setup_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to ``hr_kernel``.  Later calls are no-ops."""
    global _configured
    with _setup_lock:
        if _configured:
            return
        _configured = True

        root = logging.getLogger(_LOGGER_PREFIX)
        root.setLevel(level)
        root.propagate = False
        handler = handler or logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        root.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _configured
    with _setup_lock:
        _configured = False
        root = logging.getLogger(_LOGGER_PREFIX)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
