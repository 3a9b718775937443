"""
Structured JSON logging for the approval kernel.

Every record under the ``approval_kernel`` logger namespace is written as one
JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": "approval_vote_recorded",
     "request_id": ..., "actor_id": ..., "decision": "approved", ...}

Request-scoped fields (``correlation_id``, ``request_id``, ``actor_id``,
``rule_id``) live in context variables so that every log line emitted while
a vote is being processed carries them, across threads and async tasks.
Fields passed through ``extra=`` are appended; a context field always wins
over an ``extra`` key of the same name.
"""

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
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "approval_kernel"

_CONTEXT_FIELDS = ("correlation_id", "request_id", "actor_id", "rule_id")

_context_vars: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"approval_log_{name}", default=None)
    for name in _CONTEXT_FIELDS
}


class LogContext:
    """Request-scoped log fields backed by ``contextvars``."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Set known context fields.  ``None`` values are ignored."""
        for name, value in fields.items():
            var = _context_vars.get(name)
            if var is not None and value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        """Non-empty context fields, in declaration order."""
        values = ((name, _context_vars[name].get()) for name in _CONTEXT_FIELDS)
        return {name: value for name, value in values if value is not None}

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of a block, restoring the previous values.

        Unknown field names and ``None`` values are skipped.
        """
        tokens = [
            (_context_vars[name], _context_vars[name].set(str(value)))
            for name, value in fields.items()
            if name in _context_vars and value is not None
        ]
        try:
            yield
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _to_json(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (UUID, Decimal)):
        return str(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


# Attributes every LogRecord has; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Structured attributes of ApprovalKernelError subclasses (request_id, ...)
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            fields[f"exc_{key}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


def get_logger(name: str) -> logging.Logger:
    """Logger ``approval_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``approval_kernel`` logger.

    Only the first call has an effect until ``reset_logging()``.
    """
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_LOGGER_PREFIX)
    root.setLevel(level)
    root.propagate = False

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``.  FOR TESTING ONLY."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
