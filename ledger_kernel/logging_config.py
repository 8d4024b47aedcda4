"""
Logging -- one JSON object per line under the ``ledger_kernel`` namespace.

Request-scoped identifiers (tenant, actor, document, journal entry) live in
context variables so that every line emitted while a posting or reversal is
in flight carries them without threading them through each call.  Services
bind them once at the top of an operation::

    with LogContext.bind(tenant_id=tenant_id, document_id=document_id):
        ...
        logger.info("document_posted", extra={"document_no": no})

Values passed via ``extra=`` are merged into the JSON object verbatim;
UUIDs, Decimals, dates and enums are rendered as strings.
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
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_NAMESPACE = "ledger_kernel"

_CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "document_id",
    "entry_id",
    "request_id",
)

_context_vars: dict[str, ContextVar[str | None]] = {
    field: ContextVar(f"ledger_log_{field}", default=None) for field in _CONTEXT_FIELDS
}


def _context_var(field: str) -> ContextVar[str | None]:
    try:
        return _context_vars[field]
    except KeyError:
        raise KeyError(f"Unknown log context field: {field}") from None


class LogContext:
    """Request-scoped fields attached to every log line (thread and task local)."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Assign fields for the rest of the current context; None leaves a field as is."""
        for field, value in fields.items():
            var = _context_var(field)
            if value is not None:
                var.set(str(value))

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            field: value
            for field, var in _context_vars.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context_vars.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [
            (var, var.set(str(value)))
            for var, value in ((_context_var(f), v) for f, v in fields.items())
            if value is not None
        ]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


def _to_json(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                line.setdefault(key, value)
        if record.exc_info and record.exc_info[1] is not None:
            line.update(self._exception_fields(record.exc_info[1]))
            line["traceback"] = self.formatException(record.exc_info)
        return json.dumps(line, default=_to_json)

    @staticmethod
    def _exception_fields(exc: BaseException) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # LedgerKernelError subclasses keep their context as public attributes
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        return fields


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_handler_installed = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the ``ledger_kernel`` logger.

    Only the first call has an effect until :func:`reset_logging` runs.
    """
    global _handler_installed
    with _setup_lock:
        if _handler_installed:
            return
        _handler_installed = True

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.setLevel(level)
    namespace_logger.propagate = False
    namespace_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop the installed handler so tests can configure again."""
    global _handler_installed
    with _setup_lock:
        _handler_installed = False
    namespace_logger = logging.getLogger(_NAMESPACE)
    namespace_logger.handlers.clear()
    namespace_logger.setLevel(logging.WARNING)
