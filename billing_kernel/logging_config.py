"""
Structured JSON logging for the billing ledger.

Every record is written as one JSON object per line.  Request-scoped
fields (correlation, tenant, actor, document) travel in a ContextVar so
service code never has to pass them around; LedgerEngine binds them at
the start of each call.

Loggers live under the ``billing_kernel`` namespace.  Nothing is emitted
until configure_logging() installs a handler.
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
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from functools import singledispatch
from typing import Any, Iterator, Mapping
from uuid import UUID

ROOT_LOGGER_NAME = "billing_kernel"

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "tenant_id", "actor_id", "document_id")

_request_fields: ContextVar[Mapping[str, str]] = ContextVar("billing_log_context", default={})


def _merged(updates: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(updates) - set(CONTEXT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
    fields = dict(_request_fields.get())
    fields.update({k: str(v) for k, v in updates.items() if v is not None})
    return fields


class LogContext:
    """
    Request-scoped log fields.

    None values are ignored by set() and bind(), so callers can pass
    optional identifiers straight through.
    """

    @staticmethod
    def set(**fields: Any) -> None:
        _request_fields.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_request_fields.get())

    @staticmethod
    def clear() -> None:
        _request_fields.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Overlay fields for the duration of a with-block."""
        token = _request_fields.set(_merged(fields))
        try:
            yield LogContext
        finally:
            _request_fields.reset(token)


# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


@singledispatch
def _jsonable(value: Any) -> Any:
    return str(value)


@_jsonable.register
def _(value: Enum) -> Any:
    return value.value


@_jsonable.register(date)
def _(value: date) -> str:
    return value.isoformat()


@_jsonable.register(UUID)
@_jsonable.register(Decimal)
def _(value: Any) -> str:
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # BillingError subclasses keep their context as public attributes
    for name, value in vars(exc).items():
        if name != "code" and not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: core keys, request context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in entry
        )

        exc_info = record.exc_info
        if exc_info and exc_info[1] is not None:
            entry.update(_exception_fields(exc_info[1]))
            entry["traceback"] = self.formatException(exc_info)

        return json.dumps(entry, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Return ``billing_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_setup_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the billing_kernel logger.

    Only the first call has any effect; reset_logging() re-arms it.
    ``level`` accepts a number or a name such as ``"DEBUG"`` (the form
    LoggingSettings carries).
    """
    global _installed_handler
    with _setup_lock:
        if _installed_handler is not None:
            return
        _installed_handler = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        _installed_handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level.upper() if isinstance(level, str) else level)
        root.propagate = False
        root.addHandler(_installed_handler)


def reset_logging() -> None:
    """Remove handlers and restore the WARNING default. Used by tests."""
    global _installed_handler
    with _setup_lock:
        _installed_handler = None
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.handlers.clear()
        root.setLevel(logging.WARNING)
