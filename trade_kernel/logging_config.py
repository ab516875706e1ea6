"""
One-JSON-object-per-line logging for the trade kernel.

Every record carries the batch fields held in ``LogContext`` (correlation
id, operation, actor, and the document or reference being worked on) plus
whatever the caller passed in ``extra``.  Kernel exceptions logged with
``exc_info`` contribute their code and public attributes as ``exc_*``.
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
from datetime import date, datetime, timezone
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

_ROOT = "trade_kernel"

_EMPTY: Mapping[str, str] = MappingProxyType({})
_fields: ContextVar[Mapping[str, str]] = ContextVar("trade_log_fields", default=_EMPTY)


class LogContext:
    """
    Batch-scoped fields stamped onto every record.

    Values live in a single context variable holding a read-only mapping,
    so threads and tasks each see their own copy.
    """

    FIELDS = ("correlation_id", "operation", "actor_id", "document_ref", "reference_id")

    @classmethod
    def _merged(cls, changes: dict[str, str | None]) -> Mapping[str, str]:
        unknown = set(changes) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"unknown log context field(s): {sorted(unknown)}")
        merged = dict(_fields.get())
        merged.update({k: v for k, v in changes.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **changes: str | None) -> None:
        """Overwrite the given fields; ``None`` leaves a field as it was."""
        _fields.set(cls._merged(changes))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_fields.get())

    @classmethod
    def clear(cls) -> None:
        _fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **changes: str | None) -> Iterator[type["LogContext"]]:
        token = _fields.set(cls._merged(changes))
        try:
            yield cls
        finally:
            _fields.reset(token)

    @classmethod
    @contextmanager
    def scoped(cls) -> Iterator[type["LogContext"]]:
        """Anything set inside the block is dropped on exit."""
        saved = _fields.get()
        try:
            yield cls
        finally:
            _fields.set(saved)


_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    # UUID, Decimal and anything else unexpected
    return str(value)


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        error = record.exc_info[1] if record.exc_info else None
        if error is not None:
            payload["exc_type"] = type(error).__name__
            payload["exc_message"] = str(error)
            code = getattr(error, "code", None)
            if code is not None:
                payload["exc_code"] = code
            for key, value in vars(error).items():
                if key[0] != "_" and key not in ("args", "code", "message"):
                    payload["exc_" + key] = value
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(*, level: int = logging.INFO, stream: Any = None) -> None:
    """Attach one JSON stream handler to the ``trade_kernel`` logger; later calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

    root = logging.getLogger(_ROOT)
    root.setLevel(level)
    root.propagate = False
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    root.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging (used between tests)."""
    global _configured
    with _configure_lock:
        _configured = False
    root = logging.getLogger(_ROOT)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
