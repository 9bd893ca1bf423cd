"""
Structured JSON logging for the invoice engine.

Every record under the ``invoice_kernel`` logger hierarchy is rendered as a
single JSON object per line:

    {"ts": "...", "level": "INFO", "logger": "invoice_kernel.engines.posting",
     "message": "posting_preview_built", "invoice_id": "inv-7", "entry_count": 5}

Computation-scoped identifiers (correlation, invoice, line, actor) live in
``LogContext`` and are merged into every record emitted while they are set.
Values passed through ``extra=`` become top-level keys. Decimal amounts are
written as strings so no precision is lost in the log stream.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

ROOT_LOGGER_NAME = "invoice_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "invoice_id",
    "line_id",
    "actor_id",
)

_EMPTY: Mapping[str, str] = {}
_context: ContextVar[Mapping[str, str]] = ContextVar("invoice_log_context", default=_EMPTY)


def _merged(fields: Mapping[str, str | None]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    merged = dict(_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    return merged


class LogContext:
    """
    Per-task log fields backed by a single ContextVar.

    The stored mapping is replaced, never mutated, so a value bound in one
    asyncio task or thread never leaks into another.
    """

    @staticmethod
    def set(**fields: str | None) -> None:
        """Merge non-None ``fields`` into the current context."""
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set(_EMPTY)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[dict[str, str]]:
        """Apply ``fields`` for the duration of a ``with`` block."""
        token = _context.set(_merged(fields))
        try:
            yield dict(_context.get())
        finally:
            _context.reset(token)


# Attributes every LogRecord carries; anything else arrived through extra=.
_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        out: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        out.update(_context.get())
        out.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and key not in out
        )
        if record.exc_info and record.exc_info[1] is not None:
            out.update(_exception_fields(record.exc_info[1]))
            out["traceback"] = self.formatException(record.exc_info)
        return json.dumps(out, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Return ``invoice_kernel.<name>``."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_install_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``invoice_kernel`` hierarchy.

    Only the first call has an effect until ``reset_logging()`` runs. The
    hierarchy stops propagating to the root logger so host applications with
    their own root handlers do not print every record twice.
    """
    global _installed_handler
    with _install_lock:
        if _installed_handler is not None:
            return
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(target)
        _installed_handler = target


def reset_logging() -> None:
    """Detach the installed handler and restore propagation. Used by tests."""
    global _installed_handler
    with _install_lock:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if _installed_handler is not None:
            root.removeHandler(_installed_handler)
            _installed_handler = None
        root.setLevel(logging.NOTSET)
        root.propagate = True
