"""
Structured JSON logging for the inventory kernel.

Every kernel module logs through ``get_logger()`` under the
``inventory_kernel`` namespace.  Messages are snake_case event names
(``movement_applied``, ``stock_cas_conflict``, ``ledger_drift_detected``)
and the data travels in ``extra``; StructuredFormatter renders one JSON
object per record.

Request scope:
    ``LogContext.bind()`` attaches the movement or request being handled
    (correlation id, event id, actor, item, operation) to every record
    emitted inside the block.  Nested binds override and then restore the
    outer values.  A bound field wins over an ``extra`` key of the same name.

Kernel errors:
    A record logged with ``exc_info`` for an InventoryKernelError carries the
    error's ``code``, its ``retryable`` flag and its structured attributes as
    ``exc_*`` fields, so a rejected movement can be traced from the log alone.
"""

__all__ = [
    "SCOPE_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
    "installed_handler",
]

import json
import logging
import sys
import threading
from collections.abc import Mapping
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, TextIO
from uuid import UUID

from inventory_kernel.exceptions import InventoryKernelError

SCOPE_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "event_id",
    "actor_id",
    "item_id",
    "operation",
)

_EMPTY_SCOPE: Mapping[str, str] = MappingProxyType({})
_scope: ContextVar[Mapping[str, str]] = ContextVar(
    "inventory_log_scope", default=_EMPTY_SCOPE
)


class LogContext:
    """Request-scoped log fields, safe across threads and tasks."""

    @staticmethod
    def bind(**fields: Any) -> "_ScopeBinding":
        """
        Bind scope fields for the duration of a ``with`` block.

        Values are stringified (UUIDs arrive from callers as UUID); ``None``
        leaves a field as it was.  Unknown names raise ValueError.
        """
        unknown = sorted(set(fields) - set(SCOPE_FIELDS))
        if unknown:
            raise ValueError(f"Unknown log scope field(s): {', '.join(unknown)}")
        return _ScopeBinding(
            {name: str(value) for name, value in fields.items() if value is not None}
        )

    @staticmethod
    def current() -> dict[str, str]:
        return dict(_scope.get())

    @staticmethod
    def clear() -> None:
        _scope.set(_EMPTY_SCOPE)


class _ScopeBinding:
    def __init__(self, fields: dict[str, str]):
        self._fields = fields
        self._token = None

    def __enter__(self) -> None:
        merged = {**_scope.get(), **self._fields}
        self._token = _scope.set(MappingProxyType(merged))

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _scope.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# JSON rendering
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    if isinstance(exc, InventoryKernelError):
        fields["exc_code"] = exc.code
        fields["exc_retryable"] = exc.retryable
        for name, value in vars(exc).items():
            if not name.startswith("_"):
                fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message, scope, extra."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_scope.get())

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "inventory_kernel"

_lock = threading.Lock()
_installed: logging.Handler | None = None


def get_logger(name: str) -> logging.Logger:
    """Logger ``inventory_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def installed_handler() -> logging.Handler | None:
    """The handler configure_logging() attached, if any."""
    return _installed


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``inventory_kernel`` logger.

    Idempotent: once a handler is installed, later calls change nothing
    until reset_logging().  Records do not propagate to the root logger.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        _installed = handler
        _installed.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_installed)


def reset_logging() -> None:
    """Detach the installed handler so the next configure_logging() applies. Tests only."""
    global _installed
    with _lock:
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        if _installed is not None:
            kernel_logger.removeHandler(_installed)
            _installed = None
        kernel_logger.setLevel(logging.WARNING)
