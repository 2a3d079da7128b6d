"""
Structured JSON logging for the settlement engine.

Every record leaves the formatter as one JSON object per line. Request
scoped fields (tenant, actor, period, correlation and trace ids) live in
a single context variable so they follow the call across threads started
with ``contextvars.copy_context`` and across asyncio tasks.

Usage::

    from settlement_kernel.logging_config import LogContext, get_logger

    logger = get_logger("modules.payroll.service")
    with LogContext.bind(tenant_id=scope.tenant_id, period_id=period.id):
        logger.info("payroll_calculated", extra={"employee_count": 12})
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
from typing import Any, TextIO
from uuid import UUID

_NAMESPACE = "settlement"

_CONTEXT_FIELDS = (
    "correlation_id",
    "tenant_id",
    "actor_id",
    "period_id",
    "trace_id",
)

_context: ContextVar[dict[str, str]] = ContextVar("settlement_log_context", default={})


def _stringify(fields: dict[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(_CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
    return {k: str(v) for k, v in fields.items() if v is not None}


class LogContext:
    """Request-scoped fields merged into every structured record."""

    @staticmethod
    def set(**fields: Any) -> None:
        """Merge fields into the current context. ``None`` values are ignored."""
        _context.set({**_context.get(), **_stringify(fields)})

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get())

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Overlay fields for the duration of a block, then restore the outer context.

        UUIDs and other values are stringified so ids can be passed straight
        through.
        """
        token = _context.set({**_context.get(), **_stringify(fields)})
        try:
            yield
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else on a record came from extra=.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _encode(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # SettlementError subclasses keep their structured details as attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name not in ("args", "code"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line.

    Context fields take precedence over ``extra`` keys of the same name.
    """

    def format(self, record: logging.LogRecord) -> str:
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        }
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **extras,
            **LogContext.get_all(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_encode)


def get_logger(name: str) -> logging.Logger:
    """Return ``settlement.<name>``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_setup_lock = threading.Lock()
_is_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``settlement`` logger. Later calls are no-ops."""
    global _is_configured
    with _setup_lock:
        if _is_configured:
            return
        _is_configured = True

        if handler is None:
            handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        handler.setFormatter(StructuredFormatter())

        namespace_logger = logging.getLogger(_NAMESPACE)
        namespace_logger.setLevel(level)
        namespace_logger.propagate = False
        namespace_logger.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow configure_logging to run again. Used by tests."""
    global _is_configured
    with _setup_lock:
        _is_configured = False
        namespace_logger = logging.getLogger(_NAMESPACE)
        for existing in list(namespace_logger.handlers):
            namespace_logger.removeHandler(existing)
        namespace_logger.setLevel(logging.WARNING)
