"""
funding_kernel.logging_config -- One JSON object per log line.

Responsibility:
    Render every record under the ``funding_kernel`` logger tree as a JSON
    line carrying the event name, the ``extra`` payload, the fields bound in
    LogContext (order, actor, gateway, transaction group, correlation id) and,
    for logged exceptions, the structured attributes of the FundingError.

Architecture position:
    Kernel -- leaf module, imported by every layer. stdlib only.

Usage:
    logger = get_logger("services.order_executor")
    with LogContext.bind(order_id=order.id):
        logger.info("order_claimed", extra={"attempt": 2})
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
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TextIO
from uuid import UUID

_ROOT_LOGGER = "funding_kernel"

_CONTEXT_FIELDS = frozenset(
    {"correlation_id", "order_id", "actor_id", "gateway", "transaction_group"}
)

_bound: ContextVar[dict[str, str]] = ContextVar("funding_log_context", default={})


def _as_text(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


class LogContext:
    """Fields stamped onto every record emitted in the current context."""

    @staticmethod
    def _merge(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - _CONTEXT_FIELDS
        if unknown:
            raise ValueError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(_bound.get())
        merged.update({k: _as_text(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Bind fields until cleared. None values leave a field untouched."""
        _bound.set(cls._merge(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_bound.get())

    @staticmethod
    def clear() -> None:
        _bound.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Bind fields for the duration of a ``with`` block."""
        token = _bound.set(cls._merge(fields))
        try:
            yield
        finally:
            _bound.reset(token)


_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(str(v) for v in value)
    return repr(value)


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
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
            # FundingError subclasses keep their structured fields as attributes
            for attr, value in vars(exc).items():
                if not attr.startswith("_") and attr != "code":
                    payload.setdefault(f"exc_{attr}", value)
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``funding_kernel.<name>``."""
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")


_configured = False
_configure_lock = threading.Lock()


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach a JSON handler to the funding_kernel tree. Repeat calls are no-ops."""
    global _configured
    with _configure_lock:
        if _configured:
            return
        _configured = True

        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())

        root = logging.getLogger(_ROOT_LOGGER)
        root.setLevel(level)
        root.propagate = False
        root.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers so a test session can reconfigure from scratch."""
    global _configured
    with _configure_lock:
        _configured = False
        root = logging.getLogger(_ROOT_LOGGER)
        for handler in list(root.handlers):
            root.removeHandler(handler)
        root.setLevel(logging.WARNING)
