"""
Structured JSON logging for the fleet kernel.

Every record leaves the ``fleet_kernel`` logger as one JSON object:

    {"ts": ..., "level": ..., "logger": ..., "message": <event name>,
     <bound ticket/account/fuel-record ids>, <extra={...} fields>}

Services log event names (``ledger_debited``, ``ticket_approved``) and pass
the interesting values through ``extra``.  Identifiers that belong to the
whole operation (the ticket being completed, the account being drawn on)
are bound once with ``LogContext.bind`` and stamped on every line emitted
inside the block.
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
from typing import Any, Iterator
from uuid import UUID

_LOGGER_PREFIX = "fleet_kernel"

# ---------------------------------------------------------------------------
# Bound identifiers
# ---------------------------------------------------------------------------

_BOUND: ContextVar[dict[str, str]] = ContextVar("fleet_log_fields", default={})


class LogContext:
    """
    Identifiers stamped on every log line of the current thread or task.

    Only the names in ``FIELDS`` are accepted.  ``None`` never overwrites a
    bound value, so callers can pass optional ids straight through.
    """

    FIELDS = (
        "correlation_id",
        "actor_id",
        "ticket_id",
        "account_id",
        "fuel_record_id",
    )

    @classmethod
    def _merged(cls, values: dict[str, str | None]) -> dict[str, str]:
        merged = dict(_BOUND.get())
        for name, value in values.items():
            if name in cls.FIELDS and value is not None:
                merged[name] = str(value)
        return merged

    @classmethod
    def set(
        cls,
        *,
        correlation_id: str | None = None,
        actor_id: str | None = None,
        ticket_id: str | None = None,
        account_id: str | None = None,
        fuel_record_id: str | None = None,
    ) -> None:
        _BOUND.set(
            cls._merged(
                {
                    "correlation_id": correlation_id,
                    "actor_id": actor_id,
                    "ticket_id": ticket_id,
                    "account_id": account_id,
                    "fuel_record_id": fuel_record_id,
                }
            )
        )

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_BOUND.get())

    @classmethod
    def clear(cls) -> None:
        _BOUND.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Bind ``fields`` for the duration of the block, then restore."""
        token = _BOUND.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _BOUND.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

# Attributes every LogRecord carries; anything else came in through extra=.
_RECORD_ATTRIBUTES: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(value: Any) -> Any:
    # Amounts stay strings so "1588.125" is never turned into a float.
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Flatten an exception, including a FleetKernelError's attributes."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRIBUTES:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.ledger")`` -> ``fleet_kernel.services.ledger``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_installed: logging.Handler | None = None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``fleet_kernel`` logger.

    Only the first call has any effect until ``reset_logging`` runs.  Other
    handlers already on the logger are left in place.
    """
    global _installed
    with _lock:
        if _installed is not None:
            return
        _installed = handler if handler is not None else logging.StreamHandler(
            stream or sys.stderr
        )
        _installed.setFormatter(StructuredFormatter())

        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_installed)


def reset_logging() -> None:
    """Detach the handler installed by ``configure_logging``."""
    global _installed
    with _lock:
        kernel_logger = logging.getLogger(_LOGGER_PREFIX)
        if _installed is not None:
            kernel_logger.removeHandler(_installed)
            _installed = None
        kernel_logger.setLevel(logging.WARNING)
