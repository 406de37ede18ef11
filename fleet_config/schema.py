"""
Configuration schema (``fleet_config.schema``).

Frozen dataclasses for every configuration section.  Values are validated
in ``__post_init__`` so an invalid FleetConfig cannot be constructed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fleet_kernel.domain.workflow import CompletionPolicy

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///fleet.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    sqlite_busy_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise ValueError("database.url must be a non-empty string")
        if self.pool_size < 1:
            raise ValueError(f"database.pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"database.max_overflow must be >= 0, got {self.max_overflow}")
        if self.sqlite_busy_timeout <= 0:
            raise ValueError(
                f"database.sqlite_busy_timeout must be > 0, got {self.sqlite_busy_timeout}"
            )


@dataclass(frozen=True)
class LedgerConfig:
    max_retries: int = 10
    retry_backoff_seconds: float = 0.005

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"ledger.max_retries must be >= 1, got {self.max_retries}")
        if self.retry_backoff_seconds < 0:
            raise ValueError(
                f"ledger.retry_backoff_seconds must be >= 0, got {self.retry_backoff_seconds}"
            )


@dataclass(frozen=True)
class WorkflowConfig:
    max_retries: int = 3
    completion_policy: CompletionPolicy = CompletionPolicy.REJECT

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"workflow.max_retries must be >= 1, got {self.max_retries}")
        if not isinstance(self.completion_policy, CompletionPolicy):
            raise ValueError(
                f"workflow.completion_policy must be a CompletionPolicy, "
                f"got {self.completion_policy!r}"
            )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self) -> None:
        if self.level not in _LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {', '.join(sorted(_LOG_LEVELS))}, "
                f"got {self.level!r}"
            )

    @property
    def level_number(self) -> int:
        return logging.getLevelName(self.level)


@dataclass(frozen=True)
class FleetConfig:
    """Complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: str = "<defaults>"
