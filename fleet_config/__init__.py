"""
fleet_config -- single public entrypoint for fleet kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``FleetConfig``.

Architecture position:
    Configuration layer.  Sits above ``fleet_kernel``; the kernel never
    imports from ``fleet_config``.  ``fleet_config.bridges`` turns a
    FleetConfig into configured kernel services.

Failure modes:
    - ``FileNotFoundError`` -- the requested YAML file does not exist.
    - ``ValueError`` -- unknown keys, wrong types or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``fleet_config_loaded`` log entry naming the source file and the
    retry and completion settings in force.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from fleet_config.loader import load_config
from fleet_config.schema import (
    DatabaseConfig,
    FleetConfig,
    LedgerConfig,
    LoggingConfig,
    WorkflowConfig,
)
from fleet_kernel.logging_config import get_logger

_logger = get_logger("config")

DATABASE_URL_ENV = "DATABASE_URL"

__all__ = [
    "get_active_config",
    "FleetConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "WorkflowConfig",
    "LoggingConfig",
]


def get_active_config(path: Path | str | None = None) -> FleetConfig:
    """The ONLY public configuration entrypoint.

    Loads the bundled ``defaults.yaml``, overlays ``path`` if given, then
    applies a ``DATABASE_URL`` environment variable to ``database.url``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If any value fails validation.
    """
    config = load_config(Path(path) if path is not None else None)

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = replace(config, database=replace(config.database, url=env_url))

    _logger.info(
        "fleet_config_loaded",
        extra={
            "source": config.source,
            "database_backend": config.database.url.split(":", 1)[0],
            "ledger_max_retries": config.ledger.max_retries,
            "workflow_max_retries": config.workflow.max_retries,
            "completion_policy": config.workflow.completion_policy.value,
        },
    )
    return config
