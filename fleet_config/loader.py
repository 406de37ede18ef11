"""
Configuration loader (``fleet_config.loader``).

Responsibility
--------------
Reads YAML files and parses them into the frozen dataclasses of
``fleet_config.schema``.  Runtime callers go through
``fleet_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Unknown sections and keys are errors, not silently ignored.
* Every parse error raises ``ValueError`` naming the offending key.

Failure modes
-------------
* Missing YAML file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
* Wrong types, unknown keys or out-of-range values -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import (
    DatabaseConfig,
    FleetConfig,
    LedgerConfig,
    LoggingConfig,
    WorkflowConfig,
)
from fleet_kernel.domain.workflow import CompletionPolicy

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = ("database", "ledger", "workflow", "logging")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its top-level mapping.

    An empty file yields an empty dict.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_config(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {name: dict(section or {}) for name, section in base.items()}
    for name, section in override.items():
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ValueError(f"Section '{name}' must be a mapping")
        merged.setdefault(name, {}).update(section)
    return merged


def _int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    return value


def _float(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{section}.{key} must be a number, got {value!r}")
    return float(value)


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _str(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{section}.{key} must be a string, got {value!r}")
    return value


_FIELDS = {
    "database": {
        "url": _str,
        "echo": _bool,
        "pool_size": _int,
        "max_overflow": _int,
        "sqlite_busy_timeout": _float,
    },
    "ledger": {
        "max_retries": _int,
        "retry_backoff_seconds": _float,
    },
    "workflow": {
        "max_retries": _int,
        "completion_policy": _str,
    },
    "logging": {
        "level": _str,
    },
}


def _parse_section(name: str, raw: dict[str, Any]) -> dict[str, Any]:
    fields = _FIELDS[name]
    unknown = set(raw) - set(fields)
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {', '.join(sorted(unknown))}")
    return {key: fields[key](name, key, value) for key, value in raw.items()}


def parse_fleet_config(data: dict[str, Any], source: str = "<dict>") -> FleetConfig:
    """Build a FleetConfig from a merged mapping."""
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    sections = {name: _parse_section(name, data.get(name) or {}) for name in _SECTIONS}

    workflow = sections["workflow"]
    if "completion_policy" in workflow:
        try:
            workflow["completion_policy"] = CompletionPolicy(workflow["completion_policy"])
        except ValueError:
            raise ValueError(
                "workflow.completion_policy must be one of "
                f"{', '.join(p.value for p in CompletionPolicy)}, "
                f"got {workflow['completion_policy']!r}"
            ) from None

    logging_section = sections["logging"]
    if "level" in logging_section:
        logging_section["level"] = logging_section["level"].upper()

    return FleetConfig(
        database=DatabaseConfig(**sections["database"]),
        ledger=LedgerConfig(**sections["ledger"]),
        workflow=WorkflowConfig(**workflow),
        logging=LoggingConfig(**logging_section),
        source=source,
    )


def load_config(path: Path | None = None) -> FleetConfig:
    """Bundled defaults, overlaid with ``path`` when given."""
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        data = merge_config(data, load_yaml_file(Path(path)))
        source = str(path)
    return parse_fleet_config(data, source=source)
