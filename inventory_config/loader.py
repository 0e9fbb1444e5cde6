"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into typed
``inventory_config.schema`` dataclass instances.  Runtime callers use
``inventory_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* Setting defaults must lie within their declared bounds.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range numbers, unknown setting types  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from inventory_config.schema import (
    AlertConfig,
    DatabaseConfig,
    InventoryConfig,
    LedgerConfig,
    SettingDef,
)

SETTING_TYPES = frozenset({"percentage", "absolute", "days"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from YAML (int, float or string)."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"{field_name}: expected a number, got {value!r}") from None
    if not parsed.is_finite():
        raise ValueError(f"{field_name}: must be finite, got {value!r}")
    return parsed


def _positive_int(data: dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValueError(f"{section}.{key}: expected a positive integer, got {value!r}")
    return value


def _non_negative_number(data: dict[str, Any], key: str, default: float, section: str) -> float:
    value = data.get(key, default)
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{section}.{key}: expected a non-negative number, got {value!r}")
    return float(value)


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    """Parse the ``database`` section.  ``url`` is required."""
    return DatabaseConfig(
        url=data["url"],
        pool_size=_positive_int(data, "pool_size", 20, "database"),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive_int(data, "pool_timeout", 30, "database"),
        statement_timeout_seconds=_non_negative_number(
            data, "statement_timeout_seconds", 5.0, "database"
        ),
        echo=bool(data.get("echo", False)),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    return LedgerConfig(
        max_cas_retries=_positive_int(data, "max_cas_retries", 5, "ledger"),
        transaction_retries=_positive_int(data, "transaction_retries", 3, "ledger"),
        retry_backoff_seconds=_non_negative_number(
            data, "retry_backoff_seconds", 0.05, "ledger"
        ),
        list_batch_size=_positive_int(data, "list_batch_size", 200, "ledger"),
    )


def parse_alerts(data: dict[str, Any]) -> AlertConfig:
    return AlertConfig(
        cache_ttl_seconds=_non_negative_number(data, "cache_ttl_seconds", 30.0, "alerts"),
    )


def parse_setting(data: dict[str, Any]) -> SettingDef:
    """
    Parse one setting definition.

    Raises:
        KeyError: if name, value, type, min or max is missing.
        ValueError: unknown type, inverted bounds, or default out of bounds.
    """
    name = data["name"]
    setting_type = data["type"]
    if setting_type not in SETTING_TYPES:
        raise ValueError(f"setting {name}: unknown type {setting_type!r}")

    value = parse_decimal(data["value"], f"setting {name}.value")
    low = parse_decimal(data["min"], f"setting {name}.min")
    high = parse_decimal(data["max"], f"setting {name}.max")
    if low > high:
        raise ValueError(f"setting {name}: min {low} exceeds max {high}")
    if value < low or value > high:
        raise ValueError(f"setting {name}: default {value} outside [{low}, {high}]")

    return SettingDef(
        name=name,
        value=value,
        setting_type=setting_type,
        min_value=low,
        max_value=high,
        description=data.get("description"),
    )


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """Parse a whole configuration document."""
    settings = tuple(parse_setting(item) for item in data.get("settings", []) or [])
    names = [definition.name for definition in settings]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"duplicate setting definitions: {', '.join(duplicates)}")

    return InventoryConfig(
        database=parse_database(data["database"]),
        ledger=parse_ledger(data.get("ledger", {}) or {}),
        alerts=parse_alerts(data.get("alerts", {}) or {}),
        settings=settings,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the parsed document."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def load_config(path: Path) -> InventoryConfig:
    return parse_config(load_yaml_file(path))
