"""
inventory_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``inventory_kernel`` and below
    ``inventory_services``.  The kernel MUST NEVER import from
    ``inventory_config``; bridges.py translates config into kernel inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - ``INVENTORY_DATABASE_URL`` overrides ``database.url``.
    - Loaded configurations are cached per path until ``reset_config_cache()``.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from pathlib import Path

from inventory_config.loader import load_config
from inventory_config.schema import (
    AlertConfig,
    DatabaseConfig,
    InventoryConfig,
    LedgerConfig,
    SettingDef,
)

_logger = logging.getLogger("inventory_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"

_cache: dict[Path, InventoryConfig] = {}
_cache_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: YAML file to load.  Defaults to the packaged defaults.yaml.

    Returns:
        InventoryConfig, with the database URL taken from
        ``INVENTORY_DATABASE_URL`` when that variable is set.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
        KeyError: If a required key is missing.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    with _cache_lock:
        config = _cache.get(config_path)
    if config is None:
        config = load_config(config_path)
        with _cache_lock:
            _cache[config_path] = config
        _logger.info(
            "INVENTORY_CONFIG_TRACE",
            extra={
                "config_path": str(config_path),
                "checksum": config.checksum,
                "setting_count": len(config.settings),
            },
        )

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        config = replace(config, database=replace(config.database, url=env_url))
    return config


def reset_config_cache() -> None:
    """Forget cached configurations.  FOR TESTING ONLY."""
    with _cache_lock:
        _cache.clear()


__all__ = [
    "get_active_config",
    "reset_config_cache",
    "DEFAULT_CONFIG_PATH",
    "DATABASE_URL_ENV",
    "InventoryConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "AlertConfig",
    "SettingDef",
]
