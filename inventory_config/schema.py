"""
InventoryConfig schema.

Frozen dataclasses that a YAML configuration file is parsed into.  The
loader produces them; ``get_active_config()`` hands them out; bridges
translate them into kernel inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the relational store."""

    url: str
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    statement_timeout_seconds: float = 5.0
    echo: bool = False


# ---------------------------------------------------------------------------
# Ledger and alerts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """Retry and paging limits for movement application."""

    max_cas_retries: int = 5
    transaction_retries: int = 3
    retry_backoff_seconds: float = 0.05
    list_batch_size: int = 200


@dataclass(frozen=True)
class AlertConfig:
    cache_ttl_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettingDef:
    """Default definition of one inventory setting."""

    name: str
    value: Decimal
    setting_type: str  # percentage, absolute, days
    min_value: Decimal
    max_value: Decimal
    description: str | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventoryConfig:
    """
    Complete runtime configuration.

    ``checksum`` identifies the source document so operators can tell which
    configuration a process started with.
    """

    database: DatabaseConfig
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    settings: tuple[SettingDef, ...] = ()
    checksum: str = ""

    def setting(self, name: str) -> SettingDef:
        for definition in self.settings:
            if definition.name == name:
                return definition
        raise KeyError(f"No default definition for setting {name!r}")
