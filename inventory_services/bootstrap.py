"""
inventory_services.bootstrap -- wire configuration, store and gateway.

Startup sequence:
    1. Load configuration (``get_active_config``).
    2. Initialize the engine and create missing tables.
    3. Register the ORM immutability listeners.
    4. Seed setting defaults that do not exist yet (existing values are
       never overwritten, so administrative changes survive restarts).
    5. Return a StockLedgerGateway sharing one long-lived AlertCache.
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

from inventory_config import InventoryConfig, get_active_config
from inventory_config.bridges import build_setting_definitions
from inventory_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from inventory_kernel.db.immutability import register_immutability_listeners
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.alert_feed import AlertCache
from inventory_kernel.services.settings_service import SettingsService
from inventory_services.stock_gateway import GatewayParams, StockLedgerGateway

logger = get_logger("bootstrap")

# Actor recorded on rows written by startup seeding.
SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


def gateway_params(config: InventoryConfig) -> GatewayParams:
    ledger = config.ledger
    return GatewayParams(
        max_cas_retries=ledger.max_cas_retries,
        transaction_retries=ledger.transaction_retries,
        retry_backoff_seconds=ledger.retry_backoff_seconds,
        list_batch_size=ledger.list_batch_size,
    )


def seed_settings(config: InventoryConfig, actor_id: UUID = SYSTEM_ACTOR_ID) -> list[str]:
    """Insert missing setting defaults in their own transaction."""
    with session_scope() as session:
        return SettingsService(session).seed_defaults(
            build_setting_definitions(config), actor_id
        )


def bootstrap(
    config: InventoryConfig | None = None,
    config_path: Path | str | None = None,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> StockLedgerGateway:
    """Initialize the store from configuration and return a ready gateway."""
    config = config or get_active_config(config_path)
    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        statement_timeout_seconds=db.statement_timeout_seconds,
    )
    if create_schema:
        create_tables()
    register_immutability_listeners()
    created = seed_settings(config)

    clock = clock or SystemClock()
    logger.info(
        "inventory_bootstrapped",
        extra={"config_checksum": config.checksum, "seeded_settings": created},
    )
    return StockLedgerGateway(
        get_session_factory(),
        clock=clock,
        params=gateway_params(config),
        cache=AlertCache(config.alerts.cache_ttl_seconds, clock),
    )
