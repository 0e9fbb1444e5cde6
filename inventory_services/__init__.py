"""Outer boundary: transactions, retries and structured responses."""

from inventory_services.bootstrap import SYSTEM_ACTOR_ID, bootstrap, gateway_params
from inventory_services.stock_gateway import (
    GatewayParams,
    GatewayRequestError,
    GatewayResponse,
    StockLedgerGateway,
)

__all__ = [
    "SYSTEM_ACTOR_ID",
    "bootstrap",
    "gateway_params",
    "GatewayParams",
    "GatewayRequestError",
    "GatewayResponse",
    "StockLedgerGateway",
]
