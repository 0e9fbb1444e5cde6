"""
Stock status classifier -- pure function.

Maps a stock snapshot and its thresholds to exactly one alert tier.  Rules
are evaluated in order and the first match wins, so the classification is
total and exclusive and critical outranks urgent outranks warning.

    1. current <= 0                               critical  out of stock
    2. reorder > 0 and current <= reorder         urgent    at or below reorder point
    3. minimum > 0 and current <= minimum         warning   at or below minimum level
    4. minimum > 0 and current < minimum * 1.2    warning   approaching minimum
    5. thresholds unconfigured                    unconfigured
    6. otherwise                                  normal
"""

from datetime import datetime
from decimal import Decimal

from inventory_kernel.domain.dtos import (
    AlertEntry,
    AlertTier,
    ItemInfo,
    StockRecordInfo,
    Thresholds,
)

EARLY_WARNING_FACTOR = Decimal("1.2")

REASON_OUT_OF_STOCK = "out of stock"
REASON_AT_REORDER = "at or below reorder point"
REASON_AT_MINIMUM = "at or below minimum level"
REASON_APPROACHING_MINIMUM = "approaching minimum: early warning band"
REASON_UNCONFIGURED = "no threshold configured"
REASON_NORMAL = "stock level normal"


def classify_quantity(current_quantity: int, thresholds: Thresholds) -> tuple[AlertTier, str]:
    """Return (tier, reason) for a quantity."""
    if current_quantity <= 0:
        return AlertTier.CRITICAL, REASON_OUT_OF_STOCK
    if thresholds.reorder > 0 and current_quantity <= thresholds.reorder:
        return AlertTier.URGENT, REASON_AT_REORDER
    if thresholds.minimum > 0:
        if current_quantity <= thresholds.minimum:
            return AlertTier.WARNING, REASON_AT_MINIMUM
        if Decimal(current_quantity) < Decimal(thresholds.minimum) * EARLY_WARNING_FACTOR:
            return AlertTier.WARNING, REASON_APPROACHING_MINIMUM
    if not thresholds.is_configured:
        return AlertTier.UNCONFIGURED, REASON_UNCONFIGURED
    return AlertTier.NORMAL, REASON_NORMAL


def classify(
    stock: StockRecordInfo,
    thresholds: Thresholds,
    item: ItemInfo | None = None,
    computed_at: datetime | None = None,
) -> AlertEntry:
    """
    Classify one item's stock.

    Args:
        stock: Current stock snapshot.
        thresholds: Resolved thresholds for the item.
        item: Optional catalog data copied onto the entry for display.
        computed_at: Timestamp recorded on the entry.
    """
    tier, reason = classify_quantity(stock.current_quantity, thresholds)
    return AlertEntry(
        item_id=stock.item_id,
        tier=tier,
        reason=reason,
        current_quantity=stock.current_quantity,
        reserved_quantity=stock.reserved_quantity,
        available_quantity=stock.available_quantity,
        thresholds=thresholds,
        item_code=item.item_code if item else "",
        item_name=item.name if item else "",
        unit=item.unit if item else "",
        computed_at=computed_at,
    )
