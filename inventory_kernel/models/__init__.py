"""Domain models for the inventory kernel."""

from inventory_kernel.models.item import ItemMaster
from inventory_kernel.models.movement import MovementEvent, MovementKind
from inventory_kernel.models.override import ThresholdOverride
from inventory_kernel.models.reorder_request import (
    OPEN_STATUSES,
    ReorderPriority,
    ReorderRequest,
    ReorderStatus,
)
from inventory_kernel.models.settings import (
    InventorySetting,
    SettingChangeLog,
    SettingChangeType,
    SettingType,
)
from inventory_kernel.models.stock_record import StockRecord

__all__ = [
    "ItemMaster",
    "MovementEvent",
    "MovementKind",
    "StockRecord",
    "ThresholdOverride",
    "InventorySetting",
    "SettingChangeLog",
    "SettingChangeType",
    "SettingType",
    "ReorderRequest",
    "ReorderStatus",
    "ReorderPriority",
    "OPEN_STATUSES",
]
