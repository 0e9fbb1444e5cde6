"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Time enters only through an injected Clock.
"""

from inventory_kernel.domain.classifier import classify, classify_quantity
from inventory_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from inventory_kernel.domain.dtos import (
    AlertEntry,
    AlertFilter,
    AlertSummary,
    AlertTier,
    ItemInfo,
    MovementEventData,
    MovementInfo,
    MovementKind,
    OverrideInfo,
    RecomputeResult,
    ReorderRequestInfo,
    SettingChange,
    SettingDefinition,
    SettingInfo,
    StockLevels,
    StockRecordInfo,
    Thresholds,
    ThresholdSource,
)
from inventory_kernel.domain.movement_validator import (
    next_levels,
    replay,
    validate_movement,
)
from inventory_kernel.domain.thresholds import compute_thresholds

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "AlertEntry",
    "AlertFilter",
    "AlertSummary",
    "AlertTier",
    "ItemInfo",
    "MovementEventData",
    "MovementInfo",
    "MovementKind",
    "OverrideInfo",
    "RecomputeResult",
    "ReorderRequestInfo",
    "SettingChange",
    "SettingDefinition",
    "SettingInfo",
    "StockLevels",
    "StockRecordInfo",
    "Thresholds",
    "ThresholdSource",
    "classify",
    "classify_quantity",
    "compute_thresholds",
    "next_levels",
    "replay",
    "validate_movement",
]
