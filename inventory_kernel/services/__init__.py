"""Kernel services.  Every service flushes; none commits."""

from inventory_kernel.services.alert_feed import AlertCache, AlertFeed
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.override_service import OverrideService
from inventory_kernel.services.reorder_service import ReorderRequestService
from inventory_kernel.services.settings_service import SettingsService
from inventory_kernel.services.threshold_resolver import ThresholdResolver

__all__ = [
    "AlertCache",
    "AlertFeed",
    "BaseService",
    "LedgerService",
    "OverrideService",
    "ReorderRequestService",
    "SettingsService",
    "ThresholdResolver",
]
