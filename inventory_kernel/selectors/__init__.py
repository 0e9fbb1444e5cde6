"""Read-only query selectors."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.stock_selector import StockRecordSequence, StockSelector

__all__ = ["BaseSelector", "StockSelector", "StockRecordSequence"]
