"""
Inventory Kernel

An event-sourced stock ledger with:
- Idempotent movement application keyed on event id
- Optimistic compare-and-swap updates per item
- Replay-based drift detection
- Override-first threshold resolution
- Tiered stock-health alerts
"""

__version__ = "0.1.0"
