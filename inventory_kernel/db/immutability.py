"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The stock figure is only trustworthy if the movement log behind it is
append-only.  A movement that was applied can never be edited; a mistake is
fixed by a new compensating event so the replay still explains every unit.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our rules:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Bulk Core statements (``update()`` / ``delete()`` executed directly) bypass
these listeners.  The ledger never issues them against protected tables.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                      | Why
------------------|-------------------------------------|------------------------------
MovementEvent     | ALWAYS (from creation)              | Replay source of truth
SettingChangeLog  | ALWAYS (from creation)              | Settings audit trail
ItemMaster        | item_code once a stock record exists| Structural identity of a SKU

===============================================================================
USAGE
===============================================================================

Called once at startup (the gateway bootstrap does this):

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

Tests that need to corrupt the ledger on purpose unregister first:

    unregister_immutability_listeners()
    # ... forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, select
from sqlalchemy.orm import attributes

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_movement_event_immutability(mapper, connection, target):
    """Movement events are never modified after insert."""
    _block(
        "MovementEvent",
        str(target.event_id),
        "UPDATE",
        "Movement events are append-only; record a compensating event instead",
    )


def _check_movement_event_delete(mapper, connection, target):
    """Movement events are never deleted."""
    _block(
        "MovementEvent",
        str(target.event_id),
        "DELETE",
        "Movement events are append-only and cannot be deleted",
    )


def _check_setting_log_immutability(mapper, connection, target):
    _block(
        "SettingChangeLog",
        str(target.id),
        "UPDATE",
        "Setting change log entries cannot be modified",
    )


def _check_setting_log_delete(mapper, connection, target):
    _block(
        "SettingChangeLog",
        str(target.id),
        "DELETE",
        "Setting change log entries cannot be deleted",
    )


def _check_item_code_immutability(mapper, connection, target):
    """
    Block item_code changes once the item carries a stock record.

    Descriptive fields (name, unit, category) stay editable.
    """
    from inventory_kernel.models.stock_record import StockRecord

    history = attributes.get_history(target, "item_code")
    if not history.has_changes() or not history.deleted:
        return

    referenced = connection.execute(
        select(StockRecord.id).where(StockRecord.item_id == target.id).limit(1)
    ).first()
    if referenced is None:
        return

    _block(
        "ItemMaster",
        str(target.id),
        "UPDATE",
        "item_code cannot change once stock has been recorded for the item",
    )


def _check_item_delete(mapper, connection, target):
    from inventory_kernel.models.stock_record import StockRecord

    referenced = connection.execute(
        select(StockRecord.id).where(StockRecord.item_id == target.id).limit(1)
    ).first()
    if referenced is not None:
        _block(
            "ItemMaster",
            str(target.id),
            "DELETE",
            "Items with recorded stock cannot be deleted; deactivate instead",
        )


_LISTENERS = (
    ("MovementEvent", "before_update", _check_movement_event_immutability),
    ("MovementEvent", "before_delete", _check_movement_event_delete),
    ("SettingChangeLog", "before_update", _check_setting_log_immutability),
    ("SettingChangeLog", "before_delete", _check_setting_log_delete),
    ("ItemMaster", "before_update", _check_item_code_immutability),
    ("ItemMaster", "before_delete", _check_item_delete),
)


def _targets() -> dict:
    from inventory_kernel.models.item import ItemMaster
    from inventory_kernel.models.movement import MovementEvent
    from inventory_kernel.models.settings import SettingChangeLog

    return {
        "MovementEvent": MovementEvent,
        "SettingChangeLog": SettingChangeLog,
        "ItemMaster": ItemMaster,
    }


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        target = targets[name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately corrupt data.
    """
    targets = _targets()
    for name, event_name, listener_fn in _LISTENERS:
        target = targets[name]
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
