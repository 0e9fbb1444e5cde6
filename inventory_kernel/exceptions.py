"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (issuance workflows, delivery recording, the alert
dashboard) must react to failures by KIND, not by parsing messages:

    try:
        ledger.apply_movement(event)
    except DuplicateEventError as e:     # idempotent replay, not a failure
        record = e.record
    except InsufficientStockError as e:  # structured data for the caller
        notify(f"Only {e.available_quantity} left of item {e.item_id}")

Every exception:
  1. Has a TYPED class (catch by type, not message)
  2. Has a class-level CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- MovementError
    |   +-- InvalidMovementError
    |   +-- InvalidQuantityError
    |   +-- DuplicateEventError          (idempotent success)
    |   +-- EventPayloadMismatchError
    |   +-- InsufficientStockError
    |
    +-- ItemError
    |   +-- UnknownItemError
    |   +-- StockRecordNotFoundError
    |
    +-- SettingError
    |   +-- SettingNotFoundError
    |   +-- SettingOutOfBoundsError
    |   +-- InvalidSettingValueError
    |   +-- InvalidSettingDefinitionError
    |
    +-- OverrideError
    |   +-- InvalidOverrideError
    |   +-- OverrideNotFoundError
    |
    +-- ReorderError
    |   +-- ReorderRequestNotFoundError
    |   +-- InvalidReorderTransitionError
    |   +-- DuplicateReorderRequestError
    |
    +-- ConcurrencyError
    |   +-- ConcurrencyConflictError     (retryable)
    |
    +-- StoreError
    |   +-- StoreUnavailableError        (retryable with backoff)
    |
    +-- LedgerIntegrityError
    |   +-- IntegrityFaultError          (always surfaced, never auto-corrected)
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION errors (UnknownItemError, InvalidQuantityError,
   SettingOutOfBoundsError) are rejected synchronously to the caller.

2. RETRYABLE errors carry ``retryable = True``.  The gateway retries them
   locally up to a bounded count before surfacing them.

3. INTEGRITY faults mean the incrementally maintained stock disagrees with
   the movement log.  They are logged at ERROR and returned to the caller;
   only an explicit repair action changes the stored figure.
"""


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "INVENTORY_KERNEL_ERROR"
    retryable: bool = False


# Movement-related exceptions


class MovementError(InventoryKernelError):
    """Base exception for movement-event errors."""

    code: str = "MOVEMENT_ERROR"


class InvalidMovementError(MovementError):
    """Movement envelope is malformed (unknown kind, missing identifiers)."""

    code: str = "INVALID_MOVEMENT"

    def __init__(self, event_id: str, reason: str):
        self.event_id = event_id
        self.reason = reason
        super().__init__(f"Invalid movement {event_id}: {reason}")


class InvalidQuantityError(MovementError):
    """Quantity delta is zero, malformed, or contradicts the movement kind."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, event_id: str, quantity: object, reason: str):
        self.event_id = event_id
        self.quantity = quantity
        self.reason = reason
        super().__init__(
            f"Invalid quantity {quantity!r} for movement {event_id}: {reason}"
        )


class DuplicateEventError(MovementError):
    """
    Movement with this event id was already applied (idempotent success).

    ``record`` holds the unchanged stock record so callers can treat the
    replay as a successful no-op.
    """

    code: str = "DUPLICATE_EVENT"

    def __init__(self, event_id: str, record=None):
        self.event_id = event_id
        self.record = record
        super().__init__(f"Movement {event_id} was already applied")


class EventPayloadMismatchError(MovementError):
    """
    Event id exists with a different payload.

    Movement events are immutable, so re-using an id for different content is
    a protocol violation rather than a retry.
    """

    code: str = "EVENT_PAYLOAD_MISMATCH"

    def __init__(self, event_id: str, expected_hash: str, received_hash: str):
        self.event_id = event_id
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            f"Payload mismatch for movement {event_id}: "
            f"expected {expected_hash}, received {received_hash}"
        )


class InsufficientStockError(MovementError):
    """Applying the movement would drive stock below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        event_id: str,
        item_id: str,
        current_quantity: int,
        available_quantity: int,
        requested_delta: int,
    ):
        self.event_id = event_id
        self.item_id = item_id
        self.current_quantity = current_quantity
        self.available_quantity = available_quantity
        self.requested_delta = requested_delta
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"available={available_quantity}, current={current_quantity}, "
            f"requested delta={requested_delta}"
        )


# Item-related exceptions


class ItemError(InventoryKernelError):
    """Base exception for item-related errors."""

    code: str = "ITEM_ERROR"


class UnknownItemError(ItemError):
    """Item id does not reference an existing ItemMaster."""

    code: str = "UNKNOWN_ITEM"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Unknown item: {item_id}")


class StockRecordNotFoundError(ItemError):
    """No movement has been applied for this item yet."""

    code: str = "STOCK_RECORD_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"No stock record for item: {item_id}")


# Setting-related exceptions


class SettingError(InventoryKernelError):
    """Base exception for inventory setting errors."""

    code: str = "SETTING_ERROR"


class SettingNotFoundError(SettingError):
    """Setting with the given name does not exist."""

    code: str = "SETTING_NOT_FOUND"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Setting not found: {name}")


class SettingOutOfBoundsError(SettingError):
    """New value lies outside the setting's declared [min_value, max_value]."""

    code: str = "SETTING_OUT_OF_BOUNDS"

    def __init__(self, name: str, value: str, min_value: str, max_value: str):
        self.name = name
        self.value = value
        self.min_value = min_value
        self.max_value = max_value
        super().__init__(
            f"Value {value} for setting {name} is outside "
            f"[{min_value}, {max_value}]"
        )


class InvalidSettingValueError(SettingError):
    """New value is not a finite number."""

    code: str = "INVALID_SETTING_VALUE"

    def __init__(self, name: str, value: object, reason: str):
        self.name = name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value {value!r} for setting {name}: {reason}")


class InvalidSettingDefinitionError(SettingError):
    """Setting definition is inconsistent (bounds inverted, unknown type)."""

    code: str = "INVALID_SETTING_DEFINITION"

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid definition for setting {name}: {reason}")


# Override-related exceptions


class OverrideError(InventoryKernelError):
    """Base exception for threshold override errors."""

    code: str = "OVERRIDE_ERROR"


class InvalidOverrideError(OverrideError):
    """Override levels are negative, malformed, or inconsistent."""

    code: str = "INVALID_OVERRIDE"

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Invalid override for item {item_id}: {reason}")


class OverrideNotFoundError(OverrideError):
    """No active override exists for the item."""

    code: str = "OVERRIDE_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"No active override for item: {item_id}")


# Reorder-request exceptions


class ReorderError(InventoryKernelError):
    """Base exception for reorder request errors."""

    code: str = "REORDER_ERROR"


class ReorderRequestNotFoundError(ReorderError):
    """Reorder request does not exist or was deleted."""

    code: str = "REORDER_REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Reorder request not found: {request_id}")


class InvalidReorderTransitionError(ReorderError):
    """Requested status change is not allowed from the current status."""

    code: str = "INVALID_REORDER_TRANSITION"

    def __init__(self, request_id: str, from_status: str, to_status: str):
        self.request_id = request_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Reorder request {request_id} cannot move from "
            f"{from_status} to {to_status}"
        )


class DuplicateReorderRequestError(ReorderError):
    """An open reorder request already exists for the item."""

    code: str = "DUPLICATE_REORDER_REQUEST"

    def __init__(self, item_id: str, existing_request_id: str):
        self.item_id = item_id
        self.existing_request_id = existing_request_id
        super().__init__(
            f"Item {item_id} already has open reorder request "
            f"{existing_request_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(InventoryKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrencyConflictError(ConcurrencyError):
    """Compare-and-swap kept failing after the retry cap."""

    code: str = "CONCURRENCY_CONFLICT"
    retryable: bool = True

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"gave up after {attempts} attempt(s)"
        )


# Store-related exceptions


class StoreError(InventoryKernelError):
    """Base exception for persistence-layer errors."""

    code: str = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """The relational store timed out or could not be reached."""

    code: str = "STORE_UNAVAILABLE"
    retryable: bool = True

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Store unavailable during {operation}: {detail}")


# Integrity-related exceptions


class LedgerIntegrityError(InventoryKernelError):
    """Base exception for ledger integrity errors."""

    code: str = "LEDGER_INTEGRITY_ERROR"


class IntegrityFaultError(LedgerIntegrityError):
    """
    Incrementally maintained stock disagrees with the movement-log replay.

    Indicates ledger corruption.  Never corrected without an explicit repair.
    """

    code: str = "INTEGRITY_FAULT"

    def __init__(
        self,
        item_id: str,
        incremental_quantity: int,
        replayed_quantity: int,
        incremental_reserved: int = 0,
        replayed_reserved: int = 0,
    ):
        self.item_id = item_id
        self.incremental_quantity = incremental_quantity
        self.replayed_quantity = replayed_quantity
        self.incremental_reserved = incremental_reserved
        self.replayed_reserved = replayed_reserved
        super().__init__(
            f"Ledger drift for item {item_id}: incremental="
            f"{incremental_quantity}/{incremental_reserved}, replayed="
            f"{replayed_quantity}/{replayed_reserved} (current/reserved)"
        )


# Immutability-related exceptions


class ImmutabilityError(InventoryKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = f"{entity_type} {entity_id} is immutable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
