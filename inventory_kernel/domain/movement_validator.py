"""
Movement validation and application -- pure functions.

Responsibility:
    Validate the shape of a movement event, compute the stock levels it
    produces, and replay a movement log.  No I/O; LedgerService wraps these
    in the compare-and-swap transaction.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Quantity deltas are ints (bools, floats and fractional values are
      rejected).
    - Sign matches kind: delivery/return > 0, issuance < 0, adjustment != 0,
      reservation moves only reserved_quantity.
    - Stock never goes implicitly negative: current_quantity and
      available_quantity stay >= 0 unless the event is a correcting
      adjustment.  reserved_quantity never goes below zero.

Failure modes:
    - InvalidMovementError: unknown kind, missing event id or item id.
    - InvalidQuantityError: malformed or zero delta, sign contradicts kind.
    - InsufficientStockError: the event would drive stock negative.
"""

from collections.abc import Iterable

from inventory_kernel.domain.dtos import MovementEventData, MovementKind, StockLevels
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMovementError,
    InvalidQuantityError,
)

_POSITIVE_KINDS = frozenset({MovementKind.DELIVERY, MovementKind.RETURN})


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_kind(event_id: str, kind: object) -> MovementKind:
    """Resolve a kind given as enum or string; InvalidMovementError otherwise."""
    if isinstance(kind, MovementKind):
        return kind
    try:
        return MovementKind(str(kind).strip().lower())
    except ValueError:
        raise InvalidMovementError(event_id, f"unknown movement kind {kind!r}") from None


def validate_movement(event: MovementEventData) -> MovementKind:
    """
    Check a movement envelope before it touches the store.

    Returns:
        The parsed MovementKind.

    Raises:
        InvalidMovementError, InvalidQuantityError.
    """
    event_id = event.event_id
    if not isinstance(event_id, str) or not event_id.strip():
        raise InvalidMovementError(str(event_id), "event_id is required")
    if event.item_id is None:
        raise InvalidMovementError(event_id, "item_id is required")
    if event.actor_id is None:
        raise InvalidMovementError(event_id, "actor_id is required")
    if event.occurred_at is None:
        raise InvalidMovementError(event_id, "occurred_at is required")

    kind = parse_kind(event_id, event.kind)

    delta = event.quantity_delta
    reservation = event.reservation_delta
    if not _is_integer(delta):
        raise InvalidQuantityError(event_id, delta, "quantity_delta must be an integer")
    if not _is_integer(reservation):
        raise InvalidQuantityError(
            event_id, reservation, "reservation_delta must be an integer"
        )

    if kind == MovementKind.RESERVATION:
        if delta != 0:
            raise InvalidQuantityError(
                event_id, delta, "reservation movements must not change current quantity"
            )
        if reservation == 0:
            raise InvalidQuantityError(
                event_id, reservation, "reservation_delta must be non-zero"
            )
        return kind

    if delta == 0:
        raise InvalidQuantityError(event_id, delta, "quantity_delta must be non-zero")
    if kind in _POSITIVE_KINDS and delta < 0:
        raise InvalidQuantityError(
            event_id, delta, f"{kind.value} must increase stock"
        )
    if kind == MovementKind.ISSUANCE and delta > 0:
        raise InvalidQuantityError(event_id, delta, "issuance must decrease stock")

    if event.is_correction and kind != MovementKind.ADJUSTMENT:
        raise InvalidMovementError(
            event_id, "only adjustments may be flagged as corrections"
        )

    return kind


def next_levels(
    event: MovementEventData,
    kind: MovementKind,
    current_quantity: int,
    reserved_quantity: int,
    item_id: str,
) -> StockLevels:
    """
    Compute the levels an already validated event would produce.

    Raises:
        InsufficientStockError: current or available quantity would drop
            below zero and the event is not a correcting adjustment.
        InvalidQuantityError: reserved quantity would drop below zero.
    """
    new_current = current_quantity + event.quantity_delta
    new_reserved = reserved_quantity + event.reservation_delta

    if new_reserved < 0:
        raise InvalidQuantityError(
            event.event_id,
            event.reservation_delta,
            f"would release more than the {reserved_quantity} reserved",
        )

    correcting = kind == MovementKind.ADJUSTMENT and event.is_correction
    available_delta = event.quantity_delta - event.reservation_delta
    # Moves that raise stock are accepted even while it is still negative.
    lowers_below_zero = (event.quantity_delta < 0 and new_current < 0) or (
        available_delta < 0 and new_current - new_reserved < 0
    )
    if not correcting and lowers_below_zero:
        raise InsufficientStockError(
            event_id=event.event_id,
            item_id=item_id,
            current_quantity=current_quantity,
            available_quantity=current_quantity - reserved_quantity,
            requested_delta=(
                event.quantity_delta
                if kind != MovementKind.RESERVATION
                else -event.reservation_delta
            ),
        )

    return StockLevels(current_quantity=new_current, reserved_quantity=new_reserved)


def replay(deltas: Iterable[tuple[int, int]]) -> tuple[StockLevels, int]:
    """
    Sum (quantity_delta, reservation_delta) pairs in replay order.

    Returns:
        (levels, event_count).  Accepted events are trusted as applied; no
        sign checks are repeated.
    """
    current = 0
    reserved = 0
    count = 0
    for quantity_delta, reservation_delta in deltas:
        current += quantity_delta
        reserved += reservation_delta
        count += 1
    return StockLevels(current_quantity=current, reserved_quantity=reserved), count
