"""
Unit tests for movement validation (inventory_kernel/domain/movement_validator.py).

Covers kind parsing, delta shape and sign rules, negative-stock protection,
and replay summation.  No database.
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.dtos import MovementEventData, MovementKind
from inventory_kernel.domain.movement_validator import (
    next_levels,
    parse_kind,
    replay,
    validate_movement,
)
from inventory_kernel.exceptions import (
    InsufficientStockError,
    InvalidMovementError,
    InvalidQuantityError,
)

ITEM_ID = uuid4()
ACTOR_ID = uuid4()
OCCURRED_AT = datetime(2024, 5, 1, 8, 30, tzinfo=UTC)


def _event(kind, quantity_delta, **overrides) -> MovementEventData:
    fields = {
        "event_id": "evt-1",
        "item_id": ITEM_ID,
        "kind": kind,
        "quantity_delta": quantity_delta,
        "occurred_at": OCCURRED_AT,
        "actor_id": ACTOR_ID,
    }
    fields.update(overrides)
    return MovementEventData(**fields)


class TestParseKind:
    def test_enum_passthrough(self):
        assert parse_kind("e", MovementKind.ISSUANCE) is MovementKind.ISSUANCE

    def test_string_is_case_insensitive(self):
        assert parse_kind("e", " Delivery ") == MovementKind.DELIVERY

    def test_unknown_kind(self):
        with pytest.raises(InvalidMovementError) as exc_info:
            parse_kind("e", "transfer")
        assert exc_info.value.code == "INVALID_MOVEMENT"


class TestEnvelope:
    """Required fields."""

    @pytest.mark.parametrize("event_id", ["", "   ", None])
    def test_event_id_required(self, event_id):
        with pytest.raises(InvalidMovementError):
            validate_movement(_event("delivery", 5, event_id=event_id))

    @pytest.mark.parametrize("field", ["item_id", "actor_id", "occurred_at"])
    def test_other_ids_required(self, field):
        with pytest.raises(InvalidMovementError):
            validate_movement(_event("delivery", 5, **{field: None}))


class TestQuantityShape:
    """Deltas must be plain non-zero integers."""

    @pytest.mark.parametrize("bad", [1.5, 2.0, "5", True, None])
    def test_non_integer_delta_rejected(self, bad):
        with pytest.raises(InvalidQuantityError) as exc_info:
            validate_movement(_event("delivery", bad))
        assert exc_info.value.code == "INVALID_QUANTITY"

    def test_non_integer_reservation_rejected(self):
        with pytest.raises(InvalidQuantityError):
            validate_movement(_event("reservation", 0, reservation_delta=1.0))

    @pytest.mark.parametrize("kind", ["delivery", "issuance", "return", "adjustment"])
    def test_zero_delta_rejected(self, kind):
        with pytest.raises(InvalidQuantityError):
            validate_movement(_event(kind, 0))


class TestSignRules:
    """The sign of the delta must agree with the kind."""

    @pytest.mark.parametrize(
        "kind,delta",
        [("delivery", 10), ("return", 3), ("issuance", -4), ("adjustment", 7), ("adjustment", -7)],
    )
    def test_valid_signs(self, kind, delta):
        assert validate_movement(_event(kind, delta)) == MovementKind(kind)

    @pytest.mark.parametrize(
        "kind,delta", [("delivery", -10), ("return", -3), ("issuance", 4)]
    )
    def test_contradicting_sign(self, kind, delta):
        with pytest.raises(InvalidQuantityError):
            validate_movement(_event(kind, delta))

    def test_reservation_moves_only_reserved(self):
        assert (
            validate_movement(_event("reservation", 0, reservation_delta=5))
            == MovementKind.RESERVATION
        )
        with pytest.raises(InvalidQuantityError):
            validate_movement(_event("reservation", 5, reservation_delta=5))
        with pytest.raises(InvalidQuantityError):
            validate_movement(_event("reservation", 0, reservation_delta=0))

    def test_correction_only_on_adjustments(self):
        assert (
            validate_movement(_event("adjustment", -3, is_correction=True))
            == MovementKind.ADJUSTMENT
        )
        with pytest.raises(InvalidMovementError):
            validate_movement(_event("issuance", -3, is_correction=True))


class TestNextLevels:
    """Negative-stock protection."""

    def test_issuance_within_stock(self):
        event = _event("issuance", -4)
        levels = next_levels(event, MovementKind.ISSUANCE, 10, 0, str(ITEM_ID))

        assert (levels.current_quantity, levels.reserved_quantity) == (6, 0)

    def test_issuance_below_zero_rejected(self):
        event = _event("issuance", -11)

        with pytest.raises(InsufficientStockError) as exc_info:
            next_levels(event, MovementKind.ISSUANCE, 10, 0, str(ITEM_ID))
        assert exc_info.value.current_quantity == 10
        assert exc_info.value.requested_delta == -11

    def test_issuance_into_reserved_stock_rejected(self):
        event = _event("issuance", -8)

        with pytest.raises(InsufficientStockError) as exc_info:
            next_levels(event, MovementKind.ISSUANCE, 10, 5, str(ITEM_ID))
        assert exc_info.value.available_quantity == 5

    def test_plain_adjustment_below_zero_rejected(self):
        event = _event("adjustment", -20)

        with pytest.raises(InsufficientStockError):
            next_levels(event, MovementKind.ADJUSTMENT, 10, 0, str(ITEM_ID))

    def test_correcting_adjustment_may_go_negative(self):
        event = _event("adjustment", -20, is_correction=True)
        levels = next_levels(event, MovementKind.ADJUSTMENT, 10, 0, str(ITEM_ID))

        assert levels.current_quantity == -10

    def test_reservation_beyond_available_rejected(self):
        event = _event("reservation", 0, reservation_delta=6)

        with pytest.raises(InsufficientStockError):
            next_levels(event, MovementKind.RESERVATION, 10, 5, str(ITEM_ID))

    def test_release_beyond_reserved_rejected(self):
        event = _event("reservation", 0, reservation_delta=-6)

        with pytest.raises(InvalidQuantityError):
            next_levels(event, MovementKind.RESERVATION, 10, 5, str(ITEM_ID))

    @pytest.mark.parametrize("kind", ["delivery", "return"])
    def test_increase_accepted_while_negative(self, kind):
        event = _event(kind, 3)
        levels = next_levels(event, MovementKind(kind), -5, 0, str(ITEM_ID))

        assert levels.current_quantity == -2

    def test_release_accepted_while_available_negative(self):
        event = _event("reservation", 0, reservation_delta=-1)
        levels = next_levels(event, MovementKind.RESERVATION, -5, 2, str(ITEM_ID))

        assert (levels.current_quantity, levels.reserved_quantity) == (-5, 1)

    def test_decrease_rejected_while_negative(self):
        event = _event("adjustment", -1)

        with pytest.raises(InsufficientStockError):
            next_levels(event, MovementKind.ADJUSTMENT, -5, 0, str(ITEM_ID))


class TestReplay:
    def test_empty_log(self):
        levels, count = replay([])

        assert (levels.current_quantity, levels.reserved_quantity, count) == (0, 0, 0)

    def test_sums_pairs(self):
        levels, count = replay([(10, 0), (-3, 0), (0, 2), (5, -1)])

        assert (levels.current_quantity, levels.reserved_quantity) == (12, 1)
        assert count == 4

    @settings(max_examples=200)
    @given(
        st.lists(
            st.tuples(
                st.integers(min_value=-1000, max_value=1000),
                st.integers(min_value=-50, max_value=50),
            ),
            max_size=60,
        )
    )
    def test_replay_is_plain_sum(self, deltas):
        levels, count = replay(deltas)

        assert levels.current_quantity == sum(d for d, _ in deltas)
        assert levels.reserved_quantity == sum(r for _, r in deltas)
        assert count == len(deltas)


class TestHashContent:
    """The payload hash ignores acceptance-time data but sees every field."""

    def test_same_content_same_hash(self):
        from inventory_kernel.utils.hashing import hash_payload

        a = _event("delivery", 5, source_ref="DLV-1")
        b = _event("delivery", 5, source_ref="DLV-1")

        assert hash_payload(a.hash_content()) == hash_payload(b.hash_content())

    def test_changed_quantity_changes_hash(self):
        from inventory_kernel.utils.hashing import hash_payload

        a = _event("delivery", 5)
        b = _event("delivery", 6)

        assert hash_payload(a.hash_content()) != hash_payload(b.hash_content())

    def test_parsed_kind_normalizes_spelling(self):
        from inventory_kernel.utils.hashing import hash_payload

        a = _event("Delivery", 5)
        b = _event(" delivery ", 5)

        assert hash_payload(a.hash_content(MovementKind.DELIVERY)) == hash_payload(
            b.hash_content(MovementKind.DELIVERY)
        )
        assert a.hash_content(MovementKind.DELIVERY)["kind"] == "delivery"
