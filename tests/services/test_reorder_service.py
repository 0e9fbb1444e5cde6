"""
Tests for ReorderRequestService: creation from alerts and the lifecycle.
"""

from uuid import uuid4

import pytest

from inventory_kernel.domain.classifier import classify
from inventory_kernel.domain.dtos import (
    AlertTier,
    ItemInfo,
    StockRecordInfo,
    ThresholdSource,
    Thresholds,
)
from inventory_kernel.exceptions import (
    DuplicateReorderRequestError,
    InvalidQuantityError,
    InvalidReorderTransitionError,
    ReorderRequestNotFoundError,
    UnknownItemError,
)
from inventory_kernel.models.reorder_request import ReorderPriority, ReorderStatus
from inventory_kernel.services.reorder_service import (
    VALID_TRANSITIONS,
    priority_for,
    suggested_quantity,
)


def _alert(item_id, quantity, minimum=5, reorder=10, maximum=50, reserved=0):
    stock = StockRecordInfo(
        item_id=item_id,
        current_quantity=quantity,
        reserved_quantity=reserved,
        version=1,
    )
    thresholds = Thresholds(
        minimum=minimum, reorder=reorder, maximum=maximum, source=ThresholdSource.COMPUTED
    )
    item = ItemInfo(id=item_id, item_code="X", name="X", unit="pcs")
    return classify(stock, thresholds, item)


@pytest.fixture
def pending(reorder_service, session, item, test_actor_id):
    info = reorder_service.create_from_alert(_alert(item.id, 4), test_actor_id, remarks="low")
    session.commit()
    return info


class TestSuggestedQuantity:
    def test_fills_to_maximum(self):
        assert suggested_quantity(_alert(uuid4(), 4, maximum=50)) == 46

    def test_uses_available_quantity(self):
        assert suggested_quantity(_alert(uuid4(), 10, maximum=50, reserved=6)) == 46

    def test_reorder_level_when_no_maximum(self):
        assert suggested_quantity(_alert(uuid4(), 4, maximum=0)) == 6

    def test_never_below_one(self):
        assert suggested_quantity(_alert(uuid4(), 80, maximum=50)) == 1

    @pytest.mark.parametrize(
        "tier,priority",
        [
            (AlertTier.CRITICAL, ReorderPriority.CRITICAL),
            (AlertTier.URGENT, ReorderPriority.HIGH),
            (AlertTier.WARNING, ReorderPriority.MEDIUM),
            (AlertTier.NORMAL, ReorderPriority.LOW),
            (AlertTier.UNCONFIGURED, ReorderPriority.LOW),
        ],
    )
    def test_priority_for(self, tier, priority):
        assert priority_for(tier) == priority


class TestCreate:
    def test_snapshot(self, pending, item, test_actor_id):
        assert pending.item_id == item.id
        assert pending.status == "pending"
        assert pending.priority == "high"
        assert pending.alert_tier == "urgent"
        assert (pending.current_stock, pending.available_stock) == (4, 4)
        assert (pending.minimum_level, pending.reorder_level, pending.maximum_level) == (5, 10, 50)
        assert pending.suggested_quantity == 46
        assert pending.requested_by_id == test_actor_id
        assert pending.remarks == "low"

    def test_one_open_request_per_item(self, reorder_service, pending, item, test_actor_id):
        with pytest.raises(DuplicateReorderRequestError):
            reorder_service.create_from_alert(_alert(item.id, 2), test_actor_id)

    def test_closed_request_allows_new_one(
        self, reorder_service, session, pending, item, test_actor_id
    ):
        reorder_service.cancel(pending.id, test_actor_id)
        session.commit()

        second = reorder_service.create_from_alert(_alert(item.id, 2), test_actor_id)
        session.commit()

        assert second.id != pending.id

    def test_unknown_item(self, reorder_service, test_actor_id):
        with pytest.raises(UnknownItemError):
            reorder_service.create_from_alert(_alert(uuid4(), 0), test_actor_id)


class TestLifecycle:
    def test_full_path(self, reorder_service, session, pending, test_actor_id):
        approved = reorder_service.approve(pending.id, test_actor_id)
        ordered = reorder_service.mark_ordered(pending.id, test_actor_id, remarks="PO-881")
        received = reorder_service.mark_received(pending.id, 40, test_actor_id)
        session.commit()

        assert [approved.status, ordered.status, received.status] == [
            "approved",
            "ordered",
            "received",
        ]
        assert received.actual_quantity == 40
        assert received.remarks == "PO-881"
        assert received.version == 4

    @pytest.mark.parametrize("target", ["ordered", "received"])
    def test_pending_cannot_skip_ahead(self, reorder_service, pending, test_actor_id, target):
        with pytest.raises(InvalidReorderTransitionError) as exc_info:
            reorder_service.transition(pending.id, target, test_actor_id, actual_quantity=1)
        assert exc_info.value.code == "INVALID_REORDER_TRANSITION"

    def test_terminal_states(self, reorder_service, session, pending, test_actor_id):
        reorder_service.cancel(pending.id, test_actor_id)
        session.commit()

        with pytest.raises(InvalidReorderTransitionError):
            reorder_service.approve(pending.id, test_actor_id)

    def test_unknown_status(self, reorder_service, pending, test_actor_id):
        with pytest.raises(InvalidReorderTransitionError):
            reorder_service.transition(pending.id, "shipped", test_actor_id)

    @pytest.mark.parametrize("quantity", [None, -1, 2.5, True])
    def test_received_quantity_validated(
        self, reorder_service, session, pending, test_actor_id, quantity
    ):
        reorder_service.approve(pending.id, test_actor_id)
        reorder_service.mark_ordered(pending.id, test_actor_id)
        session.commit()

        with pytest.raises(InvalidQuantityError):
            reorder_service.mark_received(pending.id, quantity, test_actor_id)

    def test_transition_table_is_closed(self):
        assert set(VALID_TRANSITIONS) == set(ReorderStatus)
        assert VALID_TRANSITIONS[ReorderStatus.RECEIVED] == frozenset()


class TestListAndDelete:
    def test_list_filters(self, reorder_service, session, pending, create_item, test_actor_id):
        other = create_item()
        second = reorder_service.create_from_alert(_alert(other.id, 0), test_actor_id)
        reorder_service.approve(second.id, test_actor_id)
        session.commit()

        assert {r.id for r in reorder_service.list_requests()} == {pending.id, second.id}
        assert [r.id for r in reorder_service.list_requests(status="approved")] == [second.id]
        assert [r.id for r in reorder_service.list_requests(item_id=other.id)] == [second.id]

    def test_soft_delete(self, reorder_service, session, pending, test_actor_id):
        reorder_service.delete_request(pending.id, test_actor_id)
        session.commit()

        assert reorder_service.list_requests() == []
        with pytest.raises(ReorderRequestNotFoundError):
            reorder_service.get_request(pending.id)
        with pytest.raises(ReorderRequestNotFoundError):
            reorder_service.delete_request(pending.id, test_actor_id)
