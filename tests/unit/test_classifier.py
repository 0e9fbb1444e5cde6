"""
Unit tests for the stock status classifier (inventory_kernel/domain/classifier.py).
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.classifier import (
    REASON_APPROACHING_MINIMUM,
    REASON_AT_MINIMUM,
    REASON_AT_REORDER,
    REASON_NORMAL,
    REASON_OUT_OF_STOCK,
    REASON_UNCONFIGURED,
    classify,
    classify_quantity,
)
from inventory_kernel.domain.dtos import (
    AlertTier,
    ItemInfo,
    StockRecordInfo,
    ThresholdSource,
    Thresholds,
)


def _thresholds(minimum: int, reorder: int, maximum: int = 0) -> Thresholds:
    return Thresholds(
        minimum=minimum, reorder=reorder, maximum=maximum, source=ThresholdSource.COMPUTED
    )


class TestTierRules:
    """First matching rule wins."""

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_zero_or_negative_is_critical(self, quantity):
        tier, reason = classify_quantity(quantity, _thresholds(40, 60))

        assert tier == AlertTier.CRITICAL
        assert reason == REASON_OUT_OF_STOCK

    def test_at_or_below_reorder_is_urgent(self):
        assert classify_quantity(50, _thresholds(40, 60)) == (
            AlertTier.URGENT,
            REASON_AT_REORDER,
        )
        assert classify_quantity(60, _thresholds(40, 60))[0] == AlertTier.URGENT

    def test_at_or_below_minimum_is_warning(self):
        # reorder below minimum so the minimum rule is reached
        assert classify_quantity(40, _thresholds(40, 10)) == (
            AlertTier.WARNING,
            REASON_AT_MINIMUM,
        )

    def test_early_warning_band(self):
        # 40 * 1.2 == 48: 47 is inside the band, 48 is not
        assert classify_quantity(47, _thresholds(40, 10)) == (
            AlertTier.WARNING,
            REASON_APPROACHING_MINIMUM,
        )
        assert classify_quantity(48, _thresholds(40, 10)) == (
            AlertTier.NORMAL,
            REASON_NORMAL,
        )

    def test_unconfigured_is_distinct_from_normal(self):
        tier, reason = classify_quantity(25, Thresholds.unconfigured())

        assert tier == AlertTier.UNCONFIGURED
        assert reason == REASON_UNCONFIGURED

    def test_unconfigured_still_reports_out_of_stock(self):
        assert classify_quantity(0, Thresholds.unconfigured())[0] == AlertTier.CRITICAL

    def test_zero_override_levels_are_normal(self):
        override = Thresholds(minimum=0, reorder=0, maximum=0, source=ThresholdSource.OVERRIDE)

        assert classify_quantity(1, override) == (AlertTier.NORMAL, REASON_NORMAL)


class TestClassifyEntry:
    """classify() copies the snapshot and catalog data onto the entry."""

    def test_entry_fields(self):
        item_id = uuid4()
        stock = StockRecordInfo(
            item_id=item_id, current_quantity=12, reserved_quantity=4, version=3
        )
        item = ItemInfo(id=item_id, item_code="TONER-01", name="Toner", unit="box")
        at = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)

        entry = classify(stock, _thresholds(5, 10, 50), item, at)

        assert entry.item_id == item_id
        assert entry.tier == AlertTier.NORMAL
        assert entry.available_quantity == 8
        assert entry.item_code == "TONER-01"
        assert entry.unit == "box"
        assert entry.computed_at == at
        assert entry.to_dict()["tier"] == "normal"

    def test_entry_without_item(self):
        stock = StockRecordInfo(
            item_id=uuid4(), current_quantity=0, reserved_quantity=0, version=1
        )

        entry = classify(stock, Thresholds.unconfigured())

        assert entry.item_code == ""
        assert entry.tier == AlertTier.CRITICAL


class TestClassifierProperties:
    """Total and exclusive over arbitrary inputs."""

    @settings(max_examples=300)
    @given(
        quantity=st.integers(min_value=-1000, max_value=100_000),
        minimum=st.integers(min_value=0, max_value=50_000),
        reorder=st.integers(min_value=0, max_value=50_000),
        configured=st.booleans(),
    )
    def test_exactly_one_tier(self, quantity, minimum, reorder, configured):
        if configured:
            thresholds = _thresholds(minimum, reorder)
        else:
            thresholds = Thresholds.unconfigured()

        tier, reason = classify_quantity(quantity, thresholds)

        assert tier in set(AlertTier)
        assert reason
        if quantity <= 0:
            assert tier == AlertTier.CRITICAL
        elif configured and reorder > 0 and quantity <= reorder:
            assert tier == AlertTier.URGENT

    @settings(max_examples=200)
    @given(
        minimum=st.integers(min_value=1, max_value=500),
        reorder=st.integers(min_value=1, max_value=500),
    )
    def test_more_stock_never_raises_severity(self, minimum, reorder):
        thresholds = _thresholds(minimum, reorder)
        ranks = [
            classify_quantity(quantity, thresholds)[0].rank
            for quantity in range(0, max(minimum, reorder) * 2 + 2)
        ]

        assert ranks == sorted(ranks)
