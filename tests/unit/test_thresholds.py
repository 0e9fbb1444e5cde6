"""
Unit tests for threshold computation (inventory_kernel/domain/thresholds.py).

Pure functions only; no database.
"""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from inventory_kernel.domain.dtos import ThresholdSource, Thresholds
from inventory_kernel.domain.thresholds import (
    MAXIMUM_STOCK_PERCENTAGE,
    MINIMUM_ABSOLUTE_MAXIMUM,
    MINIMUM_ABSOLUTE_MINIMUM,
    MINIMUM_ABSOLUTE_REORDER,
    MINIMUM_STOCK_PERCENTAGE,
    REORDER_POINT_PERCENTAGE,
    compute_thresholds,
)

DEFAULTS = {
    MINIMUM_STOCK_PERCENTAGE: Decimal("10"),
    REORDER_POINT_PERCENTAGE: Decimal("20"),
    MAXIMUM_STOCK_PERCENTAGE: Decimal("150"),
    MINIMUM_ABSOLUTE_MINIMUM: Decimal("5"),
    MINIMUM_ABSOLUTE_REORDER: Decimal("10"),
    MINIMUM_ABSOLUTE_MAXIMUM: Decimal("50"),
}


class TestComputedThresholds:
    """Percentages of current stock, floored by absolute minimums."""

    def test_floors_dominate_small_quantities(self):
        thresholds = compute_thresholds(30, DEFAULTS)

        assert thresholds == Thresholds(
            minimum=5, reorder=10, maximum=50, source=ThresholdSource.COMPUTED
        )

    def test_percentages_dominate_large_quantities(self):
        thresholds = compute_thresholds(1000, DEFAULTS)

        assert thresholds.minimum == 100
        assert thresholds.reorder == 200
        assert thresholds.maximum == 1500

    def test_minimum_and_reorder_round_down_maximum_rounds_up(self):
        values = dict(DEFAULTS)
        values.update(
            {
                MINIMUM_ABSOLUTE_MINIMUM: Decimal("0"),
                MINIMUM_ABSOLUTE_REORDER: Decimal("0"),
                MINIMUM_ABSOLUTE_MAXIMUM: Decimal("0"),
            }
        )
        thresholds = compute_thresholds(99, values)

        # 9.9 -> 9, 19.8 -> 19, 148.5 -> 149
        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (9, 19, 149)

    def test_fractional_percentages_use_decimal_arithmetic(self):
        values = dict(DEFAULTS)
        values[MINIMUM_STOCK_PERCENTAGE] = Decimal("33.3")
        values[MINIMUM_ABSOLUTE_MINIMUM] = Decimal("0")

        # 300 * 33.3 / 100 == 99.9 exactly; a float path would risk 99.89999
        assert compute_thresholds(300, values).minimum == 99

    def test_missing_floor_counts_as_zero(self):
        values = {
            MINIMUM_STOCK_PERCENTAGE: Decimal("10"),
            REORDER_POINT_PERCENTAGE: Decimal("20"),
            MAXIMUM_STOCK_PERCENTAGE: Decimal("150"),
        }
        thresholds = compute_thresholds(10, values)

        assert thresholds.minimum == 1
        assert thresholds.reorder == 2
        assert thresholds.maximum == 15
        assert thresholds.source == ThresholdSource.COMPUTED

    def test_zero_quantity_yields_floors(self):
        thresholds = compute_thresholds(0, DEFAULTS)

        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (5, 10, 50)


class TestUnconfigured:
    """Any missing percentage setting means no computed thresholds at all."""

    def test_missing_percentage_is_unconfigured(self):
        for missing in (
            MINIMUM_STOCK_PERCENTAGE,
            REORDER_POINT_PERCENTAGE,
            MAXIMUM_STOCK_PERCENTAGE,
        ):
            values = {k: v for k, v in DEFAULTS.items() if k != missing}
            thresholds = compute_thresholds(500, values)

            assert thresholds.source == ThresholdSource.UNCONFIGURED
            assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (0, 0, 0)
            assert not thresholds.is_configured

    def test_empty_settings(self):
        assert compute_thresholds(10, {}) == Thresholds.unconfigured()


class TestThresholdProperties:
    """Property-based checks over arbitrary quantities and settings."""

    @settings(max_examples=200)
    @given(
        quantity=st.integers(min_value=0, max_value=10_000_000),
        min_pct=st.decimals(min_value=0, max_value=100, places=2),
        reorder_pct=st.decimals(min_value=0, max_value=100, places=2),
        max_pct=st.decimals(min_value=0, max_value=1000, places=2),
        floor_min=st.integers(min_value=0, max_value=100_000),
    )
    def test_levels_never_below_floor_nor_negative(
        self, quantity, min_pct, reorder_pct, max_pct, floor_min
    ):
        values = {
            MINIMUM_STOCK_PERCENTAGE: min_pct,
            REORDER_POINT_PERCENTAGE: reorder_pct,
            MAXIMUM_STOCK_PERCENTAGE: max_pct,
            MINIMUM_ABSOLUTE_MINIMUM: Decimal(floor_min),
        }
        thresholds = compute_thresholds(quantity, values)

        assert thresholds.minimum >= floor_min
        assert thresholds.minimum >= 0
        assert thresholds.reorder >= 0
        assert thresholds.maximum >= 0
        assert thresholds.minimum <= max(quantity * min_pct / 100, floor_min)

    @settings(max_examples=100)
    @given(quantity=st.integers(min_value=0, max_value=1_000_000))
    def test_deterministic(self, quantity):
        assert compute_thresholds(quantity, DEFAULTS) == compute_thresholds(quantity, DEFAULTS)
