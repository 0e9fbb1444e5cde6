"""
Tests for ThresholdResolver: override > computed > unconfigured.
"""

from decimal import Decimal

from inventory_kernel.domain.dtos import ThresholdSource
from inventory_kernel.services.threshold_resolver import ThresholdResolver


class TestPrecedence:
    def test_defaults_apply_floors(self, resolver, item, default_settings):
        thresholds = resolver.resolve(item.id, 30)

        # 10% / 20% / 150% of 30 are below the absolute floors 5 / 10 / 50
        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (5, 10, 50)
        assert thresholds.source == ThresholdSource.COMPUTED

    def test_percentages_dominate_for_large_stock(self, resolver, item, default_settings):
        thresholds = resolver.resolve(item.id, 1000)

        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (100, 200, 1500)

    def test_rounding_directions(self, resolver, item, default_settings):
        thresholds = resolver.resolve(item.id, 333)

        # 33.3 -> 33, 66.6 -> 66, 499.5 -> 500
        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (33, 66, 500)

    def test_override_wins_verbatim(
        self, resolver, override_service, session, item, default_settings, test_actor_id
    ):
        override_service.set_override(item.id, 40, 60, 0, None, test_actor_id)
        session.commit()

        thresholds = resolver.resolve(item.id, 10_000)

        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (40, 60, 0)
        assert thresholds.source == ThresholdSource.OVERRIDE

    def test_deactivated_override_falls_back(
        self, resolver, override_service, session, item, default_settings, test_actor_id
    ):
        override_service.set_override(item.id, 40, 60, 0, None, test_actor_id)
        override_service.deactivate_override(item.id, test_actor_id)
        session.commit()

        assert resolver.resolve(item.id, 30).source == ThresholdSource.COMPUTED

    def test_no_settings_is_unconfigured(self, resolver, item):
        thresholds = resolver.resolve(item.id, 30)

        assert thresholds.source == ThresholdSource.UNCONFIGURED
        assert not thresholds.is_configured
        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (0, 0, 0)

    def test_inactive_percentage_is_unconfigured(
        self, resolver, settings_service, session, item, default_settings, test_actor_id
    ):
        settings_service.set_active("reorder_point_percentage", False, test_actor_id)
        session.commit()

        assert resolver.resolve(item.id, 30).source == ThresholdSource.UNCONFIGURED

    def test_inactive_floor_counts_as_zero(
        self, resolver, settings_service, session, item, default_settings, test_actor_id
    ):
        settings_service.set_active("minimum_absolute_minimum", False, test_actor_id)
        session.commit()

        assert resolver.resolve(item.id, 30).minimum == 3


class TestFreshness:
    def test_committed_setting_change_visible_next_call(
        self, resolver, settings_service, session, item, default_settings, test_actor_id
    ):
        assert resolver.resolve(item.id, 1000).minimum == 100

        settings_service.update_setting("minimum_stock_percentage", 25, test_actor_id)
        session.commit()

        assert resolver.resolve(item.id, 1000).minimum == 250

    def test_supplied_setting_values_are_used(self, session, item, default_settings):
        resolver = ThresholdResolver(session)
        values = {
            "minimum_stock_percentage": Decimal("50"),
            "reorder_point_percentage": Decimal("60"),
            "maximum_stock_percentage": Decimal("100"),
        }

        thresholds = resolver.resolve(item.id, 10, setting_values=values)

        assert (thresholds.minimum, thresholds.reorder, thresholds.maximum) == (5, 6, 10)

    def test_preview(self, resolver, default_settings):
        assert resolver.preview(400).reorder == 80
