"""
ThresholdResolver -- effective minimum / reorder / maximum for an item.

Precedence, strictly:
    1. An active override for the item, used verbatim.
    2. Values computed from the active settings (domain/thresholds.py).
    3. UNCONFIGURED zeros when a percentage setting is missing or inactive.

Resolution never fails on bounds; bounds are enforced when settings are
written.  Settings and overrides are read on every call, so a committed
change is visible to the next resolution.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_kernel.domain.dtos import Thresholds
from inventory_kernel.domain.thresholds import compute_thresholds
from inventory_kernel.logging_config import get_logger
from inventory_kernel.services.override_service import OverrideService
from inventory_kernel.services.settings_service import SettingsService

logger = get_logger("services.threshold_resolver")


class ThresholdResolver:
    """Resolves thresholds from overrides and settings."""

    def __init__(
        self,
        session: Session,
        settings: SettingsService | None = None,
        overrides: OverrideService | None = None,
    ):
        self.session = session
        self._settings = settings or SettingsService(session)
        self._overrides = overrides or OverrideService(session)

    def resolve(
        self,
        item_id: UUID,
        current_quantity: int,
        setting_values: dict[str, Decimal] | None = None,
    ) -> Thresholds:
        """
        Effective thresholds for one item.

        Args:
            item_id: Item to resolve.
            current_quantity: The item's current quantity.
            setting_values: Optional pre-read active settings, so a batch
                caller can read settings once.
        """
        override = self._overrides.get_active_override(item_id)
        if override is not None:
            return override.to_thresholds()

        values = setting_values if setting_values is not None else self._settings.get_active_values()
        thresholds = compute_thresholds(current_quantity, values)
        if not thresholds.is_configured:
            logger.debug("thresholds_unconfigured", extra={"item_id": str(item_id)})
        return thresholds

    def preview(self, current_quantity: int) -> Thresholds:
        """Settings-only thresholds for a hypothetical quantity."""
        return compute_thresholds(current_quantity, self._settings.get_active_values())
