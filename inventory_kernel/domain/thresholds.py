"""
Threshold computation from global settings -- pure functions.

Responsibility:
    Turn a current quantity and the active setting values into minimum /
    reorder / maximum levels.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ThresholdResolver
    supplies the settings snapshot and handles override precedence.

Invariants enforced:
    - Decimal arithmetic only; floats never enter the computation.
    - minimum and reorder round down, maximum rounds up.
    - Each level is at least its absolute floor (a missing floor counts as 0).
    - If any percentage setting is missing the result is UNCONFIGURED with
      every level 0.
"""

from collections.abc import Mapping
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

from inventory_kernel.domain.dtos import ThresholdSource, Thresholds

MINIMUM_STOCK_PERCENTAGE = "minimum_stock_percentage"
REORDER_POINT_PERCENTAGE = "reorder_point_percentage"
MAXIMUM_STOCK_PERCENTAGE = "maximum_stock_percentage"
MINIMUM_ABSOLUTE_MINIMUM = "minimum_absolute_minimum"
MINIMUM_ABSOLUTE_REORDER = "minimum_absolute_reorder"
MINIMUM_ABSOLUTE_MAXIMUM = "minimum_absolute_maximum"
SAFETY_STOCK_DAYS = "safety_stock_days"

PERCENTAGE_SETTINGS = (
    MINIMUM_STOCK_PERCENTAGE,
    REORDER_POINT_PERCENTAGE,
    MAXIMUM_STOCK_PERCENTAGE,
)

_HUNDRED = Decimal(100)


def _scaled(quantity: int, percentage: Decimal, rounding: str) -> int:
    value = Decimal(quantity) * Decimal(percentage) / _HUNDRED
    return int(value.to_integral_value(rounding=rounding))


def _floor_value(settings: Mapping[str, Decimal], name: str) -> int:
    raw = settings.get(name)
    if raw is None:
        return 0
    return int(Decimal(raw).to_integral_value(rounding=ROUND_CEILING))


def compute_thresholds(
    current_quantity: int,
    settings: Mapping[str, Decimal],
) -> Thresholds:
    """
    Compute thresholds from active setting values.

    Args:
        current_quantity: The item's current quantity.
        settings: Active setting name -> value.  Inactive settings must not
            appear in this mapping.

    Returns:
        COMPUTED thresholds, or UNCONFIGURED zeros when a percentage
        setting is absent.
    """
    if any(name not in settings for name in PERCENTAGE_SETTINGS):
        return Thresholds.unconfigured()

    minimum = max(
        _scaled(current_quantity, settings[MINIMUM_STOCK_PERCENTAGE], ROUND_FLOOR),
        _floor_value(settings, MINIMUM_ABSOLUTE_MINIMUM),
    )
    reorder = max(
        _scaled(current_quantity, settings[REORDER_POINT_PERCENTAGE], ROUND_FLOOR),
        _floor_value(settings, MINIMUM_ABSOLUTE_REORDER),
    )
    maximum = max(
        _scaled(current_quantity, settings[MAXIMUM_STOCK_PERCENTAGE], ROUND_CEILING),
        _floor_value(settings, MINIMUM_ABSOLUTE_MAXIMUM),
    )

    return Thresholds(
        minimum=max(minimum, 0),
        reorder=max(reorder, 0),
        maximum=max(maximum, 0),
        source=ThresholdSource.COMPUTED,
    )
