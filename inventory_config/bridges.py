"""
Config -> Kernel Bridges.

Functions that convert InventoryConfig artifacts into kernel-compatible
inputs.  These live in inventory_config (the producer) because the kernel
must NEVER import inventory_config.
"""

from __future__ import annotations

from inventory_config.schema import InventoryConfig
from inventory_kernel.domain.dtos import SettingDefinition


def build_setting_definitions(config: InventoryConfig) -> list[SettingDefinition]:
    """Setting defaults in the form SettingsService.seed_defaults() accepts."""
    return [
        SettingDefinition(
            name=definition.name,
            value=definition.value,
            setting_type=definition.setting_type,
            min_value=definition.min_value,
            max_value=definition.max_value,
            description=definition.description,
        )
        for definition in config.settings
    ]
