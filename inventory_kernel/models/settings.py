"""
Module: inventory_kernel.models.settings
Responsibility: ORM persistence for named inventory settings and their
    append-only change log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Setting names are unique (uq_inventory_setting_name).
    - value lies within [min_value, max_value]; enforced by SettingsService
      at write time and by a CHECK constraint.
    - SettingChangeLog rows are immutable (db/immutability.py).

Audit relevance:
    Thresholds for every item without an override derive from these values.
    The change log answers who changed a percentage, when, and why.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, TrackedBase, UUIDString


class SettingType(str, Enum):
    """Unit of a setting value."""

    PERCENTAGE = "percentage"
    ABSOLUTE = "absolute"
    DAYS = "days"


class SettingChangeType(str, Enum):
    VALUE = "value"
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


class InventorySetting(TrackedBase):
    """
    Named numeric setting with bounds.

    Contract:
        Updates go through SettingsService, which rejects out-of-bounds values
        and bumps version with a compare-and-swap.  Settings are
        soft-deactivated, never deleted.
    """

    __tablename__ = "inventory_settings"

    __table_args__ = (
        UniqueConstraint("name", name="uq_inventory_setting_name"),
        CheckConstraint(
            "min_value <= max_value",
            name="ck_inventory_setting_bounds",
        ),
        CheckConstraint(
            "value >= min_value AND value <= max_value",
            name="ck_inventory_setting_value_in_bounds",
        ),
        Index("idx_inventory_setting_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    value: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    setting_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    min_value: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    max_value: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
    )

    def __repr__(self) -> str:
        return f"<InventorySetting {self.name}={self.value}>"


class SettingChangeLog(Base):
    """
    One administrative change to a setting.

    Contract:
        Written in the same flush as the change it records.  Immutable.
    """

    __tablename__ = "inventory_settings_log"

    __table_args__ = (
        Index("idx_setting_log_name_changed", "setting_name", "changed_at"),
    )

    setting_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    change_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    old_value: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    new_value: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Setting version produced by this change
    setting_version: Mapped[int] = mapped_column(
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<SettingChangeLog {self.setting_name} {self.change_type} "
            f"{self.old_value}->{self.new_value}>"
        )
