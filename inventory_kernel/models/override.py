"""
Module: inventory_kernel.models.override
Responsibility: ORM persistence for per-item threshold overrides.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one active override per item: enforced by OverrideService and
      by the partial unique index uq_threshold_override_active_item.
    - version numbers an item's overrides 1, 2, 3... (unique per item), so
      two writers replacing the same override cannot both succeed.
    - Levels are non-negative (CHECK constraint).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class ThresholdOverride(TrackedBase):
    """
    Manually set minimum / reorder / maximum levels for one item.

    Contract:
        An active override replaces the computed thresholds verbatim.
        Replacing an override deactivates the prior row; rows are never
        deleted, so the history of overrides stays queryable.
    """

    __tablename__ = "threshold_overrides"

    __table_args__ = (
        CheckConstraint(
            "minimum_level >= 0 AND reorder_level >= 0 AND maximum_level >= 0",
            name="ck_threshold_override_non_negative",
        ),
        Index(
            "uq_threshold_override_active_item",
            "item_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        UniqueConstraint("item_id", "version", name="uq_threshold_override_item_version"),
        Index("idx_threshold_override_item_created", "item_id", "created_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("item_masters.id"),
        nullable=False,
    )

    minimum_level: Mapped[int] = mapped_column(
        nullable=False,
    )

    reorder_level: Mapped[int] = mapped_column(
        nullable=False,
    )

    maximum_level: Mapped[int] = mapped_column(
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
    )

    reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    deactivated_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return (
            f"<ThresholdOverride item={self.item_id} "
            f"{self.minimum_level}/{self.reorder_level}/{self.maximum_level} {state}>"
        )
