"""
Module: inventory_kernel.models.reorder_request
Responsibility: ORM persistence for replenishment requests raised from stock
    alerts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Valid status values (CHECK constraint).
    - At most one open (pending, approved, ordered) request per item among
      non-deleted rows: partial unique index plus a service-level check.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase, UUIDString


class ReorderStatus(str, Enum):
    """Reorder request lifecycle.

    Contract: pending -> approved | cancelled; approved -> ordered |
    cancelled; ordered -> received.  received and cancelled are terminal.
    """

    PENDING = "pending"
    APPROVED = "approved"
    ORDERED = "ordered"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class ReorderPriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


OPEN_STATUSES = frozenset(
    {ReorderStatus.PENDING, ReorderStatus.APPROVED, ReorderStatus.ORDERED}
)

_OPEN_PREDICATE = "status IN ('pending', 'approved', 'ordered') AND is_deleted = "


class ReorderRequest(TrackedBase):
    """
    A request to replenish one item.

    Contract:
        Stock and threshold figures are a snapshot taken when the request
        was raised; they do not follow later movements.  Receiving the goods
        is a separate delivery movement on the ledger.
    """

    __tablename__ = "reorder_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'ordered', 'received', 'cancelled')",
            name="ck_reorder_request_valid_status",
        ),
        CheckConstraint(
            "priority IN ('critical', 'high', 'medium', 'low')",
            name="ck_reorder_request_valid_priority",
        ),
        Index(
            "uq_reorder_request_open_item",
            "item_id",
            unique=True,
            postgresql_where=text(_OPEN_PREDICATE + "false"),
            sqlite_where=text(_OPEN_PREDICATE + "0"),
        ),
        Index("idx_reorder_request_status_created", "status", "created_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("item_masters.id"),
        nullable=False,
    )

    # Snapshot at request time
    current_stock: Mapped[int] = mapped_column(nullable=False)
    available_stock: Mapped[int] = mapped_column(nullable=False)
    minimum_level: Mapped[int] = mapped_column(nullable=False)
    reorder_level: Mapped[int] = mapped_column(nullable=False)
    maximum_level: Mapped[int] = mapped_column(nullable=False)

    suggested_quantity: Mapped[int] = mapped_column(nullable=False)

    actual_quantity: Mapped[int | None] = mapped_column(nullable=True)

    priority: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReorderPriority.MEDIUM.value,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReorderStatus.PENDING.value,
    )

    # Alert tier that triggered the request
    alert_tier: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    remarks: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status_changed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=1,
    )

    def __repr__(self) -> str:
        return f"<ReorderRequest item={self.item_id} {self.status} qty={self.suggested_quantity}>"
