"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for MovementEvent, the append-only log of
    every accepted stock movement.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - event_id uniqueness (uq_movement_event_id) backs ledger idempotency.
    - Immutability: before_update/before_delete listeners in
      db/immutability.py raise ImmutabilityViolationError.
    - (item_id, applied_version) is unique and gives the replay order.

Failure modes:
    - IntegrityError on a duplicate event_id (concurrent submission of the
      same event); the gateway retries and the retry becomes a duplicate.

Audit relevance:
    Replaying the rows for an item in applied_version order reproduces its
    stock record.  Corrections are new compensating rows, never edits.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.domain.dtos import MovementKind  # noqa: F401  re-exported


class MovementEvent(Base):
    """
    One accepted change to an item's stock.

    Contract:
        Once INSERTed a MovementEvent is immutable.  It is written in the same
        transaction as the stock-record compare-and-swap it produced.

    Guarantees:
        - event_id is globally unique.
        - payload_hash is SHA-256 of the canonical event content.
        - applied_version equals the stock record version after this event.

    Non-goals:
        - This model does NOT validate quantity signs; LedgerService does.
    """

    __tablename__ = "movement_events"

    __table_args__ = (
        UniqueConstraint("event_id", name="uq_movement_event_id"),
        UniqueConstraint(
            "item_id", "applied_version", name="uq_movement_item_version"
        ),
        Index("idx_movement_item_occurred", "item_id", "occurred_at"),
        Index("idx_movement_kind", "kind"),
    )

    # Caller-supplied globally unique identifier
    event_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("item_masters.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Signed change to current_quantity
    quantity_delta: Mapped[int] = mapped_column(
        nullable=False,
    )

    # Signed change to reserved_quantity
    reservation_delta: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    # Correcting adjustments may drive stock negative
    is_correction: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # When the movement happened in reality
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # When the ledger accepted it
    accepted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Delivery id, issuance request id, etc.
    source_ref: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    payload_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    applied_version: Mapped[int] = mapped_column(
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<MovementEvent {self.kind}:{self.event_id} {self.quantity_delta:+d}>"
