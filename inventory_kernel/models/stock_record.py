"""
Module: inventory_kernel.models.stock_record
Responsibility: ORM persistence for the per-item current stock aggregate.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One record per item (uq_stock_record_item).
    - version increases by exactly one per applied movement; every write is
      a compare-and-swap on (item_id, version) issued by LedgerService.
    - available_quantity is derived, never stored.

Failure modes:
    - A zero-row compare-and-swap means another writer won; the ledger
      reloads and retries.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString


class StockRecord(Base):
    """
    Authoritative current stock for one item.

    Contract:
        Only LedgerService mutates this table, by applying a movement or by
        an explicit repair from the movement log.

    Guarantees:
        - current_quantity equals the sum of applied quantity deltas.
        - reserved_quantity equals the sum of applied reservation deltas.
    """

    __tablename__ = "stock_records"

    __table_args__ = (
        UniqueConstraint("item_id", name="uq_stock_record_item"),
        Index("idx_stock_record_levels", "current_quantity", "reserved_quantity"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("item_masters.id"),
        nullable=False,
    )

    current_quantity: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    reserved_quantity: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    last_movement_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    @property
    def available_quantity(self) -> int:
        return self.current_quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<StockRecord item={self.item_id} current={self.current_quantity} "
            f"reserved={self.reserved_quantity} v{self.version}>"
        )
