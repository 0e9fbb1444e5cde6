"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for ItemMaster, the identity of a
    stock-keeping unit.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - item_code is globally unique (uq_item_code constraint).
    - item_code is immutable once a stock record references the item
      (db/immutability.py); descriptive fields stay editable.

Failure modes:
    - IntegrityError on duplicate item_code.
    - ImmutabilityViolationError on an item_code change or delete after
      stock has been recorded.

Audit relevance:
    Every movement event and stock record points at an ItemMaster row.
    Catalog management creates these; the ledger only reads them.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TrackedBase


class ItemMaster(TrackedBase):
    """
    Stock-keeping unit identity.

    Contract:
        Created by catalog management outside the ledger.  The ledger
        validates movement item ids against this table and never writes it.

    Guarantees:
        - item_code is unique and, once referenced, permanent.
        - is_active hides retired items from new catalog use; it does not
          block movements for existing stock.
    """

    __tablename__ = "item_masters"

    __table_args__ = (
        UniqueConstraint("item_code", name="uq_item_code"),
        Index("idx_item_name", "name"),
        Index("idx_item_category", "category", "sub_category"),
    )

    # Business identifier printed on stock cards and requests
    item_code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Unit of measure (e.g., "pcs", "box", "ream")
    unit: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="pcs",
    )

    category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    sub_category: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<ItemMaster {self.item_code}: {self.name}>"
