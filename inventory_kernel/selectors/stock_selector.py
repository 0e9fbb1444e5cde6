"""
Module: inventory_kernel.selectors.stock_selector
Responsibility: Read-only queries over items, stock records and the movement
    log.  Provides the keyset-paginated StockRecordSequence used for
    low-stock listings and the alert feed.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Stock records are always re-read from the store (populate_existing)
      so a long-lived session never serves a stale identity-map copy.
    - Movement history is returned in applied_version order, the replay
      order of the ledger.
    - StockRecordSequence orders by (available_quantity, item_id) and
      re-queries on every iteration, so it is lazy and restartable.
"""

from collections.abc import Callable, Iterable, Iterator
from uuid import UUID

from sqlalchemy import and_, or_, select

from inventory_kernel.domain.dtos import ItemInfo, MovementInfo, StockRecordInfo
from inventory_kernel.models.item import ItemMaster
from inventory_kernel.models.movement import MovementEvent
from inventory_kernel.models.stock_record import StockRecord
from inventory_kernel.selectors.base import BaseSelector

DEFAULT_BATCH_SIZE = 200

_AVAILABLE = StockRecord.current_quantity - StockRecord.reserved_quantity


class StockSelector(BaseSelector[StockRecord]):
    """Read access to items, stock records and movements."""

    def get_item(self, item_id: UUID) -> ItemInfo | None:
        item = self.session.get(ItemMaster, item_id)
        return ItemInfo.from_model(item) if item is not None else None

    def items_by_ids(self, item_ids: Iterable[UUID]) -> dict[UUID, ItemInfo]:
        ids = list(item_ids)
        if not ids:
            return {}
        rows = self.session.execute(
            select(ItemMaster).where(ItemMaster.id.in_(ids))
        ).scalars()
        return {row.id: ItemInfo.from_model(row) for row in rows}

    def get_record(self, item_id: UUID) -> StockRecordInfo | None:
        record = self.session.execute(
            select(StockRecord)
            .where(StockRecord.item_id == item_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return StockRecordInfo.from_model(record) if record is not None else None

    def get_event(self, event_id: str) -> MovementInfo | None:
        event = self.session.execute(
            select(MovementEvent).where(MovementEvent.event_id == event_id)
        ).scalar_one_or_none()
        return MovementInfo.from_model(event) if event is not None else None

    def movement_history(self, item_id: UUID) -> list[MovementInfo]:
        rows = self.session.execute(
            select(MovementEvent)
            .where(MovementEvent.item_id == item_id)
            .order_by(MovementEvent.applied_version)
        ).scalars()
        return [MovementInfo.from_model(row) for row in rows]

    def movement_deltas(
        self,
        item_id: UUID,
        up_to_version: int | None = None,
    ) -> list[tuple[int, int]]:
        """(quantity_delta, reservation_delta) pairs in replay order."""
        stmt = (
            select(MovementEvent.quantity_delta, MovementEvent.reservation_delta)
            .where(MovementEvent.item_id == item_id)
            .order_by(MovementEvent.applied_version)
        )
        if up_to_version is not None:
            stmt = stmt.where(MovementEvent.applied_version <= up_to_version)
        return [(row[0], row[1]) for row in self.session.execute(stmt)]

    def records_page(
        self,
        after: tuple[int, str] | None,
        limit: int,
    ) -> list[StockRecordInfo]:
        """
        One keyset page of stock records ordered by (available, item_id).

        Args:
            after: (available_quantity, item_id string) of the last row of
                the previous page, or None for the first page.
            limit: Page size.
        """
        stmt = select(StockRecord).order_by(_AVAILABLE, StockRecord.item_id)
        if after is not None:
            last_available, last_item = after
            stmt = stmt.where(
                or_(
                    _AVAILABLE > last_available,
                    and_(_AVAILABLE == last_available, StockRecord.item_id > last_item),
                )
            )
        rows = self.session.execute(
            stmt.limit(limit).execution_options(populate_existing=True)
        ).scalars()
        return [StockRecordInfo.from_model(row) for row in rows]


class StockRecordSequence:
    """
    Lazy, restartable sequence of stock records.

    Contract:
        Iteration yields records ordered by ascending available quantity
        (ties by item id) for which ``predicate`` is true.  Each call to
        ``iter()`` starts a fresh series of keyset-paginated queries, so the
        sequence can be consumed more than once and reflects the store at
        iteration time.

    Non-goals:
        - Does NOT snapshot the store; records changed mid-iteration may be
          seen before or after the change.
    """

    def __init__(
        self,
        selector: StockSelector,
        predicate: Callable[[StockRecordInfo], bool] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._selector = selector
        self._predicate = predicate
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[StockRecordInfo]:
        after: tuple[int, str] | None = None
        while True:
            page = self._selector.records_page(after, self._batch_size)
            for record in page:
                if self._predicate is None or self._predicate(record):
                    yield record
            if len(page) < self._batch_size:
                return
            last = page[-1]
            after = (last.available_quantity, str(last.item_id))
