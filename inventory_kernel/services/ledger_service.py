"""
LedgerService -- authoritative per-item stock from movement events.

Responsibility:
    Applies movement events (deliveries, issuances, returns, adjustments,
    reservations) to the per-item stock record, exactly once per event id,
    and verifies the incremental figure against a replay of the movement log.

Architecture position:
    Kernel > Services -- imperative shell.  Pure validation and arithmetic
    live in domain/movement_validator.py; reads go through StockSelector.

Invariants enforced:
    - Idempotency: an event id is applied at most once.  Resubmitting the
      same content raises DuplicateEventError carrying the unchanged record;
      different content under the same id raises EventPayloadMismatchError.
    - Atomic read-modify-write: every change to a stock record is a
      compare-and-swap on (item_id, version).  A lost race reloads and
      retries up to max_cas_retries, then raises ConcurrencyConflictError.
    - The MovementEvent row is written in the same transaction as the
      compare-and-swap that it produced, stamped with the resulting version.
    - No implicit negative stock (see next_levels()).
    - Replay never auto-corrects: drift is reported, and only
      repair_from_events() rewrites the stored figure.

Failure modes:
    - UnknownItemError, InvalidMovementError, InvalidQuantityError:
      rejected before touching the stock record.
    - InsufficientStockError: record unchanged.
    - ConcurrencyConflictError: retry cap exhausted (retryable).
    - IntegrityError (unique event_id): two transactions inserted the same
      event concurrently; the caller rolls back and retries, and the retry
      resolves to DuplicateEventError.
    - IntegrityFaultError: strict recompute found drift.

Audit relevance:
    Every accepted, duplicate and rejected movement is logged with its
    event id and item id.  Drift is logged at ERROR as ledger_drift_detected.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import (
    MovementEventData,
    MovementInfo,
    RecomputeResult,
    StockLevels,
    StockRecordInfo,
)
from inventory_kernel.domain.movement_validator import (
    next_levels,
    replay,
    validate_movement,
)
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    DuplicateEventError,
    EventPayloadMismatchError,
    InsufficientStockError,
    IntegrityFaultError,
    InvalidQuantityError,
    StockRecordNotFoundError,
    UnknownItemError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.movement import MovementEvent
from inventory_kernel.models.stock_record import StockRecord
from inventory_kernel.selectors.stock_selector import (
    DEFAULT_BATCH_SIZE,
    StockRecordSequence,
    StockSelector,
)
from inventory_kernel.services.base import BaseService
from inventory_kernel.utils.hashing import hash_payload

logger = get_logger("services.ledger")

DEFAULT_MAX_CAS_RETRIES = 5


class LedgerService(BaseService[StockRecord]):
    """
    Applies movements and answers stock queries.

    Contract:
        The caller owns the transaction.  apply_movement() flushes; it never
        commits.  If it raises, the caller must roll back.

    Guarantees:
        - current_quantity equals the sum of applied quantity deltas.
        - version increases by one per applied movement.
        - A given event id contributes to the stock at most once.

    Non-goals:
        - Does NOT resolve thresholds or classify stock (ThresholdResolver,
          classifier).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_cas_retries: int = DEFAULT_MAX_CAS_RETRIES,
        list_batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        super().__init__(session, clock)
        if max_cas_retries < 1:
            raise ValueError("max_cas_retries must be at least 1")
        self.max_cas_retries = max_cas_retries
        self.list_batch_size = list_batch_size
        self._selector = StockSelector(session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_movement(self, event: MovementEventData) -> StockRecordInfo:
        """
        Apply one movement event to its item's stock record.

        Preconditions:
            - The caller owns an open transaction on self.session.

        Postconditions:
            - On success, the stock record reflects the event, version is
              incremented, and a MovementEvent row exists with the new version.

        Raises:
            InvalidMovementError, InvalidQuantityError, UnknownItemError,
            DuplicateEventError, EventPayloadMismatchError,
            InsufficientStockError, ConcurrencyConflictError.
        """
        kind = validate_movement(event)

        with LogContext.bind(
            event_id=event.event_id,
            item_id=event.item_id,
            actor_id=event.actor_id,
            operation="apply_movement",
        ):
            if self._selector.get_item(event.item_id) is None:
                logger.warning(
                    "movement_rejected_unknown_item",
                    extra={"kind": kind.value},
                )
                raise UnknownItemError(str(event.item_id))

            payload_hash = hash_payload(event.hash_content(kind))

            for attempt in range(1, self.max_cas_retries + 1):
                self._check_duplicate(event, payload_hash)

                record = self._current_record(event.item_id)
                try:
                    levels = next_levels(
                        event,
                        kind,
                        record.current_quantity,
                        record.reserved_quantity,
                        str(event.item_id),
                    )
                except InsufficientStockError:
                    logger.warning(
                        "movement_rejected_insufficient_stock",
                        extra={
                            "kind": kind.value,
                            "current_quantity": record.current_quantity,
                            "available_quantity": record.available_quantity,
                            "quantity_delta": event.quantity_delta,
                            "reservation_delta": event.reservation_delta,
                        },
                    )
                    raise
                except InvalidQuantityError:
                    logger.warning(
                        "movement_rejected_reservation",
                        extra={
                            "reserved_quantity": record.reserved_quantity,
                            "reservation_delta": event.reservation_delta,
                        },
                    )
                    raise

                accepted_at = self._clock.now()
                if self._compare_and_swap(
                    event.item_id, record.version, levels, accepted_at
                ):
                    new_version = record.version + 1
                    self.session.add(
                        MovementEvent(
                            event_id=event.event_id,
                            item_id=event.item_id,
                            kind=kind.value,
                            quantity_delta=event.quantity_delta,
                            reservation_delta=event.reservation_delta,
                            is_correction=event.is_correction,
                            occurred_at=event.occurred_at,
                            accepted_at=accepted_at,
                            source_ref=event.source_ref,
                            actor_id=event.actor_id,
                            payload_hash=payload_hash,
                            applied_version=new_version,
                        )
                    )
                    self.session.flush()

                    logger.info(
                        "movement_applied",
                        extra={
                            "kind": kind.value,
                            "quantity_delta": event.quantity_delta,
                            "reservation_delta": event.reservation_delta,
                            "current_quantity": levels.current_quantity,
                            "reserved_quantity": levels.reserved_quantity,
                            "version": new_version,
                            "attempt": attempt,
                        },
                    )
                    return StockRecordInfo(
                        item_id=event.item_id,
                        current_quantity=levels.current_quantity,
                        reserved_quantity=levels.reserved_quantity,
                        version=new_version,
                        last_movement_at=accepted_at,
                    )

                logger.info(
                    "stock_cas_conflict",
                    extra={"attempt": attempt, "expected_version": record.version},
                )

            logger.warning(
                "stock_cas_exhausted",
                extra={"attempts": self.max_cas_retries},
            )
            raise ConcurrencyConflictError(
                "StockRecord", str(event.item_id), self.max_cas_retries
            )

    def repair_from_events(
        self,
        item_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> RecomputeResult:
        """
        Explicit repair: set the stock record to the replayed values.

        Returns:
            The recompute result; ``repaired`` is True when the record was
            rewritten, False when there was no drift to repair.

        Raises:
            StockRecordNotFoundError, UnknownItemError,
            ConcurrencyConflictError.
        """
        with LogContext.bind(
            item_id=item_id, actor_id=actor_id, operation="repair_from_events"
        ):
            for attempt in range(1, self.max_cas_retries + 1):
                result, record = self._replay(item_id)
                if not result.has_drift:
                    logger.info("ledger_repair_not_needed")
                    return result

                levels = StockLevels(
                    current_quantity=result.replayed_quantity,
                    reserved_quantity=result.replayed_reserved,
                )
                if self._compare_and_swap(
                    item_id, record.version, levels, record.last_movement_at
                ):
                    self.session.flush()
                    logger.warning(
                        "ledger_drift_repaired",
                        extra={
                            "incremental_quantity": result.incremental_quantity,
                            "incremental_reserved": result.incremental_reserved,
                            "replayed_quantity": result.replayed_quantity,
                            "replayed_reserved": result.replayed_reserved,
                            "reason": reason,
                        },
                    )
                    return replace(result, repaired=True)

                logger.info(
                    "stock_cas_conflict",
                    extra={"attempt": attempt, "expected_version": record.version},
                )

            raise ConcurrencyConflictError(
                "StockRecord", str(item_id), self.max_cas_retries
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_stock(self, item_id: UUID) -> StockRecordInfo:
        """
        Current stock for an item.

        Raises:
            UnknownItemError: item does not exist.
            StockRecordNotFoundError: no movement recorded for the item yet.
        """
        record = self._selector.get_record(item_id)
        if record is not None:
            return record
        if self._selector.get_item(item_id) is None:
            raise UnknownItemError(str(item_id))
        raise StockRecordNotFoundError(str(item_id))

    def recompute_from_events(
        self,
        item_id: UUID,
        strict: bool = False,
    ) -> RecomputeResult:
        """
        Replay the item's movement log and compare with the stored record.

        Never modifies the record.  Drift is logged at ERROR.

        Raises:
            IntegrityFaultError: drift found and strict is True.
            StockRecordNotFoundError, UnknownItemError.
        """
        with LogContext.bind(item_id=item_id, operation="recompute_from_events"):
            result, _ = self._replay(item_id)
            if result.has_drift:
                logger.error(
                    "ledger_drift_detected",
                    extra={
                        "incremental_quantity": result.incremental_quantity,
                        "incremental_reserved": result.incremental_reserved,
                        "replayed_quantity": result.replayed_quantity,
                        "replayed_reserved": result.replayed_reserved,
                        "event_count": result.event_count,
                    },
                )
                if strict:
                    raise IntegrityFaultError(
                        item_id=str(item_id),
                        incremental_quantity=result.incremental_quantity,
                        replayed_quantity=result.replayed_quantity,
                        incremental_reserved=result.incremental_reserved,
                        replayed_reserved=result.replayed_reserved,
                    )
            else:
                logger.debug(
                    "ledger_recompute_clean",
                    extra={"event_count": result.event_count},
                )
            return result

    def list_low_or_no_stock(
        self,
        predicate: Callable[[StockRecordInfo], bool],
    ) -> StockRecordSequence:
        """
        Records matching ``predicate``, ascending by available quantity.

        The returned sequence is lazy and restartable; each iteration pages
        through the store with fresh queries.
        """
        return StockRecordSequence(self._selector, predicate, self.list_batch_size)

    def movement_history(self, item_id: UUID) -> list[MovementInfo]:
        """Accepted movements for an item in replay order."""
        return self._selector.movement_history(item_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_duplicate(self, event: MovementEventData, payload_hash: str) -> None:
        existing = self._selector.get_event(event.event_id)
        if existing is None:
            return

        if existing.payload_hash != payload_hash:
            logger.warning(
                "movement_payload_mismatch",
                extra={
                    "expected_hash": existing.payload_hash,
                    "received_hash": payload_hash,
                },
            )
            raise EventPayloadMismatchError(
                event.event_id, existing.payload_hash, payload_hash
            )

        record = self._selector.get_record(existing.item_id)
        logger.info(
            "movement_duplicate",
            extra={"applied_version": existing.applied_version},
        )
        raise DuplicateEventError(event.event_id, record)

    def _current_record(self, item_id: UUID) -> StockRecordInfo:
        """Read the record, creating an empty one on the item's first movement."""
        record = self._selector.get_record(item_id)
        if record is not None:
            return record

        self._create_empty_record(item_id)
        record = self._selector.get_record(item_id)
        if record is None:
            raise StockRecordNotFoundError(str(item_id))
        return record

    def _create_empty_record(self, item_id: UUID) -> None:
        """
        Insert a version-0 record unless a concurrent creator already did.

        Uses the dialect's INSERT ... ON CONFLICT DO NOTHING so racing first
        movements converge on a single row without a savepoint.
        """
        values = {
            "id": uuid4(),
            "item_id": item_id,
            "current_quantity": 0,
            "reserved_quantity": 0,
            "version": 0,
        }
        dialect = self.dialect_name
        if dialect == "postgresql":
            stmt = pg_insert(StockRecord).values(**values).on_conflict_do_nothing(
                index_elements=["item_id"]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(StockRecord).values(**values).on_conflict_do_nothing(
                index_elements=["item_id"]
            )
        else:
            stmt = insert(StockRecord).values(**values)
        self.session.execute(stmt)
        logger.debug("stock_record_created")

    def _compare_and_swap(
        self,
        item_id: UUID,
        expected_version: int,
        levels: StockLevels,
        last_movement_at: datetime | None,
    ) -> bool:
        """
        Write new levels iff the record is still at expected_version.

        Returns:
            True if exactly one row was updated.
        """
        result = self.session.execute(
            update(StockRecord)
            .where(
                StockRecord.item_id == item_id,
                StockRecord.version == expected_version,
            )
            .values(
                current_quantity=levels.current_quantity,
                reserved_quantity=levels.reserved_quantity,
                last_movement_at=last_movement_at,
                version=StockRecord.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _replay(self, item_id: UUID) -> tuple[RecomputeResult, StockRecordInfo]:
        record = self.get_stock(item_id)
        levels, count = replay(
            self._selector.movement_deltas(item_id, up_to_version=record.version)
        )
        result = RecomputeResult(
            item_id=item_id,
            incremental_quantity=record.current_quantity,
            incremental_reserved=record.reserved_quantity,
            replayed_quantity=levels.current_quantity,
            replayed_reserved=levels.reserved_quantity,
            event_count=count,
        )
        return result, record
