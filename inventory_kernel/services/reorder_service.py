"""
ReorderRequestService -- replenishment requests raised from stock alerts.

Responsibility:
    Records a request to replenish an item, snapshotting its stock and
    thresholds at the time of the alert, and walks the request through its
    approval lifecycle.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - At most one open (pending, approved, ordered) request per item.
    - Transitions: pending -> approved | cancelled; approved -> ordered |
      cancelled; ordered -> received.  Every other move is rejected.
    - suggested_quantity = max(target - available, 1), where target is the
      maximum level, or the reorder level when no maximum is set.
    - Deletion is a soft delete.

Failure modes:
    - UnknownItemError, DuplicateReorderRequestError,
      ReorderRequestNotFoundError, InvalidReorderTransitionError,
      InvalidQuantityError (received quantity not a non-negative int).
"""

from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import AlertEntry, AlertTier, ReorderRequestInfo
from inventory_kernel.exceptions import (
    DuplicateReorderRequestError,
    InvalidQuantityError,
    InvalidReorderTransitionError,
    ReorderRequestNotFoundError,
    UnknownItemError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.item import ItemMaster
from inventory_kernel.models.reorder_request import (
    OPEN_STATUSES,
    ReorderPriority,
    ReorderRequest,
    ReorderStatus,
)
from inventory_kernel.services.base import BaseService

logger = get_logger("services.reorder")

VALID_TRANSITIONS: dict[ReorderStatus, frozenset[ReorderStatus]] = {
    ReorderStatus.PENDING: frozenset({ReorderStatus.APPROVED, ReorderStatus.CANCELLED}),
    ReorderStatus.APPROVED: frozenset({ReorderStatus.ORDERED, ReorderStatus.CANCELLED}),
    ReorderStatus.ORDERED: frozenset({ReorderStatus.RECEIVED}),
    ReorderStatus.RECEIVED: frozenset(),
    ReorderStatus.CANCELLED: frozenset(),
}

_PRIORITY_BY_TIER = {
    AlertTier.CRITICAL: ReorderPriority.CRITICAL,
    AlertTier.URGENT: ReorderPriority.HIGH,
    AlertTier.WARNING: ReorderPriority.MEDIUM,
}


def suggested_quantity(alert: AlertEntry) -> int:
    target = alert.thresholds.maximum or alert.thresholds.reorder
    return max(target - alert.available_quantity, 1)


def priority_for(tier: AlertTier) -> ReorderPriority:
    return _PRIORITY_BY_TIER.get(tier, ReorderPriority.LOW)


class ReorderRequestService(BaseService[ReorderRequest]):
    """Service for reorder requests.  Returns ReorderRequestInfo DTOs."""

    def create_from_alert(
        self,
        alert: AlertEntry,
        actor_id: UUID,
        remarks: str | None = None,
    ) -> ReorderRequestInfo:
        """
        Raise a reorder request for the alert's item.

        Raises:
            UnknownItemError, DuplicateReorderRequestError.
        """
        with LogContext.bind(item_id=alert.item_id, actor_id=actor_id, operation="create_reorder_request"):
            if self.session.get(ItemMaster, alert.item_id) is None:
                raise UnknownItemError(str(alert.item_id))

            existing = self.session.execute(
                select(ReorderRequest.id).where(
                    ReorderRequest.item_id == alert.item_id,
                    ReorderRequest.status.in_([status.value for status in OPEN_STATUSES]),
                    ReorderRequest.is_deleted.is_(False),
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise DuplicateReorderRequestError(str(alert.item_id), str(existing))

            request = ReorderRequest(
                item_id=alert.item_id,
                current_stock=alert.current_quantity,
                available_stock=alert.available_quantity,
                minimum_level=alert.thresholds.minimum,
                reorder_level=alert.thresholds.reorder,
                maximum_level=alert.thresholds.maximum,
                suggested_quantity=suggested_quantity(alert),
                priority=priority_for(alert.tier).value,
                status=ReorderStatus.PENDING.value,
                alert_tier=alert.tier.value,
                remarks=remarks,
                status_changed_at=self._clock.now(),
                created_at=self._clock.now(),
                created_by_id=actor_id,
                version=1,
            )
            self.session.add(request)
            self.session.flush()

            logger.info(
                "reorder_request_created",
                extra={
                    "request_id": str(request.id),
                    "suggested_quantity": request.suggested_quantity,
                    "priority": request.priority,
                },
            )
            return ReorderRequestInfo.from_model(request)

    def get_request(self, request_id: UUID) -> ReorderRequestInfo:
        return ReorderRequestInfo.from_model(self._load(request_id))

    def list_requests(
        self,
        status: ReorderStatus | str | None = None,
        item_id: UUID | None = None,
    ) -> list[ReorderRequestInfo]:
        """Non-deleted requests, newest first."""
        stmt = (
            select(ReorderRequest)
            .where(ReorderRequest.is_deleted.is_(False))
            .order_by(ReorderRequest.created_at.desc(), ReorderRequest.id)
        )
        if status is not None:
            stmt = stmt.where(ReorderRequest.status == ReorderStatus(status).value)
        if item_id is not None:
            stmt = stmt.where(ReorderRequest.item_id == item_id)
        rows = self.session.execute(stmt).scalars()
        return [ReorderRequestInfo.from_model(row) for row in rows]

    def approve(self, request_id: UUID, actor_id: UUID, remarks: str | None = None) -> ReorderRequestInfo:
        return self.transition(request_id, ReorderStatus.APPROVED, actor_id, remarks=remarks)

    def mark_ordered(self, request_id: UUID, actor_id: UUID, remarks: str | None = None) -> ReorderRequestInfo:
        return self.transition(request_id, ReorderStatus.ORDERED, actor_id, remarks=remarks)

    def mark_received(
        self,
        request_id: UUID,
        actual_quantity: int,
        actor_id: UUID,
        remarks: str | None = None,
    ) -> ReorderRequestInfo:
        return self.transition(
            request_id,
            ReorderStatus.RECEIVED,
            actor_id,
            actual_quantity=actual_quantity,
            remarks=remarks,
        )

    def cancel(self, request_id: UUID, actor_id: UUID, remarks: str | None = None) -> ReorderRequestInfo:
        return self.transition(request_id, ReorderStatus.CANCELLED, actor_id, remarks=remarks)

    def transition(
        self,
        request_id: UUID,
        to_status: ReorderStatus | str,
        actor_id: UUID,
        actual_quantity: int | None = None,
        remarks: str | None = None,
    ) -> ReorderRequestInfo:
        """
        Move a request to ``to_status``.

        Raises:
            ReorderRequestNotFoundError, InvalidReorderTransitionError,
            InvalidQuantityError.
        """
        request = self._load(request_id)
        current = ReorderStatus(request.status)
        try:
            target = ReorderStatus(to_status)
        except ValueError:
            raise InvalidReorderTransitionError(
                str(request_id), current.value, str(to_status)
            ) from None

        if target not in VALID_TRANSITIONS[current]:
            logger.warning(
                "reorder_transition_rejected",
                extra={
                    "request_id": str(request_id),
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
            raise InvalidReorderTransitionError(str(request_id), current.value, target.value)

        if target == ReorderStatus.RECEIVED:
            if (
                not isinstance(actual_quantity, int)
                or isinstance(actual_quantity, bool)
                or actual_quantity < 0
            ):
                raise InvalidQuantityError(
                    str(request_id), actual_quantity, "received quantity must be a non-negative integer"
                )
            request.actual_quantity = actual_quantity

        request.status = target.value
        request.status_changed_at = self._clock.now()
        request.updated_by_id = actor_id
        request.version += 1
        if remarks is not None:
            request.remarks = remarks
        self.session.flush()

        logger.info(
            "reorder_request_transitioned",
            extra={
                "request_id": str(request_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return ReorderRequestInfo.from_model(request)

    def delete_request(self, request_id: UUID, actor_id: UUID) -> None:
        """Soft delete.  Raises ReorderRequestNotFoundError if already gone."""
        request = self._load(request_id)
        request.is_deleted = True
        request.updated_by_id = actor_id
        request.version += 1
        self.session.flush()
        logger.info("reorder_request_deleted", extra={"request_id": str(request_id)})

    def _load(self, request_id: UUID) -> ReorderRequest:
        request = self.session.execute(
            select(ReorderRequest)
            .where(ReorderRequest.id == request_id, ReorderRequest.is_deleted.is_(False))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise ReorderRequestNotFoundError(str(request_id))
        return request
