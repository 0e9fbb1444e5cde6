"""
OverrideService -- per-item threshold overrides.

Responsibility:
    Stores manually chosen minimum / reorder / maximum levels for individual
    items.  An active override takes precedence over computed thresholds.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - At most one active override per item.  set_override() deactivates the
      prior active override and inserts the new one in the caller's
      transaction; a partial unique index backs this at the store.
    - Each override of an item carries the next version number.  Retiring
      the active override is a compare-and-swap on (id, version, is_active),
      and callers may pass expected_version (0 meaning "no active override")
      to replace or deactivate only what they last read.
    - Levels are non-negative integers; a non-zero maximum is not below the
      minimum or the reorder level.
    - Overrides are soft-deactivated, never deleted.

Failure modes:
    - UnknownItemError, InvalidOverrideError, OverrideNotFoundError.
    - ConcurrencyConflictError for a stale expected_version or a lost swap.
    - IntegrityError from the unique indexes if two callers activate
      overrides for the same item concurrently; the gateway retries.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update

from inventory_kernel.domain.dtos import OverrideInfo
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidOverrideError,
    OverrideNotFoundError,
    UnknownItemError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.item import ItemMaster
from inventory_kernel.models.override import ThresholdOverride
from inventory_kernel.services.base import BaseService

logger = get_logger("services.override")


def _validate_levels(item_id: UUID, minimum: object, reorder: object, maximum: object) -> None:
    for label, level in (("minimum", minimum), ("reorder", reorder), ("maximum", maximum)):
        if not isinstance(level, int) or isinstance(level, bool):
            raise InvalidOverrideError(str(item_id), f"{label} level must be an integer")
        if level < 0:
            raise InvalidOverrideError(str(item_id), f"{label} level must be non-negative")
    if maximum > 0 and (maximum < minimum or maximum < reorder):
        raise InvalidOverrideError(
            str(item_id),
            f"maximum level {maximum} is below minimum {minimum} or reorder {reorder}",
        )


class OverrideService(BaseService[ThresholdOverride]):
    """
    Service for per-item threshold overrides.

    Guarantees:
        - get_active_override() returns at most one override per item.
        - override_history() returns every override ever set for the item,
          newest first.
    """

    def get_active_override(self, item_id: UUID) -> OverrideInfo | None:
        row = self._active_row(item_id)
        return OverrideInfo.from_model(row) if row is not None else None

    def list_active_overrides(self) -> list[OverrideInfo]:
        rows = self.session.execute(
            select(ThresholdOverride)
            .where(ThresholdOverride.is_active.is_(True))
            .order_by(ThresholdOverride.created_at.desc())
        ).scalars()
        return [OverrideInfo.from_model(row) for row in rows]

    def active_item_ids(self) -> set[UUID]:
        return set(
            self.session.execute(
                select(ThresholdOverride.item_id).where(
                    ThresholdOverride.is_active.is_(True)
                )
            ).scalars()
        )

    def override_history(self, item_id: UUID) -> list[OverrideInfo]:
        rows = self.session.execute(
            select(ThresholdOverride)
            .where(ThresholdOverride.item_id == item_id)
            .order_by(ThresholdOverride.created_at.desc(), ThresholdOverride.is_active.desc())
        ).scalars()
        return [OverrideInfo.from_model(row) for row in rows]

    def set_override(
        self,
        item_id: UUID,
        minimum: int,
        reorder: int,
        maximum: int,
        reason: str | None,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> OverrideInfo:
        """
        Activate an override, replacing any active one for the item.

        Raises:
            UnknownItemError, InvalidOverrideError, ConcurrencyConflictError.
        """
        with LogContext.bind(item_id=item_id, actor_id=actor_id, operation="set_override"):
            _validate_levels(item_id, minimum, reorder, maximum)
            if self.session.get(ItemMaster, item_id) is None:
                raise UnknownItemError(str(item_id))

            now = self._clock.now()
            prior = self._active_row(item_id)
            self._check_expected(item_id, prior, expected_version)
            if prior is not None:
                # Core UPDATE: reaches the store before the insert, so the
                # partial unique index sees one active row.
                self._retire(prior, actor_id, now)

            override = ThresholdOverride(
                item_id=item_id,
                minimum_level=minimum,
                reorder_level=reorder,
                maximum_level=maximum,
                version=self._next_version(item_id),
                reason=reason,
                is_active=True,
                created_by_id=actor_id,
                created_at=now,
            )
            self.session.add(override)
            self.session.flush()

            logger.info(
                "override_activated",
                extra={
                    "minimum_level": minimum,
                    "reorder_level": reorder,
                    "maximum_level": maximum,
                    "version": override.version,
                    "replaced_override_id": str(prior.id) if prior is not None else None,
                },
            )
            return OverrideInfo.from_model(override)

    def deactivate_override(
        self,
        item_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> OverrideInfo:
        """
        Soft-deactivate the item's active override.

        Raises:
            OverrideNotFoundError: the item has no active override.
            ConcurrencyConflictError: stale expected_version or lost swap.
        """
        row = self._active_row(item_id)
        if row is None:
            raise OverrideNotFoundError(str(item_id))
        self._check_expected(item_id, row, expected_version)

        self._retire(row, actor_id, self._clock.now())

        logger.info(
            "override_deactivated",
            extra={"item_id": str(item_id), "override_id": str(row.id)},
        )
        return OverrideInfo.from_model(row)

    def _check_expected(
        self,
        item_id: UUID,
        active: ThresholdOverride | None,
        expected_version: int | None,
    ) -> None:
        actual = active.version if active is not None else 0
        if expected_version is not None and expected_version != actual:
            logger.info(
                "override_version_stale",
                extra={"expected_version": expected_version, "actual_version": actual},
            )
            raise ConcurrencyConflictError("ThresholdOverride", str(item_id), 1)

    def _retire(self, row: ThresholdOverride, actor_id: UUID, now: datetime) -> None:
        """Compare-and-swap the active row to inactive."""
        result = self.session.execute(
            update(ThresholdOverride)
            .where(
                ThresholdOverride.id == row.id,
                ThresholdOverride.version == row.version,
                ThresholdOverride.is_active.is_(True),
            )
            .values(
                is_active=False,
                deactivated_at=now,
                deactivated_by_id=actor_id,
                updated_by_id=actor_id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "override_cas_conflict",
                extra={"override_id": str(row.id), "expected_version": row.version},
            )
            raise ConcurrencyConflictError("ThresholdOverride", str(row.item_id), 1)
        self.session.refresh(row)

    def _next_version(self, item_id: UUID) -> int:
        latest = self.session.execute(
            select(func.max(ThresholdOverride.version)).where(
                ThresholdOverride.item_id == item_id
            )
        ).scalar_one()
        return (latest or 0) + 1

    def _active_row(self, item_id: UUID) -> ThresholdOverride | None:
        return self.session.execute(
            select(ThresholdOverride)
            .where(
                ThresholdOverride.item_id == item_id,
                ThresholdOverride.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
