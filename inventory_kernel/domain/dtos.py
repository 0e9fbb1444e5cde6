"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that flow between the ledger,
    the threshold resolver, the classifier and the alert feed:
    MovementEventData (input), StockRecordInfo, Thresholds, AlertEntry
    (output), and the supporting DTOs for settings, overrides, replay and
    reorder requests.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers (never from domain logic).

Invariants enforced:
    - Services and selectors return DTOs, never ORM entities.
    - available_quantity is always derived (current - reserved).

Data flow:
    MovementEventData -> StockRecordInfo -> (Thresholds) -> AlertEntry
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from inventory_kernel.models.item import ItemMaster
    from inventory_kernel.models.movement import MovementEvent
    from inventory_kernel.models.override import ThresholdOverride
    from inventory_kernel.models.reorder_request import ReorderRequest
    from inventory_kernel.models.settings import InventorySetting, SettingChangeLog
    from inventory_kernel.models.stock_record import StockRecord


def _utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _plain(value: Decimal | None) -> str | None:
    """Decimal as a fixed-point string without trailing zeros (10, 12.5)."""
    if value is None:
        return None
    return format(value.normalize(), "f")


# =============================================================================
# Movements and stock
# =============================================================================


class MovementKind(str, Enum):
    """Kind of stock movement.

    Contract: the kind fixes the permitted sign of quantity_delta
    (see movement_validator.py).
    """

    DELIVERY = "delivery"
    ISSUANCE = "issuance"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    RESERVATION = "reservation"


@dataclass(frozen=True)
class MovementEventData:
    """
    A movement submitted to the ledger.

    Contract:
        Produced by delivery recording, issuance workflows, returns and
        stock adjustments.  event_id is chosen by the producer and must be
        globally unique; resubmitting the same event is an idempotent no-op.

    Non-goals:
        - Does NOT validate signs or types; validate_movement() does.
    """

    event_id: str
    item_id: UUID
    kind: MovementKind | str
    quantity_delta: int
    occurred_at: datetime
    actor_id: UUID
    reservation_delta: int = 0
    is_correction: bool = False
    source_ref: str | None = None

    def hash_content(self, kind: MovementKind | None = None) -> dict[str, Any]:
        """
        Canonical content used for the payload hash (excludes acceptance time).

        Pass the validated ``kind`` so that spellings such as "Delivery" and
        "delivery" hash alike.
        """
        if kind is None:
            kind = self.kind if isinstance(self.kind, MovementKind) else None
        return {
            "event_id": self.event_id,
            "item_id": str(self.item_id),
            "kind": kind.value if kind is not None else self.kind,
            "quantity_delta": self.quantity_delta,
            "reservation_delta": self.reservation_delta,
            "is_correction": self.is_correction,
            "occurred_at": _utc(self.occurred_at).isoformat(),
            "source_ref": self.source_ref,
        }


@dataclass(frozen=True)
class StockRecordInfo:
    """
    Snapshot of an item's current stock.

    Guarantees:
        - available_quantity == current_quantity - reserved_quantity.
    """

    item_id: UUID
    current_quantity: int
    reserved_quantity: int
    version: int
    last_movement_at: datetime | None = None

    @property
    def available_quantity(self) -> int:
        return self.current_quantity - self.reserved_quantity

    @classmethod
    def from_model(cls, model: StockRecord) -> StockRecordInfo:
        return cls(
            item_id=model.item_id,
            current_quantity=model.current_quantity,
            reserved_quantity=model.reserved_quantity,
            version=model.version,
            last_movement_at=_utc(model.last_movement_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "current_quantity": self.current_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "version": self.version,
            "last_movement_at": (
                self.last_movement_at.isoformat() if self.last_movement_at else None
            ),
        }


@dataclass(frozen=True)
class StockLevels:
    """Current and reserved quantity after applying a movement."""

    current_quantity: int
    reserved_quantity: int

    @property
    def available_quantity(self) -> int:
        return self.current_quantity - self.reserved_quantity


@dataclass(frozen=True)
class MovementInfo:
    """Accepted movement as stored in the log."""

    event_id: str
    item_id: UUID
    kind: MovementKind
    quantity_delta: int
    reservation_delta: int
    is_correction: bool
    occurred_at: datetime
    accepted_at: datetime
    actor_id: UUID
    payload_hash: str
    applied_version: int
    source_ref: str | None = None

    @classmethod
    def from_model(cls, model: MovementEvent) -> MovementInfo:
        return cls(
            event_id=model.event_id,
            item_id=model.item_id,
            kind=MovementKind(model.kind),
            quantity_delta=model.quantity_delta,
            reservation_delta=model.reservation_delta,
            is_correction=model.is_correction,
            occurred_at=_utc(model.occurred_at),
            accepted_at=_utc(model.accepted_at),
            actor_id=model.actor_id,
            payload_hash=model.payload_hash,
            applied_version=model.applied_version,
            source_ref=model.source_ref,
        )


@dataclass(frozen=True)
class RecomputeResult:
    """
    Outcome of replaying an item's movement log.

    Guarantees:
        - has_drift is True iff the incremental and replayed figures differ.
        - repaired is True only when returned by an explicit repair.
    """

    item_id: UUID
    incremental_quantity: int
    incremental_reserved: int
    replayed_quantity: int
    replayed_reserved: int
    event_count: int
    repaired: bool = False

    @property
    def has_drift(self) -> bool:
        return (
            self.incremental_quantity != self.replayed_quantity
            or self.incremental_reserved != self.replayed_reserved
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "incremental_quantity": self.incremental_quantity,
            "incremental_reserved": self.incremental_reserved,
            "replayed_quantity": self.replayed_quantity,
            "replayed_reserved": self.replayed_reserved,
            "event_count": self.event_count,
            "has_drift": self.has_drift,
            "repaired": self.repaired,
        }


@dataclass(frozen=True)
class ItemInfo:
    """Pure domain representation of an ItemMaster row."""

    id: UUID
    item_code: str
    name: str
    unit: str
    category: str | None = None
    sub_category: str | None = None
    is_active: bool = True

    @classmethod
    def from_model(cls, model: ItemMaster) -> ItemInfo:
        return cls(
            id=model.id,
            item_code=model.item_code,
            name=model.name,
            unit=model.unit,
            category=model.category,
            sub_category=model.sub_category,
            is_active=model.is_active,
        )


# =============================================================================
# Thresholds and alerts
# =============================================================================


class ThresholdSource(str, Enum):
    """Where a set of thresholds came from."""

    OVERRIDE = "override"
    COMPUTED = "computed"
    UNCONFIGURED = "unconfigured"


@dataclass(frozen=True)
class Thresholds:
    """
    Minimum / reorder / maximum levels for one item.

    Guarantees:
        - All levels are non-negative integers.
        - An UNCONFIGURED set carries zeros for every level.
    """

    minimum: int
    reorder: int
    maximum: int
    source: ThresholdSource

    @property
    def is_configured(self) -> bool:
        return self.source != ThresholdSource.UNCONFIGURED

    @classmethod
    def unconfigured(cls) -> Thresholds:
        return cls(minimum=0, reorder=0, maximum=0, source=ThresholdSource.UNCONFIGURED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "minimum": self.minimum,
            "reorder": self.reorder,
            "maximum": self.maximum,
            "source": self.source.value,
        }


class AlertTier(str, Enum):
    """Stock-health tier, declared in feed order (most severe first)."""

    CRITICAL = "critical"
    URGENT = "urgent"
    WARNING = "warning"
    NORMAL = "normal"
    UNCONFIGURED = "unconfigured"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]


_TIER_RANK = {tier: index for index, tier in enumerate(AlertTier)}


@dataclass(frozen=True)
class AlertEntry:
    """
    Derived stock-health view of one item.  Never persisted.

    Guarantees:
        - Exactly one tier per entry.
        - Stock figures and thresholds are the ones the tier was computed from.
    """

    item_id: UUID
    tier: AlertTier
    reason: str
    current_quantity: int
    reserved_quantity: int
    available_quantity: int
    thresholds: Thresholds
    item_code: str = ""
    item_name: str = ""
    unit: str = ""
    computed_at: datetime | None = None

    def sort_key(self) -> tuple[int, int, str]:
        return (self.tier.rank, self.available_quantity, self.item_code)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "item_code": self.item_code,
            "item_name": self.item_name,
            "unit": self.unit,
            "tier": self.tier.value,
            "reason": self.reason,
            "current_quantity": self.current_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "thresholds": self.thresholds.to_dict(),
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass(frozen=True)
class AlertFilter:
    """Alert feed query.  None means no restriction."""

    tier: AlertTier | None = None
    search_term: str | None = None

    def matches(self, entry: AlertEntry) -> bool:
        if self.tier is not None and entry.tier != self.tier:
            return False
        if self.search_term:
            needle = self.search_term.strip().casefold()
            if needle and needle not in entry.item_name.casefold() and (
                needle not in entry.item_code.casefold()
            ):
                return False
        return True


@dataclass(frozen=True)
class AlertSummary:
    """Dashboard counts over the full alert feed."""

    critical: int
    urgent: int
    warning: int
    normal: int
    unconfigured: int
    total_items: int
    below_minimum: int
    needs_reorder: int
    with_override: int

    def to_dict(self) -> dict[str, int]:
        return {
            "critical": self.critical,
            "urgent": self.urgent,
            "warning": self.warning,
            "normal": self.normal,
            "unconfigured": self.unconfigured,
            "total_items": self.total_items,
            "below_minimum": self.below_minimum,
            "needs_reorder": self.needs_reorder,
            "with_override": self.with_override,
        }


# =============================================================================
# Settings and overrides
# =============================================================================


@dataclass(frozen=True)
class SettingDefinition:
    """
    Definition used to create a setting that does not exist yet.

    Contract:
        min_value <= value <= max_value (checked by SettingsService).
    """

    name: str
    value: Decimal
    setting_type: str
    min_value: Decimal
    max_value: Decimal
    description: str | None = None


@dataclass(frozen=True)
class SettingInfo:
    name: str
    value: Decimal
    setting_type: str
    min_value: Decimal
    max_value: Decimal
    is_active: bool
    version: int
    description: str | None = None
    updated_at: datetime | None = None
    updated_by_id: UUID | None = None

    @classmethod
    def from_model(cls, model: InventorySetting) -> SettingInfo:
        return cls(
            name=model.name,
            value=Decimal(model.value),
            setting_type=model.setting_type,
            min_value=Decimal(model.min_value),
            max_value=Decimal(model.max_value),
            is_active=model.is_active,
            version=model.version,
            description=model.description,
            updated_at=_utc(model.updated_at),
            updated_by_id=model.updated_by_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "value": _plain(self.value),
            "setting_type": self.setting_type,
            "min_value": _plain(self.min_value),
            "max_value": _plain(self.max_value),
            "is_active": self.is_active,
            "version": self.version,
            "description": self.description,
        }


@dataclass(frozen=True)
class SettingChange:
    """One row of the settings change log."""

    setting_name: str
    change_type: str
    old_value: Decimal | None
    new_value: Decimal | None
    actor_id: UUID
    changed_at: datetime
    setting_version: int
    reason: str | None = None

    @classmethod
    def from_model(cls, model: SettingChangeLog) -> SettingChange:
        return cls(
            setting_name=model.setting_name,
            change_type=model.change_type,
            old_value=Decimal(model.old_value) if model.old_value is not None else None,
            new_value=Decimal(model.new_value) if model.new_value is not None else None,
            actor_id=model.actor_id,
            changed_at=_utc(model.changed_at),
            setting_version=model.setting_version,
            reason=model.reason,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "setting_name": self.setting_name,
            "change_type": self.change_type,
            "old_value": _plain(self.old_value),
            "new_value": _plain(self.new_value),
            "actor_id": str(self.actor_id),
            "changed_at": self.changed_at.isoformat(),
            "setting_version": self.setting_version,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class OverrideInfo:
    id: UUID
    item_id: UUID
    minimum_level: int
    reorder_level: int
    maximum_level: int
    is_active: bool
    created_by_id: UUID
    version: int
    reason: str | None = None
    created_at: datetime | None = None
    deactivated_at: datetime | None = None
    deactivated_by_id: UUID | None = None

    def to_thresholds(self) -> Thresholds:
        return Thresholds(
            minimum=self.minimum_level,
            reorder=self.reorder_level,
            maximum=self.maximum_level,
            source=ThresholdSource.OVERRIDE,
        )

    @classmethod
    def from_model(cls, model: ThresholdOverride) -> OverrideInfo:
        return cls(
            id=model.id,
            item_id=model.item_id,
            minimum_level=model.minimum_level,
            reorder_level=model.reorder_level,
            maximum_level=model.maximum_level,
            is_active=model.is_active,
            created_by_id=model.created_by_id,
            version=model.version,
            reason=model.reason,
            created_at=_utc(model.created_at),
            deactivated_at=_utc(model.deactivated_at),
            deactivated_by_id=model.deactivated_by_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "item_id": str(self.item_id),
            "minimum_level": self.minimum_level,
            "reorder_level": self.reorder_level,
            "maximum_level": self.maximum_level,
            "is_active": self.is_active,
            "version": self.version,
            "reason": self.reason,
            "created_by_id": str(self.created_by_id),
        }


# =============================================================================
# Reorder requests
# =============================================================================


@dataclass(frozen=True)
class ReorderRequestInfo:
    id: UUID
    item_id: UUID
    status: str
    priority: str
    alert_tier: str
    current_stock: int
    available_stock: int
    minimum_level: int
    reorder_level: int
    maximum_level: int
    suggested_quantity: int
    requested_by_id: UUID
    version: int
    actual_quantity: int | None = None
    remarks: str | None = None
    created_at: datetime | None = None
    status_changed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: ReorderRequest) -> ReorderRequestInfo:
        return cls(
            id=model.id,
            item_id=model.item_id,
            status=model.status,
            priority=model.priority,
            alert_tier=model.alert_tier,
            current_stock=model.current_stock,
            available_stock=model.available_stock,
            minimum_level=model.minimum_level,
            reorder_level=model.reorder_level,
            maximum_level=model.maximum_level,
            suggested_quantity=model.suggested_quantity,
            requested_by_id=model.created_by_id,
            version=model.version,
            actual_quantity=model.actual_quantity,
            remarks=model.remarks,
            created_at=_utc(model.created_at),
            status_changed_at=_utc(model.status_changed_at),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "item_id": str(self.item_id),
            "status": self.status,
            "priority": self.priority,
            "alert_tier": self.alert_tier,
            "current_stock": self.current_stock,
            "available_stock": self.available_stock,
            "minimum_level": self.minimum_level,
            "reorder_level": self.reorder_level,
            "maximum_level": self.maximum_level,
            "suggested_quantity": self.suggested_quantity,
            "actual_quantity": self.actual_quantity,
            "remarks": self.remarks,
            "version": self.version,
        }
