"""
inventory_services.stock_gateway -- boundary operations over the kernel.

Responsibility:
    Exposes the ledger, settings, overrides, alert feed and reorder requests
    as request-shaped operations.  Each call opens its own transaction,
    commits on success, rolls back on failure, and returns a
    ``GatewayResponse`` instead of raising.

Architecture position:
    Services -- the outermost layer.  The only place in the repository that
    commits.  Kernel services are constructed per transaction, the way
    PostingOrchestrator composes them, and share the gateway's Clock.

Invariants enforced:
    - Transaction boundaries: one transaction per attempt; nothing a failed
      attempt flushed survives it.
    - Retry policy: ConcurrencyConflictError, StoreUnavailableError and
      constraint races (IntegrityError) are retried up to
      ``transaction_retries`` times, sleeping
      ``retry_backoff_seconds * 2**attempt`` between attempts.  Anything
      else is surfaced on the first failure.
    - Idempotent replay: DuplicateEventError is a 200 with ``duplicate``
      set, carrying the unchanged record.
    - The alert cache is invalidated after every committed write that can
      change an alert.

Failure modes:
    - Typed kernel errors map to 404 / 409 / 422 / 503 / 500 responses with
      ``{code, message, retryable, details}``.
    - Driver timeouts (OperationalError, pool TimeoutError) become
      StoreUnavailableError, never an empty or zero result.
    - Unexpected exceptions are rolled back and re-raised.

Audit relevance:
    Every call runs under a fresh correlation id.  Retries are logged as
    ``gateway_retry``; exhausted retries as ``gateway_retries_exhausted``.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from inventory_kernel.domain.classifier import classify
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AlertFilter,
    AlertTier,
    ItemInfo,
    MovementEventData,
)
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    DuplicateEventError,
    DuplicateReorderRequestError,
    EventPayloadMismatchError,
    InsufficientStockError,
    IntegrityFaultError,
    InvalidMovementError,
    InvalidOverrideError,
    InvalidQuantityError,
    InvalidReorderTransitionError,
    InvalidSettingDefinitionError,
    InvalidSettingValueError,
    InventoryKernelError,
    OverrideNotFoundError,
    ReorderRequestNotFoundError,
    SettingNotFoundError,
    SettingOutOfBoundsError,
    StockRecordNotFoundError,
    StoreUnavailableError,
    UnknownItemError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.item import ItemMaster
from inventory_kernel.models.reorder_request import ReorderStatus
from inventory_kernel.services.alert_feed import AlertCache, AlertFeed
from inventory_kernel.services.ledger_service import LedgerService
from inventory_kernel.services.override_service import OverrideService
from inventory_kernel.services.reorder_service import ReorderRequestService
from inventory_kernel.services.settings_service import SettingsService
from inventory_kernel.services.threshold_resolver import ThresholdResolver

logger = get_logger("gateway")

T = TypeVar("T")

HTTP_OK = 200
HTTP_CREATED = 201

_STATUS_BY_ERROR: tuple[tuple[type[InventoryKernelError], int], ...] = (
    (UnknownItemError, 404),
    (StockRecordNotFoundError, 404),
    (SettingNotFoundError, 404),
    (OverrideNotFoundError, 404),
    (ReorderRequestNotFoundError, 404),
    (EventPayloadMismatchError, 409),
    (InsufficientStockError, 409),
    (ConcurrencyConflictError, 409),
    (InvalidReorderTransitionError, 409),
    (DuplicateReorderRequestError, 409),
    (InvalidMovementError, 422),
    (InvalidQuantityError, 422),
    (SettingOutOfBoundsError, 422),
    (InvalidSettingValueError, 422),
    (InvalidSettingDefinitionError, 422),
    (InvalidOverrideError, 422),
    (StoreUnavailableError, 503),
    (IntegrityFaultError, 500),
)


class GatewayRequestError(ValueError):
    """A request argument could not be parsed (422)."""

    code = "INVALID_REQUEST"
    retryable = False


@dataclass(frozen=True)
class GatewayResponse:
    """HTTP-shaped result of a gateway call."""

    status: int
    data: Any = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status < 400


@dataclass(frozen=True)
class GatewayParams:
    """Retry and paging knobs, usually taken from LedgerConfig."""

    max_cas_retries: int = 5
    transaction_retries: int = 3
    retry_backoff_seconds: float = 0.05
    list_batch_size: int = 200


def status_for(error: Exception) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    if isinstance(error, GatewayRequestError):
        return 422
    return 500


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def error_body(error: Exception) -> dict[str, Any]:
    """``{code, message, retryable, details}`` for a typed error."""
    details = {
        key: _jsonable(value)
        for key, value in vars(error).items()
        if not key.startswith("_") and key != "record"
    }
    return {
        "code": getattr(error, "code", "INTERNAL_ERROR"),
        "message": str(error),
        "retryable": bool(getattr(error, "retryable", False)),
        "details": details,
    }


def _failure(error: Exception) -> GatewayResponse:
    return GatewayResponse(status=status_for(error), error=error_body(error))


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def parse_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise GatewayRequestError(f"{field} must be a UUID, got {value!r}") from None


def parse_timestamp(value: Any, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    raise GatewayRequestError(f"{field} must be an ISO-8601 timestamp, got {value!r}")


def parse_movement(payload: Mapping[str, Any]) -> MovementEventData:
    """
    Build a MovementEventData from a request body.

    Quantities are passed through untouched so the kernel validator rejects
    floats and strings with InvalidQuantityError.
    """
    missing = [
        key
        for key in ("event_id", "item_id", "kind", "quantity_delta", "occurred_at", "actor_id")
        if key not in payload
    ]
    if missing:
        raise InvalidMovementError(
            str(payload.get("event_id")), f"missing field(s): {', '.join(missing)}"
        )

    event_id = payload["event_id"]
    try:
        item_id = parse_uuid(payload["item_id"], "item_id")
        actor_id = parse_uuid(payload["actor_id"], "actor_id")
        occurred_at = parse_timestamp(payload["occurred_at"], "occurred_at")
    except GatewayRequestError as exc:
        raise InvalidMovementError(str(event_id), str(exc)) from None

    return MovementEventData(
        event_id=event_id,
        item_id=item_id,
        kind=payload["kind"],
        quantity_delta=payload["quantity_delta"],
        reservation_delta=payload.get("reservation_delta", 0),
        is_correction=bool(payload.get("is_correction", False)),
        occurred_at=occurred_at,
        actor_id=actor_id,
        source_ref=payload.get("source_ref"),
    )


def _parse_tier(tier: AlertTier | str | None) -> AlertTier | None:
    if tier is None or isinstance(tier, AlertTier):
        return tier
    try:
        return AlertTier(str(tier).strip().lower())
    except ValueError:
        raise GatewayRequestError(f"unknown alert tier {tier!r}") from None


def _parse_status(status: ReorderStatus | str | None) -> ReorderStatus | None:
    if status is None or isinstance(status, ReorderStatus):
        return status
    try:
        return ReorderStatus(str(status).strip().lower())
    except ValueError:
        raise GatewayRequestError(f"unknown reorder status {status!r}") from None


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class StockLedgerGateway:
    """
    Request-level facade over the kernel services.

    Contract:
        Receives a session factory (sessionmaker), an optional Clock, retry
        parameters and a long-lived AlertCache.  Every public method returns
        a GatewayResponse and never leaves a transaction open.

    Guarantees:
        - Exactly one commit per successful call.
        - Retryable failures are retried with exponential backoff; the
          typed error is returned once retries run out.

    Non-goals:
        - Does NOT authenticate callers; actor ids are trusted input.
        - Does NOT render or export reports.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        params: GatewayParams | None = None,
        cache: AlertCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._params = params or GatewayParams()
        self._cache = cache
        self._sleep = sleep

    @property
    def cache(self) -> AlertCache | None:
        return self._cache

    # ------------------------------------------------------------------
    # Movements and stock
    # ------------------------------------------------------------------

    def post_movement(self, payload: Mapping[str, Any]) -> GatewayResponse:
        """Apply one movement.  201 when applied, 200 on idempotent replay."""
        try:
            event = parse_movement(payload)
        except InventoryKernelError as exc:
            logger.warning("movement_request_rejected", extra={"error_code": exc.code})
            return _failure(exc)

        def work(session: Session) -> tuple[int, dict[str, Any]]:
            try:
                record = self._ledger(session).apply_movement(event)
            except DuplicateEventError as exc:
                data = exc.record.to_dict() if exc.record is not None else {}
                data["duplicate"] = True
                data["event_id"] = event.event_id
                return HTTP_OK, data
            data = record.to_dict()
            data["duplicate"] = False
            data["event_id"] = event.event_id
            return HTTP_CREATED, data

        response = self._execute("post_movement", work, with_status=True)
        if response.status == HTTP_CREATED:
            self._invalidate_alerts()
        return response

    def get_stock(self, item_id: UUID | str) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            return self._ledger(session).get_stock(parse_uuid(item_id, "item_id")).to_dict()

        return self._execute("get_stock", work)

    def movement_history(self, item_id: UUID | str) -> GatewayResponse:
        def work(session: Session) -> list[dict[str, Any]]:
            ledger = self._ledger(session)
            events = ledger.movement_history(parse_uuid(item_id, "item_id"))
            return [
                {
                    "event_id": info.event_id,
                    "kind": info.kind.value,
                    "quantity_delta": info.quantity_delta,
                    "reservation_delta": info.reservation_delta,
                    "is_correction": info.is_correction,
                    "occurred_at": info.occurred_at.isoformat(),
                    "accepted_at": info.accepted_at.isoformat(),
                    "applied_version": info.applied_version,
                    "source_ref": info.source_ref,
                }
                for info in events
            ]

        return self._execute("movement_history", work)

    def recompute(self, item_id: UUID | str) -> GatewayResponse:
        """Incremental vs. replayed values for an item.  Never modifies stock."""

        def work(session: Session) -> dict[str, Any]:
            result = self._ledger(session).recompute_from_events(
                parse_uuid(item_id, "item_id")
            )
            return result.to_dict()

        return self._execute("recompute", work)

    def repair(self, item_id: UUID | str, actor_id: UUID | str, reason: str) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            result = self._ledger(session).repair_from_events(
                parse_uuid(item_id, "item_id"), parse_uuid(actor_id, "actor_id"), reason
            )
            return result.to_dict()

        response = self._execute("repair", work)
        if response.ok and response.data.get("repaired"):
            self._invalidate_alerts()
        return response

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def list_alerts(
        self,
        tier: AlertTier | str | None = None,
        search: str | None = None,
    ) -> GatewayResponse:
        try:
            alert_filter = AlertFilter(tier=_parse_tier(tier), search_term=search)
        except GatewayRequestError as exc:
            return _failure(exc)

        def work(session: Session) -> list[dict[str, Any]]:
            return [entry.to_dict() for entry in self._feed(session).list_alerts(alert_filter)]

        return self._execute("list_alerts", work)

    def alert_summary(self) -> GatewayResponse:
        def work(session: Session) -> dict[str, int]:
            return self._feed(session).summary().to_dict()

        return self._execute("alert_summary", work)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, name: str) -> GatewayResponse:
        return self._execute(
            "get_setting",
            lambda session: SettingsService(session, self._clock).get_setting(name).to_dict(),
        )

    def list_settings(self, active_only: bool = False) -> GatewayResponse:
        def work(session: Session) -> list[dict[str, Any]]:
            settings = SettingsService(session, self._clock).list_settings(active_only)
            return [setting.to_dict() for setting in settings]

        return self._execute("list_settings", work)

    def put_setting(
        self,
        name: str,
        value: Any,
        actor_id: UUID | str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            return (
                SettingsService(session, self._clock)
                .update_setting(
                    name,
                    value,
                    parse_uuid(actor_id, "actor_id"),
                    reason,
                    expected_version,
                )
                .to_dict()
            )

        # A stale expected_version cannot succeed on retry.
        response = self._execute("put_setting", work, retry=expected_version is None)
        if response.ok:
            self._invalidate_alerts()
        return response

    def settings_log(self, name: str | None = None, limit: int = 50) -> GatewayResponse:
        def work(session: Session) -> list[dict[str, Any]]:
            changes = SettingsService(session, self._clock).get_change_log(name, limit)
            return [change.to_dict() for change in changes]

        return self._execute("settings_log", work)

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def get_override(self, item_id: UUID | str) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            parsed = parse_uuid(item_id, "item_id")
            override = OverrideService(session, self._clock).get_active_override(parsed)
            if override is None:
                raise OverrideNotFoundError(str(parsed))
            return override.to_dict()

        return self._execute("get_override", work)

    def post_override(
        self,
        item_id: UUID | str,
        minimum: int,
        reorder: int,
        maximum: int,
        actor_id: UUID | str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> GatewayResponse:
        def work(session: Session) -> tuple[int, dict[str, Any]]:
            override = OverrideService(session, self._clock).set_override(
                parse_uuid(item_id, "item_id"),
                minimum,
                reorder,
                maximum,
                reason,
                parse_uuid(actor_id, "actor_id"),
                expected_version,
            )
            return HTTP_CREATED, override.to_dict()

        response = self._execute(
            "post_override", work, with_status=True, retry=expected_version is None
        )
        if response.ok:
            self._invalidate_alerts()
        return response

    def delete_override(
        self,
        item_id: UUID | str,
        actor_id: UUID | str,
        expected_version: int | None = None,
    ) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            return (
                OverrideService(session, self._clock)
                .deactivate_override(
                    parse_uuid(item_id, "item_id"),
                    parse_uuid(actor_id, "actor_id"),
                    expected_version,
                )
                .to_dict()
            )

        response = self._execute("delete_override", work, retry=expected_version is None)
        if response.ok:
            self._invalidate_alerts()
        return response

    # ------------------------------------------------------------------
    # Reorder requests
    # ------------------------------------------------------------------

    def create_reorder_request(
        self,
        item_id: UUID | str,
        actor_id: UUID | str,
        remarks: str | None = None,
    ) -> GatewayResponse:
        """Raise a reorder request from the item's current alert entry."""

        def work(session: Session) -> tuple[int, dict[str, Any]]:
            parsed = parse_uuid(item_id, "item_id")
            stock = self._ledger(session).get_stock(parsed)
            thresholds = ThresholdResolver(
                session,
                SettingsService(session, self._clock),
                OverrideService(session, self._clock),
            ).resolve(parsed, stock.current_quantity)
            item = session.get(ItemMaster, parsed)
            alert = classify(
                stock,
                thresholds,
                ItemInfo.from_model(item) if item is not None else None,
                self._clock.now(),
            )
            request = ReorderRequestService(session, self._clock).create_from_alert(
                alert, parse_uuid(actor_id, "actor_id"), remarks
            )
            return HTTP_CREATED, request.to_dict()

        return self._execute("create_reorder_request", work, with_status=True)

    def list_reorder_requests(
        self,
        status: str | None = None,
        item_id: UUID | str | None = None,
    ) -> GatewayResponse:
        def work(session: Session) -> list[dict[str, Any]]:
            requests = ReorderRequestService(session, self._clock).list_requests(
                status=_parse_status(status),
                item_id=parse_uuid(item_id, "item_id") if item_id is not None else None,
            )
            return [request.to_dict() for request in requests]

        return self._execute("list_reorder_requests", work)

    def transition_reorder_request(
        self,
        request_id: UUID | str,
        status: str,
        actor_id: UUID | str,
        actual_quantity: int | None = None,
        remarks: str | None = None,
    ) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            return (
                ReorderRequestService(session, self._clock)
                .transition(
                    parse_uuid(request_id, "request_id"),
                    status,
                    parse_uuid(actor_id, "actor_id"),
                    actual_quantity=actual_quantity,
                    remarks=remarks,
                )
                .to_dict()
            )

        return self._execute("transition_reorder_request", work)

    def delete_reorder_request(
        self, request_id: UUID | str, actor_id: UUID | str
    ) -> GatewayResponse:
        def work(session: Session) -> dict[str, Any]:
            parsed = parse_uuid(request_id, "request_id")
            ReorderRequestService(session, self._clock).delete_request(
                parsed, parse_uuid(actor_id, "actor_id")
            )
            return {"id": str(parsed), "deleted": True}

        return self._execute("delete_reorder_request", work)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ledger(self, session: Session) -> LedgerService:
        return LedgerService(
            session,
            self._clock,
            max_cas_retries=self._params.max_cas_retries,
            list_batch_size=self._params.list_batch_size,
        )

    def _feed(self, session: Session) -> AlertFeed:
        return AlertFeed(
            session,
            self._clock,
            cache=self._cache,
            batch_size=self._params.list_batch_size,
        )

    def _invalidate_alerts(self) -> None:
        if self._cache is not None:
            self._cache.invalidate()

    def _execute(
        self,
        operation: str,
        work: Callable[[Session], Any],
        with_status: bool = False,
        retry: bool = True,
    ) -> GatewayResponse:
        """
        Run ``work`` in its own transaction, retrying retryable failures.

        ``work`` returns the response data, or ``(status, data)`` when
        ``with_status`` is set.
        """
        attempts = 1 + (self._params.transaction_retries if retry else 0)
        with LogContext.bind(correlation_id=str(uuid4()), operation=operation):
            for attempt in range(attempts):
                try:
                    outcome = self._attempt(operation, work)
                except (ConcurrencyConflictError, StoreUnavailableError) as exc:
                    error: InventoryKernelError = exc
                except sa_exc.IntegrityError as exc:
                    error = ConcurrencyConflictError(operation, str(exc.orig), attempt + 1)
                except IntegrityFaultError as exc:
                    logger.error(
                        "gateway_integrity_fault",
                        extra={"item_id": exc.item_id, "error_code": exc.code},
                    )
                    return _failure(exc)
                except (InventoryKernelError, GatewayRequestError) as exc:
                    return _failure(exc)
                else:
                    if with_status:
                        status, data = outcome
                        return GatewayResponse(status=status, data=data)
                    return GatewayResponse(status=HTTP_OK, data=outcome)

                if attempt + 1 >= attempts:
                    logger.warning(
                        "gateway_retries_exhausted",
                        extra={"attempts": attempts, "error_code": error.code},
                    )
                    return _failure(error)

                delay = self._params.retry_backoff_seconds * (2 ** attempt)
                logger.info(
                    "gateway_retry",
                    extra={
                        "attempt": attempt + 1,
                        "error_code": error.code,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)

    def _attempt(self, operation: str, work: Callable[[Session], T]) -> T:
        """One transaction: commit on success, roll back on any failure."""
        session = self._session_factory()
        try:
            try:
                outcome = work(session)
                session.commit()
            except (sa_exc.OperationalError, sa_exc.TimeoutError) as exc:
                session.rollback()
                detail = str(getattr(exc, "orig", None) or exc)
                logger.warning(
                    "store_unavailable",
                    extra={"store_operation": operation, "detail": detail},
                )
                raise StoreUnavailableError(operation, detail) from exc
            except BaseException:
                session.rollback()
                raise
            return outcome
        finally:
            session.close()
