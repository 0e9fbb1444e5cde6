"""
AlertFeed -- stock-health listing for dashboards and low-stock dialogs.

Responsibility:
    Combines every stock record with its resolved thresholds and classifies
    it, producing the sorted alert listing and the dashboard summary.

Architecture position:
    Kernel > Services.  Reads through StockSelector, ThresholdResolver and
    OverrideService; classification is the pure domain classifier.

Invariants enforced:
    - Sort order: tier (critical, urgent, warning, normal, unconfigured),
      then ascending available quantity, then item code.
    - One item whose resolution raises an InventoryKernelError is omitted
      and logged as alert_item_skipped; the listing still succeeds.
    - Cached listings are never older than the cache TTL.  The cache holds
      no other state and is invalidated by the gateway on every write.

Failure modes:
    - Store errors (SQLAlchemyError) propagate; the feed never reports a
      partial listing because the store was unreachable.
"""

import threading
from datetime import datetime

from sqlalchemy.orm import Session

from inventory_kernel.domain.classifier import classify
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AlertEntry,
    AlertFilter,
    AlertSummary,
    AlertTier,
    ThresholdSource,
)
from inventory_kernel.exceptions import InventoryKernelError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.stock_selector import (
    DEFAULT_BATCH_SIZE,
    StockRecordSequence,
    StockSelector,
)
from inventory_kernel.services.override_service import OverrideService
from inventory_kernel.services.settings_service import SettingsService
from inventory_kernel.services.threshold_resolver import ThresholdResolver

logger = get_logger("services.alert_feed")

_ITEM_LOOKUP_CHUNK = 500


class AlertCache:
    """
    Thread-safe holder for the last computed listing.

    Contract:
        Long-lived (one per process), shared by every AlertFeed.  A TTL of 0
        disables caching.  Expiry is measured with the injected Clock.
    """

    def __init__(self, ttl_seconds: float, clock: Clock | None = None):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self.ttl_seconds = ttl_seconds
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._entries: tuple[AlertEntry, ...] | None = None
        self._stored_at: datetime | None = None

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self) -> tuple[AlertEntry, ...] | None:
        with self._lock:
            if not self.enabled or self._entries is None or self._stored_at is None:
                return None
            age = (self._clock.now() - self._stored_at).total_seconds()
            if age >= self.ttl_seconds:
                self._entries = None
                self._stored_at = None
                return None
            return self._entries

    def put(self, entries: tuple[AlertEntry, ...]) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries = entries
            self._stored_at = self._clock.now()

    def invalidate(self) -> None:
        with self._lock:
            self._entries = None
            self._stored_at = None


class AlertFeed:
    """
    Computes alert entries for every item with a stock record.

    Guarantees:
        - list_alerts() is sorted and filtered as documented above.
        - summary() counts over the same entries as an unfiltered listing.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        resolver: ThresholdResolver | None = None,
        cache: AlertCache | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._settings = SettingsService(session, self._clock)
        self._overrides = OverrideService(session, self._clock)
        self._resolver = resolver or ThresholdResolver(
            session, self._settings, self._overrides
        )
        self._selector = StockSelector(session)
        self._cache = cache
        self._batch_size = batch_size

    def list_alerts(self, alert_filter: AlertFilter | None = None) -> list[AlertEntry]:
        entries = self._entries()
        if alert_filter is None:
            return list(entries)
        return [entry for entry in entries if alert_filter.matches(entry)]

    def summary(self) -> AlertSummary:
        entries = self._entries()
        counts = {tier: 0 for tier in AlertTier}
        below_minimum = 0
        needs_reorder = 0
        for entry in entries:
            counts[entry.tier] += 1
            if not entry.thresholds.is_configured:
                continue
            if entry.current_quantity <= entry.thresholds.minimum:
                below_minimum += 1
            if entry.current_quantity <= entry.thresholds.reorder:
                needs_reorder += 1

        return AlertSummary(
            critical=counts[AlertTier.CRITICAL],
            urgent=counts[AlertTier.URGENT],
            warning=counts[AlertTier.WARNING],
            normal=counts[AlertTier.NORMAL],
            unconfigured=counts[AlertTier.UNCONFIGURED],
            total_items=len(entries),
            below_minimum=below_minimum,
            needs_reorder=needs_reorder,
            with_override=sum(
                1 for entry in entries if entry.thresholds.source == ThresholdSource.OVERRIDE
            ),
        )

    def _entries(self) -> tuple[AlertEntry, ...]:
        if self._cache is not None:
            cached = self._cache.get()
            if cached is not None:
                logger.debug("alert_cache_hit", extra={"entry_count": len(cached)})
                return cached

        entries = self._compute()
        if self._cache is not None:
            self._cache.put(entries)
        return entries

    def _compute(self) -> tuple[AlertEntry, ...]:
        records = list(StockRecordSequence(self._selector, None, self._batch_size))
        items = {}
        ids = [record.item_id for record in records]
        for start in range(0, len(ids), _ITEM_LOOKUP_CHUNK):
            items.update(self._selector.items_by_ids(ids[start:start + _ITEM_LOOKUP_CHUNK]))

        setting_values = self._settings.get_active_values()
        computed_at = self._clock.now()

        entries: list[AlertEntry] = []
        skipped = 0
        for record in records:
            try:
                thresholds = self._resolver.resolve(
                    record.item_id, record.current_quantity, setting_values
                )
            except InventoryKernelError as exc:
                skipped += 1
                logger.warning(
                    "alert_item_skipped",
                    extra={
                        "item_id": str(record.item_id),
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                continue
            entries.append(
                classify(record, thresholds, items.get(record.item_id), computed_at)
            )

        entries.sort(key=AlertEntry.sort_key)
        logger.info(
            "alert_feed_computed",
            extra={"entry_count": len(entries), "skipped_count": skipped},
        )
        return tuple(entries)
