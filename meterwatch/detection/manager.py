"""
Alert manager for alert lifecycle management.

This module provides the AlertManager class which owns the complete alert
lifecycle: deduplicated creation, notification, resolution, and the
administrative queries over stored alerts.

Key Features:
    - Deduplication per (meter_id, alert_type) within a time window
    - Check-then-create serialised by one asyncio.Lock per key, held only
      while some caller is using it
    - A more severe duplicate escalates the active alert instead of
      creating a second one
    - Notification dispatched once per created alert, after it is saved
    - Resolution and false-positive marking, single and bulk
    - Filtered, paginated listing, active view, and statistics

Example:
    >>> manager = AlertManager(alert_store, meter_registry, dispatcher)
    >>> alert = await manager.raise_alert(
    ...     meter_id="SM-001",
    ...     alert_type=AlertType.LEAK,
    ...     severity=AlertSeverity.HIGH,
    ...     title="Possible leak detected",
    ...     description="Continuous flow detected",
    ... )
"""

import asyncio
import math
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import structlog

from meterwatch.detection.dispatcher import NotificationDispatcher
from meterwatch.exceptions import AlertNotFoundError
from meterwatch.interfaces.stores import AlertObserver, AlertStore, MeterRegistry
from meterwatch.models.alerts import (
    ActiveAlertsView,
    Alert,
    AlertFilters,
    AlertPage,
    AlertSeverity,
    AlertStatistics,
    AlertStatus,
    AlertType,
    AlertTypeSummary,
    BulkResolveResult,
    DailyTrend,
    Pagination,
    TypeCount,
)
from meterwatch.models.meter import MeterSummary

logger = structlog.get_logger(__name__)


# Default configuration values
DEFAULT_DEDUP_WINDOW_SECONDS = 7200
DEFAULT_PAGE_LIMIT = 20
TREND_DAYS = 30

# Sentinel: use the manager's configured dedup window.
CONFIGURED_WINDOW: Any = object()


class AlertManager:
    """
    Orchestrates the alert lifecycle.

    Responsibilities:
    - Create alerts, suppressing duplicates of an active alert
    - Hand every created alert to the notification dispatcher
    - Close alerts as resolved or false positive
    - Answer listing and statistics queries

    Attributes:
        alert_store: AlertStore for persistence.
        meter_registry: MeterRegistry used for owner filters and summaries.
        dispatcher: NotificationDispatcher for created alerts.
        dedup_window: Default deduplication window.
        notify_on_create: Whether created alerts are dispatched.

    Example:
        >>> manager = AlertManager(
        ...     alert_store=InMemoryAlertStore(),
        ...     meter_registry=registry,
        ...     dedup_window_seconds=7200,
        ... )
        >>> manager.add_observer("console", ConsoleChannel())
    """

    def __init__(
        self,
        alert_store: AlertStore,
        meter_registry: MeterRegistry,
        dispatcher: Optional[NotificationDispatcher] = None,
        dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
        notify_on_create: bool = True,
    ) -> None:
        """
        Initialize the AlertManager.

        Args:
            alert_store: AlertStore for persisting alerts.
            meter_registry: MeterRegistry for meter lookups.
            dispatcher: Dispatcher for created alerts; one is created if omitted.
            dedup_window_seconds: Default deduplication window.
            notify_on_create: Whether to dispatch created alerts.
        """
        self.alert_store = alert_store
        self.meter_registry = meter_registry
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.dedup_window = timedelta(seconds=dedup_window_seconds)
        self.notify_on_create = notify_on_create

        self._locks: Dict[Tuple[str, AlertType], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, AlertType], int] = {}

        logger.info(
            "alert_manager_initialized",
            dedup_window_seconds=dedup_window_seconds,
            notify_on_create=notify_on_create,
        )

    def add_observer(self, name: str, observer: AlertObserver) -> None:
        """Register a notification observer for created alerts."""
        self.dispatcher.add_observer(name, observer)

    @asynccontextmanager
    async def _guard(self, meter_id: str, alert_type: AlertType) -> AsyncIterator[None]:
        """Hold the (meter, type) lock; the entry is dropped once nobody uses it."""
        key = (meter_id, alert_type)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    def get_lock_count(self) -> int:
        """Number of (meter, type) locks currently in use."""
        return len(self._locks)

    async def raise_alert(
        self,
        meter_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        title: str,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
        dedup_window: Any = CONFIGURED_WINDOW,
    ) -> Optional[Alert]:
        """
        Create an alert unless an equivalent one is already active.

        An alert is a duplicate when an active alert with the same meter and
        type was raised (triggered or escalated) within the dedup window
        before timestamp. A duplicate with a higher severity escalates the
        existing alert and restarts its window; others are discarded.

        Args:
            meter_id: Meter the alert concerns.
            alert_type: Alert type.
            severity: Alert severity.
            title: Short title.
            description: Human-readable description.
            metadata: Rule-specific evidence.
            timestamp: Trigger time, defaults to now.
            dedup_window: timedelta window, None for "any active alert", or
                omitted for the configured default.

        Returns:
            Optional[Alert]: The created alert, or None if an active alert
                absorbed the detection.
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        window = self.dedup_window if dedup_window is CONFIGURED_WINDOW else dedup_window
        since = timestamp - window if window is not None else None

        async with self._guard(meter_id, alert_type):
            existing = await self.alert_store.find_active(meter_id, alert_type, since)
            if existing is not None:
                if severity.rank > existing.severity.rank:
                    escalated = existing.escalate(severity, title, description, timestamp)
                    await self.alert_store.save(escalated)
                    logger.info(
                        "alert_escalated",
                        alert_id=existing.alert_id,
                        meter_id=meter_id,
                        alert_type=alert_type.value,
                        from_severity=existing.severity.value,
                        to_severity=severity.value,
                    )
                else:
                    logger.debug(
                        "alert_deduplicated",
                        meter_id=meter_id,
                        alert_type=alert_type.value,
                        existing_alert_id=existing.alert_id,
                    )
                return None

            alert = Alert(
                meter_id=meter_id,
                alert_type=alert_type,
                severity=severity,
                title=title,
                description=description,
                triggered_at=timestamp,
                metadata=metadata or {},
            )
            await self.alert_store.save(alert)

        logger.info(
            "alert_created",
            alert_id=alert.alert_id,
            meter_id=meter_id,
            alert_type=alert_type.value,
            severity=severity.value,
            triggered_at=timestamp.isoformat(),
        )

        if self.notify_on_create:
            summary = await self._meter_summary(meter_id)
            self.dispatcher.notify(alert, summary, on_complete=self._record_notifications)

        return alert

    async def _meter_summary(self, meter_id: str) -> MeterSummary:
        """Owner/location for notifications; bare meter id if the lookup fails."""
        try:
            meter = await self.meter_registry.get_meter(meter_id)
        except Exception as e:
            logger.warning(
                "meter_summary_unavailable",
                meter_id=meter_id,
                error=str(e),
            )
            return MeterSummary(meter_id=meter_id)
        if meter is None:
            return MeterSummary(meter_id=meter_id)
        return meter.summary()

    async def _record_notifications(self, alert: Alert, sent: Dict[str, bool]) -> None:
        async with self._guard(alert.meter_id, alert.alert_type):
            current = await self.alert_store.get(alert.alert_id)
            if current is None:
                return
            await self.alert_store.save(current.with_notifications(sent))

    async def resolve_alert(
        self,
        alert_id: str,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Alert:
        """
        Resolve an active alert.

        Args:
            alert_id: The unique alert identifier.
            resolved_by: Who resolved it.
            notes: Resolution notes.
            timestamp: Resolution time, defaults to now.

        Returns:
            Alert: The resolved alert.

        Raises:
            AlertNotFoundError: If the alert is unknown or no longer active.

        Example:
            >>> resolved = await manager.resolve_alert("abc123", resolved_by="ops")
        """
        return await self._close(
            alert_id, AlertStatus.RESOLVED, resolved_by, notes, timestamp
        )

    async def mark_false_positive(
        self,
        alert_id: str,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Alert:
        """
        Close an active alert as a false positive.

        Raises:
            AlertNotFoundError: If the alert is unknown or no longer active.
        """
        return await self._close(
            alert_id, AlertStatus.FALSE_POSITIVE, resolved_by, notes, timestamp
        )

    async def _close(
        self,
        alert_id: str,
        status: AlertStatus,
        resolved_by: Optional[str],
        notes: Optional[str],
        timestamp: Optional[datetime],
    ) -> Alert:
        alert = await self.alert_store.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)

        async with self._guard(alert.meter_id, alert.alert_type):
            # Re-read under the lock; a concurrent close may have won.
            alert = await self.alert_store.get(alert_id)
            if alert is None or not alert.is_active:
                raise AlertNotFoundError(
                    alert_id, f"Alert not found or already closed: {alert_id}"
                )

            closed = alert.close(
                status=status,
                resolved_by=resolved_by,
                notes=notes,
                timestamp=timestamp,
            )
            await self.alert_store.save(closed)

        logger.info(
            "alert_closed",
            alert_id=alert_id,
            status=status.value,
            resolved_by=resolved_by,
            duration_seconds=closed.duration_seconds,
        )

        return closed

    async def bulk_resolve(
        self,
        alert_ids: Sequence[str],
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BulkResolveResult:
        """
        Resolve every currently active alert among alert_ids.

        Unknown or already closed ids are skipped, never raised.

        Returns:
            BulkResolveResult: resolved count and total ids requested.

        Raises:
            ValueError: If alert_ids is empty.
        """
        if not alert_ids:
            raise ValueError("alert_ids must not be empty")

        resolved = 0
        for alert_id in alert_ids:
            try:
                await self.resolve_alert(alert_id, resolved_by=resolved_by, notes=notes)
                resolved += 1
            except AlertNotFoundError:
                logger.debug("bulk_resolve_skipped", alert_id=alert_id)

        logger.info(
            "bulk_resolve_complete",
            resolved=resolved,
            total=len(alert_ids),
            resolved_by=resolved_by,
        )

        return BulkResolveResult(resolved=resolved, total=len(alert_ids))

    async def _meter_ids_for(
        self,
        meter_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> Optional[List[str]]:
        """Resolve meter and owner filters to a meter id list (None = any)."""
        if owner_id is None:
            return [meter_id] if meter_id is not None else None

        owned = [m.meter_id for m in await self.meter_registry.list_meters(owner_id=owner_id)]
        if meter_id is not None:
            return [meter_id] if meter_id in owned else []
        return owned

    async def list_alerts(
        self,
        filters: Optional[AlertFilters] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> AlertPage:
        """
        List alerts matching the filters, newest first.

        Args:
            filters: Status, severity, type, meter and owner filters.
            page: 1-based page number.
            limit: Page size.

        Returns:
            AlertPage: The requested page and pagination metadata.
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be >= 1")

        filters = filters or AlertFilters()
        meter_ids = await self._meter_ids_for(filters.meter_id, filters.owner_id)

        alerts = await self.alert_store.query(
            status=filters.status,
            severity=filters.severity,
            alert_type=filters.alert_type,
            meter_ids=meter_ids,
        )

        total = len(alerts)
        offset = (page - 1) * limit
        return AlertPage(
            alerts=alerts[offset:offset + limit],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                pages=math.ceil(total / limit),
            ),
        )

    async def active_alerts(self, owner_id: Optional[str] = None) -> ActiveAlertsView:
        """
        Active alerts, most severe first, then newest first.

        Args:
            owner_id: Restrict to meters owned by this member.

        Returns:
            ActiveAlertsView: Sorted alerts with per-type summary.
        """
        meter_ids = await self._meter_ids_for(owner_id=owner_id)
        alerts = await self.alert_store.query(
            status=AlertStatus.ACTIVE,
            meter_ids=meter_ids,
        )
        alerts.sort(key=lambda a: (-a.severity.rank, -a.triggered_at.timestamp()))

        counts: Counter = Counter(a.alert_type for a in alerts)
        critical: Counter = Counter(
            a.alert_type for a in alerts if a.severity.is_critical
        )
        by_type = [
            AlertTypeSummary(
                alert_type=alert_type,
                count=count,
                critical_count=critical[alert_type],
            )
            for alert_type, count in sorted(
                counts.items(), key=lambda item: (-item[1], item[0].value)
            )
        ]

        return ActiveAlertsView(
            alerts=alerts,
            total=len(alerts),
            by_type=by_type,
            critical=sum(critical.values()),
        )

    async def statistics(self, now: Optional[datetime] = None) -> AlertStatistics:
        """
        Aggregate alert counts.

        Args:
            now: Reference time for the 30-day trend, defaults to now.

        Returns:
            AlertStatistics: Totals, breakdowns, and the daily trend.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        alerts = await self.alert_store.query()
        active = [a for a in alerts if a.is_active]

        by_status = {status: 0 for status in AlertStatus}
        for alert in alerts:
            by_status[alert.status] += 1

        by_severity = {severity: 0 for severity in AlertSeverity}
        for alert in active:
            by_severity[alert.severity] += 1

        type_counts: Dict[AlertType, List[int]] = {}
        for alert in alerts:
            entry = type_counts.setdefault(alert.alert_type, [0, 0])
            entry[0] += 1
            if alert.is_active:
                entry[1] += 1

        cutoff = now - timedelta(days=TREND_DAYS)
        daily: Dict[Any, List[int]] = {}
        for alert in alerts:
            if cutoff <= alert.triggered_at <= now:
                day = alert.triggered_at.astimezone(timezone.utc).date()
                entry = daily.setdefault(day, [0, 0])
                entry[0] += 1
                if alert.severity.is_critical:
                    entry[1] += 1

        return AlertStatistics(
            total_active=len(active),
            total_critical=by_severity[AlertSeverity.CRITICAL],
            by_status=by_status,
            by_severity=by_severity,
            by_type={
                alert_type: TypeCount(count=total, active_count=open_count)
                for alert_type, (total, open_count) in type_counts.items()
            },
            trend=[
                DailyTrend(day=day, count=count, critical_count=crit)
                for day, (count, crit) in sorted(daily.items())
            ],
        )


def create_alert_manager(
    alert_store: AlertStore,
    meter_registry: MeterRegistry,
    dispatcher: Optional[NotificationDispatcher] = None,
    dedup_window_seconds: int = DEFAULT_DEDUP_WINDOW_SECONDS,
    notify_on_create: bool = True,
) -> AlertManager:
    """
    Factory function to create an AlertManager.

    Example:
        >>> manager = create_alert_manager(alert_store, registry)
    """
    return AlertManager(
        alert_store=alert_store,
        meter_registry=meter_registry,
        dispatcher=dispatcher,
        dedup_window_seconds=dedup_window_seconds,
        notify_on_create=notify_on_create,
    )
