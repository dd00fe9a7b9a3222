"""
In-memory implementations of the storage ports.

Used by tests, by the simulator when no Redis is configured, and as the
reference behaviour for the Redis adapter. Readings are kept per meter in
a timestamp-sorted list and windows are located with bisect.

Example:
    >>> readings = InMemoryReadingStore()
    >>> await readings.add_readings(generated)
    >>> window = await readings.readings_in_window("SM-001", start, end)
"""

from bisect import bisect_left, bisect_right
from datetime import datetime
from typing import Dict, List, Optional, Sequence

import structlog

from meterwatch.interfaces.stores import (
    AlertStore,
    FlowPredicate,
    MeterRegistry,
    ReadingStore,
)
from meterwatch.models.alerts import Alert, AlertSeverity, AlertStatus, AlertType
from meterwatch.models.meter import Meter, MeterStatus
from meterwatch.models.reading import Reading

logger = structlog.get_logger(__name__)


class InMemoryReadingStore(ReadingStore):
    """Per-meter, timestamp-sorted reading history."""

    def __init__(self) -> None:
        self._readings: Dict[str, List[Reading]] = {}
        self._timestamps: Dict[str, List[datetime]] = {}

    async def add_reading(self, reading: Reading) -> None:
        self._insert(reading)

    async def add_readings(self, readings: Sequence[Reading]) -> int:
        for reading in readings:
            self._insert(reading)
        logger.debug("readings_added", count=len(readings))
        return len(readings)

    def _insert(self, reading: Reading) -> None:
        readings = self._readings.setdefault(reading.meter_id, [])
        timestamps = self._timestamps.setdefault(reading.meter_id, [])
        index = bisect_right(timestamps, reading.timestamp)
        timestamps.insert(index, reading.timestamp)
        readings.insert(index, reading)

    def _window(self, meter_id: str, start: datetime, end: datetime) -> List[Reading]:
        timestamps = self._timestamps.get(meter_id, [])
        lo = bisect_left(timestamps, start)
        hi = bisect_right(timestamps, end)
        return self._readings.get(meter_id, [])[lo:hi]

    @staticmethod
    def _order(
        readings: List[Reading],
        limit: Optional[int],
        newest_first: bool,
    ) -> List[Reading]:
        if newest_first:
            readings = readings[::-1]
        if limit is not None:
            readings = readings[:limit]
        return readings

    async def readings_in_window(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        return self._order(self._window(meter_id, start, end), limit, newest_first)

    async def readings_matching(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        predicate: FlowPredicate,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        matching = [
            r for r in self._window(meter_id, start, end) if predicate(r.flow_rate)
        ]
        return self._order(matching, limit, newest_first)

    async def latest_reading(self, meter_id: str) -> Optional[Reading]:
        readings = self._readings.get(meter_id)
        return readings[-1] if readings else None

    def count(self, meter_id: Optional[str] = None) -> int:
        """Number of stored readings, for one meter or overall."""
        if meter_id is not None:
            return len(self._readings.get(meter_id, []))
        return sum(len(r) for r in self._readings.values())


class InMemoryAlertStore(AlertStore):
    """Alerts keyed by alert_id."""

    def __init__(self) -> None:
        self._alerts: Dict[str, Alert] = {}

    async def save(self, alert: Alert) -> None:
        self._alerts[alert.alert_id] = alert

    async def get(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    async def find_active(
        self,
        meter_id: str,
        alert_type: AlertType,
        since: Optional[datetime] = None,
    ) -> Optional[Alert]:
        matches = [
            a
            for a in self._alerts.values()
            if a.meter_id == meter_id
            and a.alert_type == alert_type
            and a.is_active
            and (since is None or a.last_raised_at >= since)
        ]
        if not matches:
            return None
        return max(matches, key=lambda a: a.last_raised_at)

    async def query(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        meter_ids: Optional[Sequence[str]] = None,
    ) -> List[Alert]:
        wanted = set(meter_ids) if meter_ids is not None else None
        alerts = [
            a
            for a in self._alerts.values()
            if (status is None or a.status == status)
            and (severity is None or a.severity == severity)
            and (alert_type is None or a.alert_type == alert_type)
            and (wanted is None or a.meter_id in wanted)
        ]
        alerts.sort(key=lambda a: a.triggered_at, reverse=True)
        return alerts


class InMemoryMeterRegistry(MeterRegistry):
    """Meters keyed by meter_id."""

    def __init__(self, meters: Optional[Sequence[Meter]] = None) -> None:
        self._meters: Dict[str, Meter] = {m.meter_id: m for m in meters or []}

    async def get_meter(self, meter_id: str) -> Optional[Meter]:
        return self._meters.get(meter_id)

    async def list_meters(
        self,
        status: Optional[MeterStatus] = None,
        owner_id: Optional[str] = None,
    ) -> List[Meter]:
        return [
            m
            for m in sorted(self._meters.values(), key=lambda m: m.meter_id)
            if (status is None or m.status == status)
            and (owner_id is None or m.owner_id == owner_id)
        ]

    async def save_meter(self, meter: Meter) -> None:
        self._meters[meter.meter_id] = meter

    async def update_last_reading(self, meter_id: str, timestamp: datetime) -> None:
        meter = self._meters.get(meter_id)
        if meter is None:
            return
        if meter.last_reading_at is not None and meter.last_reading_at >= timestamp:
            return
        self._meters[meter_id] = meter.model_copy(update={"last_reading_at": timestamp})
