"""
Abstract persistence and notification ports.

The detection engine, the alert manager and the load generator never talk
to a database directly. They depend on the ports in this module, which are
implemented by the in-memory and Redis adapters in meterwatch.storage.

Adapters must surface backend failures as UpstreamUnavailableError so that
callers handle one error type regardless of the backend.

Example:
    >>> class MyReadingStore(ReadingStore):
    ...     async def add_reading(self, reading: Reading) -> None:
    ...         ...
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Sequence, runtime_checkable

from meterwatch.models.alerts import Alert, AlertSeverity, AlertStatus, AlertType
from meterwatch.models.meter import Meter, MeterStatus, MeterSummary
from meterwatch.models.reading import Reading

FlowPredicate = Callable[[Optional[float]], bool]


class ReadingStore(ABC):
    """
    Time-ordered reading history per meter.

    Windows are closed intervals [start, end] unless stated otherwise.
    Results are ordered oldest first, or newest first when newest_first is
    set; limit is applied after ordering.
    """

    @abstractmethod
    async def add_reading(self, reading: Reading) -> None:
        """Persist a single reading."""
        pass

    @abstractmethod
    async def add_readings(self, readings: Sequence[Reading]) -> int:
        """
        Persist a batch of readings.

        Returns:
            int: Number of readings stored.
        """
        pass

    @abstractmethod
    async def readings_in_window(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        """
        Readings of a meter with start <= timestamp <= end.

        Args:
            meter_id: Meter identifier.
            start: Inclusive window start.
            end: Inclusive window end.
            limit: Maximum number of readings to return.
            newest_first: Order by descending timestamp.

        Returns:
            List[Reading]: Matching readings.
        """
        pass

    @abstractmethod
    async def readings_matching(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        predicate: FlowPredicate,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        """
        Readings in [start, end] whose flow rate satisfies predicate.

        The predicate receives the raw flow_rate, which may be None.
        """
        pass

    @abstractmethod
    async def latest_reading(self, meter_id: str) -> Optional[Reading]:
        """Most recent reading of a meter, or None if it has none."""
        pass


class AlertStore(ABC):
    """Alert persistence with lookups used by deduplication and queries."""

    @abstractmethod
    async def save(self, alert: Alert) -> None:
        """Insert or replace an alert by alert_id."""
        pass

    @abstractmethod
    async def get(self, alert_id: str) -> Optional[Alert]:
        """Fetch an alert by id, or None if unknown."""
        pass

    @abstractmethod
    async def find_active(
        self,
        meter_id: str,
        alert_type: AlertType,
        since: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """
        Find an active alert of the given type for the meter.

        Args:
            meter_id: Meter identifier.
            alert_type: Alert type to match.
            since: If set, only alerts raised (triggered or escalated) at or
                after since match.

        Returns:
            Optional[Alert]: The most recently raised match, if any.
        """
        pass

    @abstractmethod
    async def query(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        meter_ids: Optional[Sequence[str]] = None,
    ) -> List[Alert]:
        """
        All alerts matching every given filter, newest first.

        A meter_ids of None means any meter; an empty sequence matches none.
        """
        pass


class MeterRegistry(ABC):
    """Lookup of meters and their configuration."""

    @abstractmethod
    async def get_meter(self, meter_id: str) -> Optional[Meter]:
        pass

    @abstractmethod
    async def list_meters(
        self,
        status: Optional[MeterStatus] = None,
        owner_id: Optional[str] = None,
    ) -> List[Meter]:
        pass

    @abstractmethod
    async def save_meter(self, meter: Meter) -> None:
        pass

    @abstractmethod
    async def update_last_reading(self, meter_id: str, timestamp: datetime) -> None:
        """
        Advance the meter's last_reading_at.

        The stored value never moves backwards.
        """
        pass


@runtime_checkable
class AlertObserver(Protocol):
    """
    Receiver of newly created alerts.

    Implementations include ConsoleChannel and RedisPubSubChannel.
    """

    async def on_alert_created(self, alert: Alert, meter: MeterSummary) -> bool:
        """
        Deliver a newly created alert.

        Returns:
            bool: True if delivery succeeded.
        """
        ...
