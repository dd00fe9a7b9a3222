"""
Exception hierarchy for the monitoring system.

Every error raised on purpose by meterwatch derives from MeterWatchError,
so callers of the administrative and simulation surfaces can catch a single
base class. Rule-level "insufficient history" is not an exception; rules
report it as a skip reason on their result.
"""

from typing import Optional


class MeterWatchError(Exception):
    """Base class for all meterwatch errors."""

    pass


class AlertNotFoundError(MeterWatchError):
    """
    Raised when an alert does not exist or is no longer active.

    Attributes:
        alert_id: The alert identifier that was looked up.
    """

    def __init__(self, alert_id: str, message: Optional[str] = None) -> None:
        self.alert_id = alert_id
        super().__init__(message or f"Alert not found: {alert_id}")


class MeterNotFoundError(MeterWatchError):
    """Raised when a meter id is not known to the registry."""

    def __init__(self, meter_id: str) -> None:
        self.meter_id = meter_id
        super().__init__(f"Meter not found: {meter_id}")


class InvalidRangeError(MeterWatchError):
    """Raised when a generation window has start >= end."""

    pass


class UpstreamUnavailableError(MeterWatchError):
    """
    Raised when a persistence or notification collaborator fails.

    Attributes:
        cause: The original exception, if any.
    """

    def __init__(self, message: str, cause: Optional[Exception] = None) -> None:
        self.cause = cause
        super().__init__(message)
