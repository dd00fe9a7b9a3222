"""Builders for readings, meters, and alerts used across the test suite."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from meterwatch.models import Alert, AlertSeverity, AlertType, Meter, MeterConfiguration, Reading

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
STEP = timedelta(minutes=15)


def make_meter(
    meter_id: str = "SM-001",
    owner_id: Optional[str] = "member-001",
    **config,
) -> Meter:
    return Meter(
        meter_id=meter_id,
        owner_id=owner_id,
        location_description="Kitchen",
        configuration=MeterConfiguration(**config),
    )


def make_reading(
    at: datetime = T0,
    meter_id: str = "SM-001",
    current: float = 100000.0,
    flow: Optional[float] = 0.2,
    battery: Optional[float] = 90.0,
    **fields,
) -> Reading:
    return Reading(
        meter_id=meter_id,
        timestamp=at,
        current_reading=current,
        flow_rate=flow,
        battery_level=battery,
        **fields,
    )


def make_series(
    count: int,
    end: datetime,
    flow: Optional[float] = 0.2,
    meter_id: str = "SM-001",
    start_current: float = 100000.0,
) -> List[Reading]:
    """count readings 15 minutes apart, the last one at end."""
    first = end - STEP * (count - 1)
    return [
        make_reading(
            at=first + STEP * i,
            meter_id=meter_id,
            current=start_current + i * 5,
            flow=flow,
        )
        for i in range(count)
    ]


def make_alert(
    meter_id: str = "SM-001",
    alert_type: AlertType = AlertType.LEAK,
    severity: AlertSeverity = AlertSeverity.HIGH,
    triggered_at: datetime = T0,
) -> Alert:
    return Alert(
        meter_id=meter_id,
        alert_type=alert_type,
        severity=severity,
        title="Possible leak detected",
        description="test",
        triggered_at=triggered_at,
    )
