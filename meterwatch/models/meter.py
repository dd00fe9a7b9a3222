"""
Meter data models.

This module defines the per-device configuration snapshot read by the
detection rules, the meter record that owns it, and the compact summary
handed to notification observers.

Models:
    TamperSensitivity: Tamper sensitivity levels (informational)
    MeterStatus: Operational status of a meter
    CommunicationType: Radio/transport used by the meter
    MeterConfiguration: Static per-device thresholds
    MeterSummary: Meter identity passed to notification observers
    Meter: Registered meter with its configuration
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TamperSensitivity(str, Enum):
    """Tamper sensitivity levels. Not evaluated by the detection rules."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MeterStatus(str, Enum):
    """Operational status of a meter."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    ERROR = "error"


class CommunicationType(str, Enum):
    """Transport used by the meter to deliver readings."""

    LORAWAN = "lorawan"
    NBIOT = "nbiot"
    WIFI = "wifi"
    ZIGBEE = "zigbee"
    CELLULAR = "cellular"


class MeterConfiguration(BaseModel):
    """
    Static per-device detection thresholds.

    Frozen so that one evaluation always sees a consistent snapshot, even
    when the rules run concurrently.

    Attributes:
        leak_threshold_lpm: Flow rate (L/min) above which sustained flow is suspicious.
        high_consumption_threshold_ld: Daily volume (L/day) considered high.
        low_battery_threshold: Battery percentage at or below which to alert.
        tamper_sensitivity: Tamper sensitivity (informational only).
        reading_interval_minutes: Sampling interval.
        transmission_interval_minutes: Expected transmission interval.
        data_retention_days: How long readings are retained.

    Example:
        >>> config = MeterConfiguration(leak_threshold_lpm=2.0)
        >>> config.high_consumption_threshold_ld
        500.0
    """

    model_config = {"frozen": True, "extra": "forbid"}

    leak_threshold_lpm: float = Field(
        default=1.0,
        description="Flow rate (L/min) above which sustained flow is suspicious",
        ge=0.1,
    )
    high_consumption_threshold_ld: float = Field(
        default=500.0,
        description="Daily consumption (L/day) considered high",
        ge=1,
    )
    low_battery_threshold: float = Field(
        default=20.0,
        description="Battery percentage at or below which to alert",
        ge=5,
        le=50,
    )
    tamper_sensitivity: TamperSensitivity = Field(
        default=TamperSensitivity.MEDIUM,
        description="Tamper sensitivity (informational)",
    )
    reading_interval_minutes: int = Field(
        default=60,
        description="Sampling interval in minutes",
        ge=1,
        le=1440,
    )
    transmission_interval_minutes: int = Field(
        default=60,
        description="Transmission interval in minutes",
        ge=1,
        le=1440,
    )
    data_retention_days: int = Field(
        default=1095,
        description="Reading retention period in days",
        ge=30,
    )


class MeterSummary(BaseModel):
    """Meter identity handed to notification observers."""

    model_config = {"frozen": True, "extra": "forbid"}

    meter_id: str
    owner_id: Optional[str] = None
    serial_number: Optional[str] = None
    location_description: Optional[str] = None


class Meter(BaseModel):
    """
    A registered water meter.

    Attributes:
        meter_id: Public meter identifier (e.g. "SM-001").
        owner_id: Identifier of the member who owns the meter.
        serial_number: Manufacturer serial number.
        status: Operational status.
        communication_type: Transport used to deliver readings.
        location_description: Free-form location text.
        last_reading_at: Timestamp of the latest stored reading.
        configuration: Detection thresholds for this meter.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    meter_id: str = Field(
        ...,
        description="Public meter identifier",
        min_length=1,
        max_length=100,
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="Identifier of the owning member",
    )
    serial_number: Optional[str] = Field(
        default=None,
        description="Manufacturer serial number",
    )
    status: MeterStatus = Field(
        default=MeterStatus.ACTIVE,
        description="Operational status",
    )
    communication_type: CommunicationType = Field(
        default=CommunicationType.LORAWAN,
        description="Transport used to deliver readings",
    )
    location_description: Optional[str] = Field(
        default=None,
        description="Free-form location text",
    )
    last_reading_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp of the latest stored reading",
    )
    configuration: MeterConfiguration = Field(
        default_factory=MeterConfiguration,
        description="Detection thresholds",
    )

    @property
    def is_active(self) -> bool:
        """Check if the meter is in service."""
        return self.status == MeterStatus.ACTIVE

    def summary(self) -> MeterSummary:
        """Build the summary passed to notification observers."""
        return MeterSummary(
            meter_id=self.meter_id,
            owner_id=self.owner_id,
            serial_number=self.serial_number,
            location_description=self.location_description,
        )
