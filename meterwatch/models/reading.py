"""
Reading data model.

A reading is one timestamped cumulative-volume measurement from one meter.
Readings are immutable once created; the only derived field,
consumption_since_last, is filled in by derive_consumption() before the
reading is persisted.

Models:
    DataQuality: Categorical quality flag reported with each reading
    Reading: One timestamped measurement
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger(__name__)


class DataQuality(str, Enum):
    """Quality flag attached to a reading."""

    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    INVALID = "invalid"


class Reading(BaseModel):
    """
    One timestamped measurement from one meter.

    Attributes:
        reading_id: Unique identifier for this reading.
        meter_id: Owning meter identifier.
        timestamp: UTC instant of the measurement.
        current_reading: Cumulative volume in liters.
        flow_rate: Instantaneous rate in liters/minute.
        temperature: Water/ambient temperature in Celsius.
        pressure: Line pressure in bar.
        battery_level: Battery percentage (0-100).
        signal_strength: Radio signal strength in dBm.
        data_quality: Quality flag.
        consumption_since_last: Liters consumed since the previous reading.
        metadata: Free-form metadata.

    Example:
        >>> reading = Reading(
        ...     meter_id="SM-001",
        ...     timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ...     current_reading=100000.0,
        ...     flow_rate=0.4,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    reading_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier for this reading",
    )
    meter_id: str = Field(
        ...,
        description="Owning meter identifier",
        min_length=1,
    )
    timestamp: datetime = Field(
        ...,
        description="UTC instant of the measurement",
    )
    current_reading: float = Field(
        ...,
        description="Cumulative volume in liters",
        ge=0,
    )
    flow_rate: Optional[float] = Field(
        default=None,
        description="Instantaneous flow in liters/minute",
        ge=0,
    )
    temperature: Optional[float] = Field(
        default=None,
        description="Temperature in Celsius",
        ge=-50,
        le=100,
    )
    pressure: Optional[float] = Field(
        default=None,
        description="Pressure in bar",
        ge=0,
    )
    battery_level: Optional[float] = Field(
        default=None,
        description="Battery percentage",
        ge=0,
        le=100,
    )
    signal_strength: Optional[float] = Field(
        default=None,
        description="Signal strength in dBm",
        ge=-150,
        le=0,
    )
    data_quality: DataQuality = Field(
        default=DataQuality.GOOD,
        description="Quality flag",
    )
    consumption_since_last: float = Field(
        default=0.0,
        description="Liters consumed since the previous reading",
        ge=0,
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form metadata",
    )

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Require a timezone-aware timestamp and normalise it to UTC."""
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("timestamp must be timezone-aware")
        return v.astimezone(timezone.utc)

    @property
    def flow(self) -> float:
        """Flow rate with a missing value treated as zero."""
        return self.flow_rate or 0.0


def derive_consumption(previous: Optional[Reading], reading: Reading) -> Reading:
    """
    Fill in consumption_since_last from the previous reading of the meter.

    A decrease in cumulative volume means the meter was replaced or reset.
    It is recorded as a data-quality event (quality "invalid", zero
    consumption, metadata flag) and never as negative consumption.

    Args:
        previous: The latest stored reading for the meter, if any.
        reading: The newly arrived reading.

    Returns:
        Reading: A copy with consumption_since_last set.

    Example:
        >>> derived = derive_consumption(prev, new)
        >>> derived.consumption_since_last
        12.5
    """
    if previous is None:
        return reading

    delta = reading.current_reading - previous.current_reading

    if delta < 0:
        logger.warning(
            "meter_reading_decreased",
            meter_id=reading.meter_id,
            previous=previous.current_reading,
            current=reading.current_reading,
        )
        return reading.model_copy(
            update={
                "consumption_since_last": 0.0,
                "data_quality": DataQuality.INVALID,
                "metadata": {**reading.metadata, "meter_reset": True},
            }
        )

    return reading.model_copy(update={"consumption_since_last": round(delta, 2)})
