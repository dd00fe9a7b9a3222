"""
Consumption profiles for the synthetic load generator.

A profile is a 24-entry diurnal curve (one multiplier and variance per
local hour) plus base daily volumes per intensity and a weekend factor.

Models:
    ProfileType: residential, commercial, rural
    Intensity: low, medium, high
    HourlyPattern: Multiplier and variance for one hour of the day
    SimulationConfig: Generation parameters for one run
"""

from enum import Enum
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field


class ProfileType(str, Enum):
    """Kind of premises being simulated."""

    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    RURAL = "rural"


class Intensity(str, Enum):
    """How much water the premises use overall."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HourlyPattern(BaseModel):
    """
    Multiplier and variance for one hour of the day.

    Attributes:
        hour: Local hour (0-23).
        multiplier: Factor applied to the average 15-minute volume.
        variance: Half-width of the relative uniform noise.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    hour: int = Field(..., ge=0, le=23)
    multiplier: float = Field(..., ge=0)
    variance: float = Field(..., ge=0, le=1)


class SimulationConfig(BaseModel):
    """
    Generation parameters for one run.

    Example:
        >>> config = SimulationConfig(
        ...     profile_type=ProfileType.RESIDENTIAL,
        ...     intensity=Intensity.MEDIUM,
        ...     seasonality=False,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    profile_type: ProfileType = Field(
        default=ProfileType.RESIDENTIAL,
        description="Consumption profile",
    )
    intensity: Intensity = Field(
        default=Intensity.MEDIUM,
        description="Consumption intensity",
    )
    seasonality: bool = Field(
        default=True,
        description="Apply seasonal multipliers",
    )
    include_anomalies: bool = Field(
        default=False,
        description="Inject random consumption spikes",
    )


def _curve(points: List[Tuple[float, float]]) -> List[HourlyPattern]:
    return [
        HourlyPattern(hour=hour, multiplier=multiplier, variance=variance)
        for hour, (multiplier, variance) in enumerate(points)
    ]


# Peaks at 07:00 and 19:00
RESIDENTIAL_CURVE = _curve([
    (0.2, 0.1), (0.15, 0.05), (0.1, 0.05), (0.1, 0.05),
    (0.15, 0.1), (0.3, 0.15), (1.4, 0.3), (1.6, 0.2),
    (1.2, 0.2), (0.8, 0.15), (0.6, 0.1), (0.7, 0.1),
    (0.8, 0.15), (0.9, 0.15), (0.7, 0.1), (0.6, 0.1),
    (0.8, 0.15), (1.0, 0.2), (1.6, 0.3), (1.8, 0.3),
    (1.4, 0.25), (1.0, 0.2), (0.6, 0.15), (0.4, 0.1),
])

# Peaks at 09:00 and 12:00, near zero overnight
COMMERCIAL_CURVE = _curve([
    (0.1, 0.05), (0.05, 0.02), (0.05, 0.02), (0.05, 0.02),
    (0.05, 0.02), (0.1, 0.05), (0.3, 0.1), (0.8, 0.15),
    (1.5, 0.2), (1.8, 0.2), (1.6, 0.2), (1.4, 0.15),
    (1.9, 0.25), (1.7, 0.2), (1.5, 0.15), (1.3, 0.15),
    (1.4, 0.15), (1.2, 0.15), (0.8, 0.1), (0.4, 0.1),
    (0.3, 0.05), (0.2, 0.05), (0.15, 0.05), (0.1, 0.05),
])

# Early bump at 05:00-06:00, peak at 18:00
RURAL_CURVE = _curve([
    (0.1, 0.05), (0.05, 0.02), (0.05, 0.02), (0.05, 0.02),
    (0.1, 0.05), (0.8, 0.2), (1.2, 0.25), (1.0, 0.2),
    (0.8, 0.15), (0.6, 0.1), (0.7, 0.1), (0.8, 0.15),
    (1.1, 0.2), (0.9, 0.15), (0.6, 0.1), (0.7, 0.1),
    (0.9, 0.15), (1.2, 0.2), (1.4, 0.25), (1.3, 0.2),
    (1.0, 0.15), (0.7, 0.15), (0.4, 0.1), (0.2, 0.05),
])

PROFILE_CURVES: Dict[ProfileType, List[HourlyPattern]] = {
    ProfileType.RESIDENTIAL: RESIDENTIAL_CURVE,
    ProfileType.COMMERCIAL: COMMERCIAL_CURVE,
    ProfileType.RURAL: RURAL_CURVE,
}

# Liters per day
BASE_DAILY_VOLUME: Dict[ProfileType, Dict[Intensity, float]] = {
    ProfileType.RESIDENTIAL: {
        Intensity.LOW: 150.0,
        Intensity.MEDIUM: 250.0,
        Intensity.HIGH: 400.0,
    },
    ProfileType.COMMERCIAL: {
        Intensity.LOW: 300.0,
        Intensity.MEDIUM: 600.0,
        Intensity.HIGH: 1200.0,
    },
    ProfileType.RURAL: {
        Intensity.LOW: 200.0,
        Intensity.MEDIUM: 350.0,
        Intensity.HIGH: 600.0,
    },
}

WEEKEND_FACTORS: Dict[ProfileType, float] = {
    ProfileType.RESIDENTIAL: 1.2,
    ProfileType.COMMERCIAL: 0.3,
    ProfileType.RURAL: 1.1,
}

# Southern-hemisphere climate: summer Dec-Feb, winter Jun-Aug
SUMMER_MONTHS = (12, 1, 2)
WINTER_MONTHS = (6, 7, 8)
SUMMER_FACTOR = 1.3
WINTER_FACTOR = 0.8

# Base temperature (C) by month, January first
MONTHLY_BASE_TEMPERATURE = [25, 24, 20, 16, 12, 10, 9, 11, 14, 18, 21, 24]


def seasonal_factor(month: int) -> float:
    """Seasonal consumption multiplier for a calendar month (1-12)."""
    if month in SUMMER_MONTHS:
        return SUMMER_FACTOR
    if month in WINTER_MONTHS:
        return WINTER_FACTOR
    return 1.0


def weekend_factor(profile_type: ProfileType, weekday: int) -> float:
    """Weekend multiplier; weekday follows datetime.weekday() (Sat=5, Sun=6)."""
    if weekday >= 5:
        return WEEKEND_FACTORS[profile_type]
    return 1.0


def hourly_pattern(profile_type: ProfileType, hour: int) -> HourlyPattern:
    return PROFILE_CURVES[profile_type][hour]


def base_daily_volume(profile_type: ProfileType, intensity: Intensity) -> float:
    return BASE_DAILY_VOLUME[profile_type][intensity]
