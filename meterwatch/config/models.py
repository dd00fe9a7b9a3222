"""
Configuration models for the meter monitoring system.

Each YAML file under config/ maps onto one of these models. All of them are
frozen, so a loaded AppConfig can be shared across concurrent rule
evaluations as a read-only snapshot.

Configuration files:
    - config/meters.yaml: Meter registry seed with per-device thresholds
    - config/alerts.yaml: Alert deduplication and notification channels
    - config/simulation.yaml: Load generator defaults
    - config/features.yaml: Timezone, storage backend, and logging

Example:
    >>> from meterwatch.config.models import AppConfig
    >>> config = AppConfig(meters=[Meter(meter_id="SM-001")])
    >>> config.features.tzinfo()
    datetime.timezone.utc
"""

from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from meterwatch.models.meter import Meter
from meterwatch.simulation.profiles import (
    Intensity,
    ProfileType,
    SimulationConfig,
)


# =============================================================================
# ENUMS
# =============================================================================


class LogFormat(str, Enum):
    """Log renderer: JSON lines or console text."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Standard logging level names."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Where readings, alerts, and meters are kept."""

    MEMORY = "memory"
    REDIS = "redis"


# =============================================================================
# ALERT CONFIGURATION
# =============================================================================


class GlobalAlertSettings(BaseModel):
    """Deduplication and notification settings shared by all alert types."""

    model_config = {"frozen": True, "extra": "forbid"}

    dedup_window_seconds: int = Field(
        default=7200,
        description="Seconds during which a repeat (meter, type) detection is suppressed",
        ge=0,
        le=86400,
    )
    notify_on_create: bool = Field(
        default=True,
        description="Dispatch notifications for newly created alerts",
    )


class ChannelConfig(BaseModel):
    """Settings for one notification observer."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(
        default=True,
        description="Register this observer with the dispatcher",
    )
    format: str = Field(
        default="structured",
        description="Line format: structured or simple",
    )

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("structured", "simple"):
            raise ValueError(f"Unknown channel format: {v}")
        return v


class AlertsConfig(BaseModel):
    """Contents of alerts.yaml."""

    model_config = {"frozen": True, "extra": "forbid"}

    global_settings: GlobalAlertSettings = Field(
        default_factory=GlobalAlertSettings,
        description="Settings from the global block",
    )
    channels: Dict[str, ChannelConfig] = Field(
        default_factory=dict,
        description="Observers keyed by name (console, redis)",
    )

    def channel_enabled(self, name: str) -> bool:
        """Check if a channel is configured and enabled."""
        channel = self.channels.get(name)
        return channel is not None and channel.enabled


# =============================================================================
# SIMULATION CONFIGURATION
# =============================================================================


class SimulationSettings(BaseModel):
    """Load generator defaults from simulation.yaml."""

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
    seed: Optional[int] = Field(
        default=None,
        description="RNG seed for reproducible runs",
    )
    hours: int = Field(
        default=48,
        description="Length of a simulation run in hours",
        ge=1,
        le=24 * 366,
    )
    start: Optional[datetime] = Field(
        default=None,
        description="Start of the simulated window (default: now - hours)",
    )

    @field_validator("start")
    @classmethod
    def require_aware_start(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def to_simulation_config(self) -> SimulationConfig:
        """Build the generator's SimulationConfig."""
        return SimulationConfig(
            profile_type=self.profile_type,
            intensity=self.intensity,
            seasonality=self.seasonality,
            include_anomalies=self.include_anomalies,
        )


# =============================================================================
# FEATURES CONFIGURATION
# =============================================================================


class RedisStorageConfig(BaseModel):
    """Key expiry for the Redis storage backend."""

    model_config = {"frozen": True, "extra": "forbid"}

    readings_ttl_seconds: Optional[int] = Field(
        default=None,
        description="TTL for per-meter reading sets (None: no expiry)",
        ge=60,
    )
    resolved_alert_ttl_seconds: Optional[int] = Field(
        default=None,
        description="TTL for closed alerts (None: keep forever)",
        ge=60,
    )


class StorageConfig(BaseModel):
    """Which backend holds readings, alerts, and meters."""

    model_config = {"frozen": True, "extra": "forbid"}

    backend: StorageBackend = Field(
        default=StorageBackend.MEMORY,
        description="Storage backend",
    )
    redis: RedisStorageConfig = Field(
        default_factory=RedisStorageConfig,
        description="Key TTLs when backend is redis",
    )


class LoggingConfig(BaseModel):
    """Log output settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Renderer for log lines",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Log level unless LOG_LEVEL is set",
    )


class FeaturesConfig(BaseModel):
    """Contents of features.yaml."""

    model_config = {"frozen": True, "extra": "forbid"}

    timezone: str = Field(
        default="UTC",
        description="IANA timezone for hour-of-day and local-midnight rules",
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig,
        description="Storage backend settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Log output settings",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v.upper() == "UTC":
            return "UTC"
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    def tzinfo(self) -> tzinfo:
        """Resolve the configured timezone."""
        if self.timezone == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone)


# =============================================================================
# CONNECTIONS (environment)
# =============================================================================


class RedisConnectionConfig(BaseModel):
    """Where to reach Redis (from REDIS_URL)."""

    model_config = {"frozen": True, "extra": "forbid"}

    url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL",
    )
    db: int = Field(
        default=0,
        description="Database index",
        ge=0,
    )
    max_connections: int = Field(
        default=10,
        description="Connection pool size",
        ge=1,
    )
    socket_timeout: int = Field(
        default=5,
        description="Socket timeout (seconds)",
        ge=1,
    )


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class AppConfig(BaseModel):
    """
    Validated application configuration.

    Every section of the config directory plus the environment overrides.

    Example:
        >>> config = AppConfig(meters=[Meter(meter_id="SM-001")])
        >>> config.get_meter("SM-001").configuration.leak_threshold_lpm
        1.0
    """

    model_config = {"frozen": True, "extra": "forbid"}

    meters: List[Meter] = Field(
        default_factory=list,
        description="Meter registry seed",
    )
    alerts: AlertsConfig = Field(
        default_factory=AlertsConfig,
        description="Alert dedup and channel settings",
    )
    simulation: SimulationSettings = Field(
        default_factory=SimulationSettings,
        description="Load generator defaults",
    )
    features: FeaturesConfig = Field(
        default_factory=FeaturesConfig,
        description="Timezone, storage, and logging",
    )
    redis: RedisConnectionConfig = Field(
        default_factory=RedisConnectionConfig,
        description="Redis connection (storage backend and pub/sub)",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Effective log level after LOG_LEVEL",
    )

    @model_validator(mode="after")
    def unique_meter_ids(self) -> "AppConfig":
        """Meter ids must be unique."""
        seen = set()
        for meter in self.meters:
            if meter.meter_id in seen:
                raise ValueError(f"Duplicate meter id: {meter.meter_id}")
            seen.add(meter.meter_id)
        return self

    def get_meter(self, meter_id: str) -> Optional[Meter]:
        """
        Get a meter by id.

        Args:
            meter_id: Meter identifier (e.g., "SM-001")

        Returns:
            Optional[Meter]: Meter or None if not found.
        """
        for meter in self.meters:
            if meter.meter_id == meter_id:
                return meter
        return None

    def get_active_meters(self) -> List[Meter]:
        return [m for m in self.meters if m.is_active]
