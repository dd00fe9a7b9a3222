"""
Configuration management for the monitoring system.

Configuration is loaded from YAML files in the config/ directory and
validated with Pydantic models:
    - meters.yaml: Meter registry seed with per-device thresholds
    - alerts.yaml: Deduplication window and notification channels
    - simulation.yaml: Load generator defaults
    - features.yaml: Timezone, storage backend, and logging

Environment variables can override connection settings:
    - REDIS_URL: Redis connection URL
    - LOG_LEVEL: Application log level

Example:
    >>> from meterwatch.config import load_config
    >>> config = load_config()
    >>> config.features.tzinfo()
    datetime.timezone.utc

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
"""

from meterwatch.config.loader import ConfigLoadError, ConfigLoader, load_config
from meterwatch.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    StorageBackend,
    # Alert config
    AlertsConfig,
    ChannelConfig,
    GlobalAlertSettings,
    # Simulation config
    SimulationSettings,
    # Feature config
    FeaturesConfig,
    LoggingConfig,
    RedisStorageConfig,
    StorageConfig,
    # Connection config
    RedisConnectionConfig,
    # Root config
    AppConfig,
)

__all__ = [
    # Loader
    "ConfigLoadError",
    "ConfigLoader",
    "load_config",
    # Enums
    "LogFormat",
    "LogLevel",
    "StorageBackend",
    # Alert config
    "AlertsConfig",
    "ChannelConfig",
    "GlobalAlertSettings",
    # Simulation config
    "SimulationSettings",
    # Feature config
    "FeaturesConfig",
    "LoggingConfig",
    "RedisStorageConfig",
    "StorageConfig",
    # Connection config
    "RedisConnectionConfig",
    # Root config
    "AppConfig",
]
