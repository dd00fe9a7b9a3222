"""
YAML configuration loading.

Reads the files under the config directory, validates each section with its
Pydantic model, and assembles an AppConfig. Every failure is raised as a
ConfigLoadError that names the offending file.

Files:
    - meters.yaml (required): meter registry seed
    - alerts.yaml (required): deduplication window and notification channels
    - simulation.yaml (optional): load generator defaults
    - features.yaml (optional): timezone, storage backend, logging

Environment:
    - REDIS_URL: overrides the Redis URL
    - LOG_LEVEL: overrides the level from features.yaml

Example:
    >>> from meterwatch.config.loader import load_config
    >>> config = load_config("config")
    >>> [m.meter_id for m in config.get_active_meters()]
    ['SM-001', 'SM-002']
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from meterwatch.config.models import (
    AlertsConfig,
    AppConfig,
    ChannelConfig,
    FeaturesConfig,
    GlobalAlertSettings,
    LogLevel,
    RedisConnectionConfig,
    SimulationSettings,
)
from meterwatch.exceptions import MeterWatchError
from meterwatch.models.meter import Meter

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_REDIS_URL = "redis://localhost:6379"


class ConfigLoadError(MeterWatchError):
    """
    Configuration could not be read or did not validate.

    Attributes:
        message: What went wrong.
        file_path: File (or directory) involved, when known.
        cause: Underlying YAML, OS, or validation error.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[Path] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.file_path = file_path
        self.cause = cause
        super().__init__(message)


class ConfigLoader:
    """
    Builds an AppConfig from a directory of YAML files.

        config/
        ├── meters.yaml
        ├── alerts.yaml
        ├── simulation.yaml   (optional)
        └── features.yaml     (optional)

    Example:
        >>> ConfigLoader("config").load().alerts.global_settings.dedup_window_seconds
        7200
    """

    def __init__(self, config_dir: Path | str = "config"):
        """
        Args:
            config_dir: Directory holding the YAML files.

        Raises:
            ConfigLoadError: If the path is missing or not a directory.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            problem = "is not a directory" if self.config_dir.exists() else "does not exist"
            raise ConfigLoadError(
                f"Config directory {self.config_dir} {problem}",
                file_path=self.config_dir,
            )

    def _path(self, filename: str) -> Path:
        return self.config_dir / filename

    def _load_yaml(self, filename: str, required: bool = True) -> Dict[str, Any]:
        """
        Parse one YAML file into a mapping.

        A missing optional file reads as an empty mapping.

        Raises:
            ConfigLoadError: If a required file is missing, or the file is
                unreadable, malformed, empty, or not a mapping.
        """
        file_path = self._path(filename)
        if not file_path.exists():
            if required:
                raise ConfigLoadError(f"Missing config file {file_path}", file_path=file_path)
            return {}

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, OSError) as e:
            raise ConfigLoadError(
                f"Could not parse {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(f"{file_path} is empty", file_path=file_path)
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"{file_path} must hold a mapping, got {type(data).__name__}",
                file_path=file_path,
            )
        return data

    def _validate(self, model: Type[ModelT], raw: Any, filename: str) -> ModelT:
        """Validate one section, attributing failures to its file."""
        try:
            return model.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid {model.__name__} in {filename}: {e}",
                file_path=self._path(filename),
                cause=e,
            ) from e

    def _load_meters(self) -> List[Meter]:
        """Meter registry seed; at least one meter is required."""
        data = self._load_yaml("meters.yaml")
        meters = [self._validate(Meter, raw, "meters.yaml") for raw in data.get("meters") or []]
        if not meters:
            raise ConfigLoadError(
                "meters.yaml defines no meters",
                file_path=self._path("meters.yaml"),
            )
        return meters

    def _load_alerts(self) -> AlertsConfig:
        """Dedup settings from the `global` block plus per-channel settings."""
        data = self._load_yaml("alerts.yaml")
        channels = {
            name: self._validate(ChannelConfig, raw, "alerts.yaml")
            for name, raw in (data.get("channels") or {}).items()
        }
        return AlertsConfig(
            global_settings=self._validate(GlobalAlertSettings, data.get("global"), "alerts.yaml"),
            channels=channels,
        )

    def _load_simulation(self) -> SimulationSettings:
        data = self._load_yaml("simulation.yaml", required=False)
        return self._validate(SimulationSettings, data.get("simulation"), "simulation.yaml")

    def _load_features(self) -> FeaturesConfig:
        data = self._load_yaml("features.yaml", required=False)
        return self._validate(FeaturesConfig, data, "features.yaml")

    def _load_redis_connection(self) -> RedisConnectionConfig:
        """Redis URL from REDIS_URL, falling back to localhost."""
        return RedisConnectionConfig(url=os.getenv("REDIS_URL", DEFAULT_REDIS_URL))

    def _get_log_level(self, default: LogLevel = LogLevel.INFO) -> LogLevel:
        """LOG_LEVEL if set to a known level, otherwise `default`."""
        raw = os.getenv("LOG_LEVEL")
        if not raw:
            return default
        try:
            return LogLevel(raw.upper())
        except ValueError:
            return default

    def load(self) -> AppConfig:
        """
        Read every file and assemble the validated configuration.

        Raises:
            ConfigLoadError: On any missing, malformed, or invalid section.
        """
        try:
            features = self._load_features()
            return AppConfig(
                meters=self._load_meters(),
                alerts=self._load_alerts(),
                simulation=self._load_simulation(),
                features=features,
                redis=self._load_redis_connection(),
                log_level=self._get_log_level(features.logging.level),
            )
        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(f"Invalid configuration: {e}", cause=e) from e
        except Exception as e:
            raise ConfigLoadError(
                f"Failed to load configuration from {self.config_dir}: {e}",
                cause=e,
            ) from e


def load_config(config_dir: Path | str = "config") -> AppConfig:
    """
    Load the configuration in `config_dir`.

    Raises:
        ConfigLoadError: If loading or validation fails.

    Example:
        >>> load_config().get_meter("SM-001").configuration.leak_threshold_lpm
        1.0
    """
    return ConfigLoader(config_dir).load()
