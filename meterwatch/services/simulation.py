"""
Simulation service.

Wires the configured stores, alert manager, notification dispatcher,
detection engine, and load generator together, then runs a full
generate-ingest-detect pass over a time window:

    1. Generate 15-minute readings for every active meter
    2. Replay them through the ingestor in timestamp order
    3. Sweep every meter for communication loss at the end of the window
    4. Wait for in-flight notifications

Example:
    >>> config = load_config("config")
    >>> service = await SimulationService.from_config(config)
    >>> try:
    ...     summary = await service.run()
    ... finally:
    ...     await service.close()
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from meterwatch.config.models import AppConfig, StorageBackend
from meterwatch.detection.dispatcher import create_dispatcher
from meterwatch.detection.engine import DetectionEngine
from meterwatch.detection.manager import AlertManager
from meterwatch.interfaces.stores import AlertStore, MeterRegistry, ReadingStore
from meterwatch.models.alerts import Alert
from meterwatch.models.meter import MeterStatus
from meterwatch.models.reading import Reading
from meterwatch.services.ingestion import ReadingIngestor
from meterwatch.simulation.generator import LoadGenerator
from meterwatch.storage.memory import (
    InMemoryAlertStore,
    InMemoryMeterRegistry,
    InMemoryReadingStore,
)
from meterwatch.storage.redis_client import RedisClient

logger = structlog.get_logger(__name__)


class SimulationSummary(BaseModel):
    """
    Outcome of one simulation run.

    Attributes:
        start: First generated timestamp.
        end: Window end (inclusive).
        meters: Number of meters simulated.
        readings: Number of readings ingested.
        alerts_created: Number of alerts created.
        alerts_by_type: Created alerts per alert type value.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    start: datetime
    end: datetime
    meters: int = Field(..., ge=0)
    readings: int = Field(..., ge=0)
    alerts_created: int = Field(..., ge=0)
    alerts_by_type: Dict[str, int] = Field(default_factory=dict)


class SimulationService:
    """
    Runs simulations against a fully wired detection pipeline.

    Attributes:
        config: Application configuration.
        reading_store: Reading history.
        alert_store: Alert persistence.
        meter_registry: Registered meters.
        alert_manager: Alert lifecycle manager.
        engine: Detection engine.
        generator: Synthetic load generator.
        ingestor: Per-reading ingestion pipeline.
    """

    def __init__(
        self,
        config: AppConfig,
        reading_store: ReadingStore,
        alert_store: AlertStore,
        meter_registry: MeterRegistry,
        redis_client: Optional[RedisClient] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.config = config
        self.reading_store = reading_store
        self.alert_store = alert_store
        self.meter_registry = meter_registry
        self.redis_client = redis_client

        tz = config.features.tzinfo()
        channels = config.alerts.channels
        console = channels.get("console")

        self.dispatcher = create_dispatcher(
            console_enabled=config.alerts.channel_enabled("console"),
            console_format=console.format if console else "structured",
            redis_client=redis_client,
            redis_enabled=config.alerts.channel_enabled("redis"),
        )
        self.alert_manager = AlertManager(
            alert_store=alert_store,
            meter_registry=meter_registry,
            dispatcher=self.dispatcher,
            dedup_window_seconds=config.alerts.global_settings.dedup_window_seconds,
            notify_on_create=config.alerts.global_settings.notify_on_create,
        )
        self.engine = DetectionEngine(reading_store, self.alert_manager, tz=tz)
        self.generator = LoadGenerator(
            reading_store,
            meter_registry,
            seed=seed if seed is not None else config.simulation.seed,
            tz=tz,
        )
        self.ingestor = ReadingIngestor(reading_store, meter_registry, self.engine)

    @classmethod
    async def from_config(
        cls,
        config: AppConfig,
        redis_client: Optional[RedisClient] = None,
        seed: Optional[int] = None,
    ) -> "SimulationService":
        """
        Build a service on the configured storage backend.

        For the redis backend, a client is created and connected unless one
        is given, and meters from the configuration are registered if absent.

        Raises:
            RedisConnectionException: If Redis is configured but unreachable.
        """
        if config.features.storage.backend == StorageBackend.REDIS:
            if redis_client is None:
                redis_client = RedisClient(config.redis, config.features.storage.redis)
            if not redis_client.is_connected:
                await redis_client.connect()

            for meter in config.meters:
                if await redis_client.get_meter(meter.meter_id) is None:
                    await redis_client.save_meter(meter)

            logger.info("simulation_storage_ready", backend="redis", meters=len(config.meters))
            return cls(
                config,
                reading_store=redis_client,
                alert_store=redis_client,
                meter_registry=redis_client,
                redis_client=redis_client,
                seed=seed,
            )

        logger.info("simulation_storage_ready", backend="memory", meters=len(config.meters))
        return cls(
            config,
            reading_store=InMemoryReadingStore(),
            alert_store=InMemoryAlertStore(),
            meter_registry=InMemoryMeterRegistry(config.meters),
            redis_client=redis_client,
            seed=seed,
        )

    def default_window(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """The configured window: settings.start or now minus the run length."""
        settings = self.config.simulation
        length = timedelta(hours=settings.hours)
        start = settings.start or (now or datetime.now(timezone.utc)) - length
        return start, start + length

    async def run(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SimulationSummary:
        """
        Generate, ingest, and evaluate readings for all active meters.

        Args:
            start: Window start (default: from simulation settings).
            end: Window end, inclusive (default: start plus the configured hours).

        Returns:
            SimulationSummary: Counts of readings and created alerts.

        Raises:
            InvalidRangeError: If start >= end.
        """
        if start is None:
            start, default_end = self.default_window()
            end = end or default_end
        elif end is None:
            end = start + timedelta(hours=self.config.simulation.hours)

        meters = await self.meter_registry.list_meters(status=MeterStatus.ACTIVE)
        streams = await self.generator.generate_for_meters(
            meters, start, end, self.config.simulation.to_simulation_config()
        )

        logger.info(
            "simulation_started",
            meters=len(meters),
            start=start.isoformat(),
            end=end.isoformat(),
        )

        replay: List[Reading] = sorted(
            (reading for readings in streams.values() for reading in readings),
            key=lambda r: (r.timestamp, r.meter_id),
        )

        created: List[Alert] = []
        for reading in replay:
            created.extend(await self.ingestor.ingest(reading))

        sweep_at = end if end.tzinfo is not None else end.replace(tzinfo=timezone.utc)
        for meter in meters:
            alert = await self.engine.check_communication(meter, now=sweep_at)
            if alert is not None:
                created.append(alert)

        await self.dispatcher.drain()

        by_type = Counter(alert.alert_type.value for alert in created)
        summary = SimulationSummary(
            start=start,
            end=end,
            meters=len(meters),
            readings=len(replay),
            alerts_created=len(created),
            alerts_by_type=dict(sorted(by_type.items())),
        )

        logger.info(
            "simulation_complete",
            meters=summary.meters,
            readings=summary.readings,
            alerts_created=summary.alerts_created,
            alerts_by_type=summary.alerts_by_type,
        )
        return summary

    async def close(self) -> None:
        """
        Wait for pending notifications, prune expired alert ids, and release
        the Redis connection.
        """
        await self.dispatcher.drain()
        if self.redis_client is None:
            return
        try:
            if self.redis_client.is_connected:
                await self.redis_client.prune_expired_alerts()
        finally:
            await self.redis_client.disconnect()
