"""
Reading ingestion pipeline.

Every reading that enters the system goes through ReadingIngestor.ingest:
the meter is resolved, consumption is derived against the previous stored
reading, the reading is persisted, the meter's last_reading_at advances, and
the detection engine and battery check run against the new history.
"""

from typing import List

import structlog

from meterwatch.detection.engine import DetectionEngine
from meterwatch.exceptions import MeterNotFoundError
from meterwatch.interfaces.stores import MeterRegistry, ReadingStore
from meterwatch.models.alerts import Alert
from meterwatch.models.reading import Reading, derive_consumption

logger = structlog.get_logger(__name__)


class ReadingIngestor:
    """
    Persists readings and runs detection on each one.

    Attributes:
        reading_store: Reading history.
        meter_registry: Meter lookups and last_reading_at updates.
        engine: Detection engine run after each reading is stored.
    """

    def __init__(
        self,
        reading_store: ReadingStore,
        meter_registry: MeterRegistry,
        engine: DetectionEngine,
    ) -> None:
        self.reading_store = reading_store
        self.meter_registry = meter_registry
        self.engine = engine
        self._ingested = 0

    @property
    def ingested_count(self) -> int:
        return self._ingested

    async def ingest(self, reading: Reading) -> List[Alert]:
        """
        Store one reading and evaluate it.

        Args:
            reading: Newly arrived reading.

        Returns:
            List[Alert]: Alerts created while evaluating this reading.

        Raises:
            MeterNotFoundError: If the reading's meter is not registered.
        """
        meter = await self.meter_registry.get_meter(reading.meter_id)
        if meter is None:
            logger.warning("reading_for_unknown_meter", meter_id=reading.meter_id)
            raise MeterNotFoundError(reading.meter_id)

        previous = await self.reading_store.latest_reading(reading.meter_id)
        reading = derive_consumption(previous, reading)

        await self.reading_store.add_reading(reading)
        await self.meter_registry.update_last_reading(reading.meter_id, reading.timestamp)
        self._ingested += 1

        alerts = await self.engine.evaluate(reading, meter)
        battery_alert = await self.engine.check_battery(reading, meter)
        if battery_alert is not None:
            alerts.append(battery_alert)

        logger.debug(
            "reading_ingested",
            meter_id=reading.meter_id,
            reading_id=reading.reading_id,
            timestamp=reading.timestamp.isoformat(),
            alerts_created=len(alerts),
        )
        return alerts
