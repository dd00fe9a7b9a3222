"""
Synthetic realistic-load generator.

Produces 15-minute meter readings whose statistical shape matches real
consumption: a diurnal curve per profile, weekend and seasonal factors,
bounded noise, optional rare spikes, and correlated telemetry fields
(flow, temperature, pressure, battery, signal, data quality).

All randomness comes from an injected random.Random, so a given seed always
produces the same stream. Generation for several meters runs in worker
threads, each with its own child RNG derived from the generator's RNG.

Example:
    >>> generator = LoadGenerator(reading_store, meter_registry, seed=42)
    >>> readings = generator.generate(
    ...     "SM-001",
    ...     start=datetime(2024, 1, 1, tzinfo=timezone.utc),
    ...     end=datetime(2024, 1, 3, tzinfo=timezone.utc),
    ...     config=SimulationConfig(seasonality=False),
    ... )
    >>> await generator.insert_generated(readings)
"""

import asyncio
import math
import random
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterator, List, Optional, Sequence

import structlog

from meterwatch.exceptions import InvalidRangeError
from meterwatch.interfaces.stores import MeterRegistry, ReadingStore
from meterwatch.models.meter import Meter, MeterStatus
from meterwatch.models.reading import DataQuality, Reading
from meterwatch.simulation.profiles import (
    MONTHLY_BASE_TEMPERATURE,
    SimulationConfig,
    base_daily_volume,
    hourly_pattern,
    seasonal_factor,
    weekend_factor,
)

logger = structlog.get_logger(__name__)

STEP = timedelta(minutes=15)
STEPS_PER_HOUR = 4

INITIAL_READING_BASE = 100000
INITIAL_READING_SPAN = 900000

# Spike probabilities per step, checked in order
LEAK_SPIKE_PROBABILITY = 0.005
HIGH_SPIKE_PROBABILITY = 0.001

BATTERY_CYCLE_DAYS = 730
SIGNAL_MEAN_DBM = -70.0
SIGNAL_STD_DBM = 10.0

# Cumulative thresholds: good 85%, fair 10%, poor 4%, invalid 1%
QUALITY_THRESHOLDS = (
    (0.85, DataQuality.GOOD),
    (0.95, DataQuality.FAIR),
    (0.99, DataQuality.POOR),
)


def initial_reading(meter_id: str) -> float:
    """Deterministic starting volume for a meter with no history."""
    return float(INITIAL_READING_BASE + sum(ord(c) for c in meter_id) % INITIAL_READING_SPAN)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _validate_range(start: datetime, end: datetime) -> None:
    if _as_utc(start) >= _as_utc(end):
        raise InvalidRangeError(f"start ({start}) must be before end ({end})")


class LoadGenerator:
    """
    Generates synthetic reading streams.

    Attributes:
        reading_store: Destination for generated readings.
        meter_registry: Source of active meters; receives last_reading_at.
        rng: Random source for every draw.
        tz: Timezone for hour-of-day, weekday, and month decisions.
    """

    def __init__(
        self,
        reading_store: ReadingStore,
        meter_registry: MeterRegistry,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.reading_store = reading_store
        self.meter_registry = meter_registry
        self.rng = rng if rng is not None else random.Random(seed)
        self.tz = tz

    def generate(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        config: SimulationConfig,
        last_reading: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> List[Reading]:
        """
        Generate every reading from start to end (inclusive) at 15-minute steps.

        Args:
            meter_id: Meter to generate for.
            start: First timestamp.
            end: Last timestamp bound (inclusive).
            config: Profile, intensity, seasonality and anomaly settings.
            last_reading: Cumulative volume to continue from.
            rng: Random source, defaults to the generator's.

        Returns:
            List[Reading]: Readings with non-decreasing current_reading.

        Raises:
            InvalidRangeError: If start >= end.
        """
        return list(self.iter_readings(meter_id, start, end, config, last_reading, rng))

    def iter_readings(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        config: SimulationConfig,
        last_reading: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> Iterator[Reading]:
        """
        Lazily generate readings; each call returns a fresh iterator.

        Raises:
            InvalidRangeError: If start >= end, before any reading is produced.
        """
        _validate_range(start, end)
        return self._iterate(
            meter_id,
            _as_utc(start),
            _as_utc(end),
            config,
            last_reading,
            rng if rng is not None else self.rng,
        )

    def _iterate(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        config: SimulationConfig,
        last_reading: Optional[float],
        rng: random.Random,
    ) -> Iterator[Reading]:
        per_step = base_daily_volume(config.profile_type, config.intensity) / 24 / STEPS_PER_HOUR
        total = last_reading if last_reading is not None else initial_reading(meter_id)
        current = start

        while current <= end:
            local = current.astimezone(self.tz)
            pattern = hourly_pattern(config.profile_type, local.hour)

            consumption = per_step * pattern.multiplier
            if config.seasonality:
                consumption *= seasonal_factor(local.month)
            consumption *= weekend_factor(config.profile_type, local.weekday())
            consumption *= 1 + (rng.random() - 0.5) * pattern.variance * 2

            if config.include_anomalies:
                consumption = self._apply_anomalies(consumption, rng)

            consumption = max(0.0, consumption)
            total += consumption

            yield Reading(
                meter_id=meter_id,
                timestamp=current,
                current_reading=round(total, 2),
                flow_rate=self._flow_rate(consumption, rng),
                temperature=self._temperature(local, rng),
                pressure=self._pressure(rng),
                battery_level=self._battery_level(current, rng),
                signal_strength=self._signal_strength(rng),
                data_quality=self._data_quality(rng),
                consumption_since_last=round(consumption, 2),
                metadata={
                    "pattern": config.profile_type.value,
                    "intensity": config.intensity.value,
                    "hour": local.hour,
                    "multiplier": pattern.multiplier,
                    "generated": True,
                },
            )

            current += STEP

    @staticmethod
    def _apply_anomalies(consumption: float, rng: random.Random) -> float:
        if rng.random() < LEAK_SPIKE_PROBABILITY:
            return consumption * (2 + rng.random() * 3)
        if rng.random() < HIGH_SPIKE_PROBABILITY:
            return consumption * (5 + rng.random() * 5)
        return consumption

    @staticmethod
    def _flow_rate(consumption: float, rng: random.Random) -> float:
        lpm = consumption / 15
        return max(0.0, lpm * (0.8 + rng.random() * 0.4))

    @staticmethod
    def _temperature(local: datetime, rng: random.Random) -> float:
        base = MONTHLY_BASE_TEMPERATURE[local.month - 1]
        daily = math.sin((local.hour - 6) * math.pi / 12) * 5
        noise = (rng.random() - 0.5) * 4
        return round(base + daily + noise, 1)

    @staticmethod
    def _pressure(rng: random.Random) -> float:
        return round(2.5 + (rng.random() - 0.5) * 1.5, 2)

    @staticmethod
    def _battery_level(ts: datetime, rng: random.Random) -> float:
        days_since_epoch = int(ts.timestamp() // 86400)
        decay = (days_since_epoch % BATTERY_CYCLE_DAYS) / BATTERY_CYCLE_DAYS
        level = 100 - decay * 80 + (rng.random() - 0.5) * 5
        return float(max(5, min(100, round(level))))

    @staticmethod
    def _signal_strength(rng: random.Random) -> float:
        signal = rng.gauss(SIGNAL_MEAN_DBM, SIGNAL_STD_DBM)
        return float(max(-110, min(-30, round(signal))))

    @staticmethod
    def _data_quality(rng: random.Random) -> DataQuality:
        draw = rng.random()
        for threshold, quality in QUALITY_THRESHOLDS:
            if draw < threshold:
                return quality
        return DataQuality.INVALID

    async def insert_generated(self, readings: Sequence[Reading]) -> int:
        """
        Batch-insert readings and advance each meter's last_reading_at.

        Returns:
            int: Number of readings inserted.
        """
        if not readings:
            return 0

        count = await self.reading_store.add_readings(readings)

        latest: Dict[str, datetime] = {}
        for reading in readings:
            if reading.meter_id not in latest or reading.timestamp > latest[reading.meter_id]:
                latest[reading.meter_id] = reading.timestamp
        for meter_id, timestamp in latest.items():
            await self.meter_registry.update_last_reading(meter_id, timestamp)

        logger.info(
            "generated_readings_inserted",
            count=count,
            meters=len(latest),
        )
        return count

    async def generate_for_meters(
        self,
        meters: Sequence[Meter],
        start: datetime,
        end: datetime,
        config: SimulationConfig,
    ) -> Dict[str, List[Reading]]:
        """
        Generate streams for several meters in parallel worker threads.

        Each meter continues from its latest stored reading and uses a child
        RNG seeded from the generator's RNG in meter order.
        """
        _validate_range(start, end)

        jobs = []
        for meter in meters:
            last = await self.reading_store.latest_reading(meter.meter_id)
            child = random.Random(self.rng.getrandbits(64))
            jobs.append((meter.meter_id, last.current_reading if last else None, child))

        streams = await asyncio.gather(
            *(
                asyncio.to_thread(
                    self.generate, meter_id, start, end, config, last_value, child
                )
                for meter_id, last_value, child in jobs
            )
        )

        return {meter_id: readings for (meter_id, _, _), readings in zip(jobs, streams)}

    async def generate_for_all_active_meters(
        self,
        start: datetime,
        end: datetime,
        config: SimulationConfig,
    ) -> Dict[str, int]:
        """
        Generate and insert readings for every active meter.

        Returns:
            Dict[str, int]: Readings inserted per meter id.
        """
        _validate_range(start, end)
        meters = await self.meter_registry.list_meters(status=MeterStatus.ACTIVE)
        streams = await self.generate_for_meters(meters, start, end, config)

        counts: Dict[str, int] = {}
        for meter_id, readings in streams.items():
            counts[meter_id] = await self.insert_generated(readings)

        logger.info(
            "generation_complete",
            meters=len(counts),
            readings=sum(counts.values()),
            start=start.isoformat(),
            end=end.isoformat(),
        )
        return counts


def create_load_generator(
    reading_store: ReadingStore,
    meter_registry: MeterRegistry,
    seed: Optional[int] = None,
    tz: tzinfo = timezone.utc,
) -> LoadGenerator:
    """Factory function to create a LoadGenerator."""
    return LoadGenerator(reading_store, meter_registry, seed=seed, tz=tz)
