"""Tests for the reading ingestion pipeline."""

from datetime import timedelta

import pytest

from meterwatch.exceptions import MeterNotFoundError
from meterwatch.models import AlertSeverity, AlertType, DataQuality
from meterwatch.services import ReadingIngestor

from tests.factories import STEP, T0, make_reading


@pytest.fixture
def ingestor(reading_store, registry, engine):
    return ReadingIngestor(reading_store, registry, engine)


@pytest.mark.asyncio
async def test_unknown_meter_rejected(ingestor, reading_store):
    with pytest.raises(MeterNotFoundError):
        await ingestor.ingest(make_reading(meter_id="SM-404"))

    assert reading_store.count() == 0


@pytest.mark.asyncio
async def test_reading_persisted_with_consumption(ingestor, reading_store, registry):
    await ingestor.ingest(make_reading(at=T0, current=1000.0))
    await ingestor.ingest(make_reading(at=T0 + STEP, current=1003.5))

    latest = await reading_store.latest_reading("SM-001")
    meter = await registry.get_meter("SM-001")

    assert latest.consumption_since_last == 3.5
    assert meter.last_reading_at == T0 + STEP
    assert ingestor.ingested_count == 2


@pytest.mark.asyncio
async def test_counter_reset_recorded_as_invalid(ingestor, reading_store):
    await ingestor.ingest(make_reading(at=T0, current=1000.0))
    await ingestor.ingest(make_reading(at=T0 + STEP, current=10.0))

    latest = await reading_store.latest_reading("SM-001")

    assert latest.data_quality == DataQuality.INVALID
    assert latest.consumption_since_last == 0.0


@pytest.mark.asyncio
async def test_low_battery_creates_alert(ingestor):
    alerts = await ingestor.ingest(make_reading(at=T0, battery=9.0))

    assert [(a.alert_type, a.severity) for a in alerts] == [
        (AlertType.LOW_BATTERY, AlertSeverity.CRITICAL)
    ]


@pytest.mark.asyncio
async def test_sustained_flow_creates_leak_alert(ingestor):
    created = []
    for i in range(8):
        created.extend(
            await ingestor.ingest(
                make_reading(at=T0 + timedelta(hours=12) + STEP * i, current=1000.0 + i * 30, flow=2.0)
            )
        )

    assert [(a.alert_type, a.triggered_at) for a in created] == [
        (AlertType.LEAK, T0 + timedelta(hours=12) + STEP * 7)
    ]
