"""End-to-end runs: generate, ingest, detect, notify."""

from datetime import timedelta

import fakeredis
import pytest

from meterwatch.config import (
    AlertsConfig,
    AppConfig,
    ChannelConfig,
    FeaturesConfig,
    SimulationSettings,
    StorageConfig,
)
from meterwatch.models import AlertSeverity, AlertStatus, AlertType, MeterStatus
from meterwatch.services import SimulationService
from meterwatch.storage import RedisClient

from tests.conftest import RecordingObserver
from tests.factories import STEP, T0, make_meter

QUIET = SimulationSettings(seasonality=False, include_anomalies=False, seed=3, hours=48)


def make_config(**overrides) -> AppConfig:
    values = {
        "meters": [make_meter()],
        "alerts": AlertsConfig(),
        "simulation": QUIET,
    }
    values.update(overrides)
    return AppConfig(**values)


@pytest.mark.asyncio
async def test_normal_usage_raises_no_alerts():
    service = await SimulationService.from_config(make_config())

    summary = await service.run(T0, T0 + timedelta(hours=48))

    assert summary.meters == 1
    assert summary.readings == 193
    assert summary.alerts_created == 0
    assert (await service.alert_manager.statistics(now=T0)).total_active == 0


@pytest.mark.asyncio
async def test_injected_leak_raises_one_alert():
    service = await SimulationService.from_config(make_config())
    observer = RecordingObserver()
    service.alert_manager.add_observer("recorder", observer)

    start = T0 + timedelta(hours=7)
    readings = service.generator.generate(
        "SM-001",
        start,
        start + timedelta(hours=48),
        QUIET.to_simulation_config(),
        last_reading=100000.0,
    )
    # 09:00 through 11:45 at 5 L/min
    readings = [
        r.model_copy(update={"flow_rate": 5.0}) if 8 <= i <= 19 else r
        for i, r in enumerate(readings)
    ]

    created = []
    for reading in readings:
        created.extend(await service.ingestor.ingest(reading))
    await service.dispatcher.drain()

    assert len(created) == 1
    alert = created[0]
    assert alert.alert_type == AlertType.LEAK
    assert alert.severity == AlertSeverity.HIGH
    assert alert.triggered_at == start + STEP * 15
    assert alert.metadata["readings"] == 8

    stored = await service.alert_store.get(alert.alert_id)
    assert stored.notifications_sent == {"recorder": True}
    assert len(observer.received) == 1


@pytest.mark.asyncio
async def test_leak_seen_by_two_rules_is_one_escalated_alert():
    service = await SimulationService.from_config(make_config())
    observer = RecordingObserver()
    service.alert_manager.add_observer("recorder", observer)

    readings = service.generator.generate(
        "SM-001",
        T0,
        T0 + timedelta(hours=48),
        QUIET.to_simulation_config(),
        last_reading=100000.0,
    )
    # day 2, 09:00 through 11:45 at 5 L/min
    readings = [
        r.model_copy(update={"flow_rate": 5.0}) if 132 <= i <= 143 else r
        for i, r in enumerate(readings)
    ]

    created = []
    for reading in readings:
        created.extend(await service.ingestor.ingest(reading))
    await service.dispatcher.drain()

    assert len(created) == 1
    leaks = await service.alert_store.query(alert_type=AlertType.LEAK)
    assert len(leaks) == 1
    alert = leaks[0]
    assert alert.alert_id == created[0].alert_id
    assert alert.severity == AlertSeverity.HIGH
    assert alert.escalated_at is not None
    assert T0 + timedelta(hours=33) <= alert.triggered_at <= alert.escalated_at
    assert alert.escalated_at <= T0 + timedelta(hours=35, minutes=45)
    assert len(observer.received) == 1


@pytest.mark.asyncio
async def test_silent_meter_flagged_after_run():
    service = await SimulationService.from_config(make_config())
    end = T0 + timedelta(hours=6)
    await service.run(T0, end)

    meter = await service.meter_registry.get_meter("SM-001")
    alert = await service.engine.check_communication(meter, now=end + timedelta(hours=4))

    assert alert is not None
    assert alert.alert_type == AlertType.COMMUNICATION_LOSS
    assert alert.metadata["hoursOffline"] == 4


@pytest.mark.asyncio
async def test_inactive_meters_are_not_simulated():
    config = make_config(
        meters=[
            make_meter("SM-001"),
            make_meter("SM-002").model_copy(update={"status": MeterStatus.INACTIVE}),
        ]
    )
    service = await SimulationService.from_config(config)

    summary = await service.run(T0, T0 + timedelta(hours=1))

    assert summary.meters == 1
    assert summary.readings == 5


@pytest.mark.asyncio
async def test_redis_backend_run():
    config = make_config(
        alerts=AlertsConfig(channels={"redis": ChannelConfig(enabled=True)}),
        features=FeaturesConfig(storage=StorageConfig(backend="redis")),
    )
    client = RedisClient(client=fakeredis.FakeAsyncRedis(decode_responses=True))

    service = await SimulationService.from_config(config, redis_client=client)
    try:
        summary = await service.run(T0, T0 + timedelta(hours=6))

        assert service.dispatcher.get_observer_names() == ["redis"]
        assert summary.readings == 25
        latest = await client.latest_reading("SM-001")
        assert latest.timestamp == T0 + timedelta(hours=6)
        meter = await client.get_meter("SM-001")
        assert meter.last_reading_at == T0 + timedelta(hours=6)
        assert await client.query(status=AlertStatus.ACTIVE) == []
    finally:
        await client.flush_db()
        await service.close()
