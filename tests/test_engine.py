"""Tests for the DetectionEngine."""

from datetime import timedelta

import pytest

from meterwatch.detection import DetectionEngine, DetectionRule
from meterwatch.models import AlertSeverity, AlertType, RuleResult

from tests.factories import STEP, T0, make_reading, make_series

NOON = T0 + timedelta(hours=12)


class ExplodingRule(DetectionRule):
    name = "exploding"

    async def evaluate(self, reading, meter, store):
        raise ConnectionError("store unavailable")


class AlwaysTamperRule(DetectionRule):
    name = "always_tamper"

    async def evaluate(self, reading, meter, store):
        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.TAMPER,
            severity=AlertSeverity.LOW,
            title="Tamper",
            description="test",
        )


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_failing_rule_does_not_block_others(self, reading_store, manager, meter):
        engine = DetectionEngine(
            reading_store, manager, rules=[ExplodingRule(), AlwaysTamperRule()]
        )

        created = await engine.evaluate(make_reading(at=NOON), meter)

        assert [a.alert_type for a in created] == [AlertType.TAMPER]

    @pytest.mark.asyncio
    async def test_continuous_flow_creates_one_alert(self, reading_store, engine, meter):
        series = make_series(8, end=NOON, flow=2.0)
        await reading_store.add_readings(series)

        created = await engine.evaluate(series[-1], meter)

        assert len(created) == 1
        assert created[0].alert_type == AlertType.LEAK
        assert created[0].severity == AlertSeverity.HIGH
        assert created[0].triggered_at == NOON

    @pytest.mark.asyncio
    async def test_repeat_detection_is_deduplicated(self, reading_store, engine, meter):
        series = make_series(9, end=NOON, flow=2.0)
        await reading_store.add_readings(series)

        first = await engine.evaluate(series[-2], meter)
        second = await engine.evaluate(series[-1], meter)

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_quiet_reading_creates_nothing(self, reading_store, engine, meter):
        reading = make_reading(at=NOON)
        await reading_store.add_reading(reading)

        assert await engine.evaluate(reading, meter) == []


class TestStandaloneChecks:
    @pytest.mark.asyncio
    async def test_battery_alert_escalates_while_active(self, engine, alert_store, meter):
        first = await engine.check_battery(make_reading(at=T0, battery=12.0), meter)
        later = await engine.check_battery(
            make_reading(at=T0 + timedelta(days=3), battery=8.0), meter
        )

        assert first is not None
        assert first.severity == AlertSeverity.HIGH
        assert later is None
        stored = await alert_store.get(first.alert_id)
        assert stored.severity == AlertSeverity.CRITICAL
        assert stored.escalated_at == T0 + timedelta(days=3)

    @pytest.mark.asyncio
    async def test_battery_alert_after_resolution(self, engine, manager, meter):
        first = await engine.check_battery(make_reading(at=T0, battery=12.0), meter)
        await manager.resolve_alert(first.alert_id)

        again = await engine.check_battery(make_reading(at=T0 + STEP, battery=12.0), meter)

        assert again is not None

    @pytest.mark.asyncio
    async def test_communication_loss(self, reading_store, engine, alert_store, meter):
        await reading_store.add_reading(make_reading(at=T0))

        alert = await engine.check_communication(meter, now=T0 + timedelta(hours=5))
        repeat = await engine.check_communication(meter, now=T0 + timedelta(hours=20))

        assert alert is not None
        assert alert.alert_type == AlertType.COMMUNICATION_LOSS
        assert alert.triggered_at == T0 + timedelta(hours=5)
        assert repeat is None
        assert (await alert_store.get(alert.alert_id)).severity == AlertSeverity.HIGH
