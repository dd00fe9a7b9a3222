"""Tests for the AlertManager lifecycle and administrative queries."""

import asyncio
from datetime import timedelta

import pytest

from meterwatch.exceptions import AlertNotFoundError, UpstreamUnavailableError
from meterwatch.models import AlertFilters, AlertSeverity, AlertStatus, AlertType
from meterwatch.models.meter import MeterSummary
from meterwatch.storage import InMemoryMeterRegistry

from tests.conftest import FailingObserver, RecordingObserver
from tests.factories import T0


class UnavailableRegistry(InMemoryMeterRegistry):
    async def get_meter(self, meter_id):
        raise UpstreamUnavailableError("registry down")


async def raise_leak(manager, at=T0, meter_id="SM-001", severity=AlertSeverity.HIGH,
                     alert_type=AlertType.LEAK):
    return await manager.raise_alert(
        meter_id=meter_id,
        alert_type=alert_type,
        severity=severity,
        title="Possible leak detected",
        description="test",
        metadata={"readings": 8},
        timestamp=at,
    )


class TestRaiseAlert:
    @pytest.mark.asyncio
    async def test_creates_active_alert(self, manager, alert_store):
        alert = await raise_leak(manager)

        assert alert is not None
        assert alert.is_active
        assert alert.triggered_at == T0
        assert alert.metadata == {"readings": 8}
        assert await alert_store.get(alert.alert_id) is not None

    @pytest.mark.asyncio
    async def test_duplicate_within_window_suppressed(self, manager):
        first = await raise_leak(manager)
        second = await raise_leak(manager, at=T0 + timedelta(minutes=90))

        assert first is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_new_alert_after_window(self, manager):
        await raise_leak(manager)
        later = await raise_leak(manager, at=T0 + timedelta(hours=2, minutes=1))

        assert later is not None

    @pytest.mark.asyncio
    async def test_other_meter_or_type_not_deduplicated(self, manager):
        await raise_leak(manager)

        assert await raise_leak(manager, meter_id="SM-002") is not None
        assert await raise_leak(manager, alert_type=AlertType.TAMPER) is not None

    @pytest.mark.asyncio
    async def test_resolved_alert_does_not_suppress(self, manager):
        first = await raise_leak(manager)
        await manager.resolve_alert(first.alert_id)

        assert await raise_leak(manager, at=T0 + timedelta(minutes=15)) is not None

    @pytest.mark.asyncio
    async def test_concurrent_detections_create_one_alert(self, manager, alert_store):
        results = await asyncio.gather(*(raise_leak(manager) for _ in range(10)))

        assert sum(1 for r in results if r is not None) == 1
        assert len(await alert_store.query(status=AlertStatus.ACTIVE)) == 1

    @pytest.mark.asyncio
    async def test_unbounded_window(self, manager):
        await raise_leak(manager)
        later = await manager.raise_alert(
            meter_id="SM-001",
            alert_type=AlertType.LEAK,
            severity=AlertSeverity.HIGH,
            title="x",
            description="x",
            timestamp=T0 + timedelta(days=30),
            dedup_window=None,
        )

        assert later is None


class TestEscalation:
    @pytest.mark.asyncio
    async def test_more_severe_duplicate_escalates(self, manager, alert_store):
        first = await raise_leak(manager, severity=AlertSeverity.MEDIUM)
        at = T0 + timedelta(hours=1, minutes=45)
        second = await manager.raise_alert(
            meter_id="SM-001",
            alert_type=AlertType.LEAK,
            severity=AlertSeverity.HIGH,
            title="Continuous flow",
            description="flow for 120 minutes",
            metadata={"minutes": 120},
            timestamp=at,
        )

        assert second is None
        stored = await alert_store.get(first.alert_id)
        assert stored.severity == AlertSeverity.HIGH
        assert stored.title == "Continuous flow"
        assert stored.triggered_at == T0
        assert stored.escalated_at == at
        assert stored.metadata == {"readings": 8}
        assert len(await alert_store.query(status=AlertStatus.ACTIVE)) == 1

    @pytest.mark.asyncio
    async def test_window_restarts_at_escalation(self, manager, alert_store):
        await raise_leak(manager, severity=AlertSeverity.MEDIUM)
        await raise_leak(manager, at=T0 + timedelta(hours=1, minutes=45))

        assert await raise_leak(manager, at=T0 + timedelta(hours=3, minutes=15)) is None
        assert len(await alert_store.query(alert_type=AlertType.LEAK)) == 1

        later = await raise_leak(manager, at=T0 + timedelta(hours=3, minutes=50))
        assert later is not None

    @pytest.mark.asyncio
    async def test_equal_or_lower_severity_does_not_escalate(self, manager, alert_store):
        first = await raise_leak(manager)
        await raise_leak(manager, at=T0 + timedelta(minutes=30))
        await raise_leak(manager, at=T0 + timedelta(minutes=45), severity=AlertSeverity.LOW)

        stored = await alert_store.get(first.alert_id)
        assert stored.severity == AlertSeverity.HIGH
        assert stored.escalated_at is None

    @pytest.mark.asyncio
    async def test_escalation_sends_no_second_notification(self, manager, dispatcher):
        ok = RecordingObserver()
        manager.add_observer("ok", ok)

        await raise_leak(manager, severity=AlertSeverity.MEDIUM)
        await raise_leak(manager, at=T0 + timedelta(minutes=30))
        await dispatcher.drain()

        assert len(ok.received) == 1
        assert ok.received[0][0].severity == AlertSeverity.MEDIUM


class TestLocks:
    @pytest.mark.asyncio
    async def test_no_locks_left_after_raise_and_resolve(self, manager):
        alert = await raise_leak(manager)
        await raise_leak(manager, meter_id="SM-002")
        await manager.resolve_alert(alert.alert_id)

        assert manager.get_lock_count() == 0

    @pytest.mark.asyncio
    async def test_no_locks_left_after_concurrent_raises(self, manager, dispatcher):
        manager.add_observer("ok", RecordingObserver())

        await asyncio.gather(
            *(raise_leak(manager, meter_id=f"SM-{i:03d}") for i in range(20)),
            *(raise_leak(manager) for _ in range(5)),
        )
        await dispatcher.drain()

        assert manager.get_lock_count() == 0


class TestNotifications:
    @pytest.mark.asyncio
    async def test_results_recorded_on_alert(self, manager, dispatcher, alert_store):
        ok = RecordingObserver()
        manager.add_observer("ok", ok)
        manager.add_observer("bad", FailingObserver())

        alert = await raise_leak(manager)
        await dispatcher.drain()

        stored = await alert_store.get(alert.alert_id)
        assert stored.notifications_sent == {"ok": True, "bad": False}
        received_alert, summary = ok.received[0]
        assert received_alert.alert_id == alert.alert_id
        assert summary.owner_id == "member-001"

    @pytest.mark.asyncio
    async def test_registry_failure_falls_back_to_meter_id(self, alert_store, meter, dispatcher):
        from meterwatch.detection import AlertManager

        ok = RecordingObserver()
        manager = AlertManager(alert_store, UnavailableRegistry([meter]), dispatcher)
        manager.add_observer("ok", ok)

        alert = await raise_leak(manager)
        await dispatcher.drain()

        assert alert is not None
        assert ok.received[0][1] == MeterSummary(meter_id="SM-001")
        stored = await alert_store.get(alert.alert_id)
        assert stored.notifications_sent == {"ok": True}

    @pytest.mark.asyncio
    async def test_one_notification_per_alert(self, manager, dispatcher):
        ok = RecordingObserver()
        manager.add_observer("ok", ok)

        await asyncio.gather(*(raise_leak(manager) for _ in range(5)))
        await dispatcher.drain()

        assert len(ok.received) == 1

    @pytest.mark.asyncio
    async def test_notify_disabled(self, alert_store, registry, dispatcher):
        from meterwatch.detection import AlertManager

        ok = RecordingObserver()
        dispatcher.add_observer("ok", ok)
        manager = AlertManager(alert_store, registry, dispatcher, notify_on_create=False)

        await raise_leak(manager)
        await dispatcher.drain()

        assert ok.received == []


class TestResolution:
    @pytest.mark.asyncio
    async def test_resolve(self, manager):
        alert = await raise_leak(manager)

        resolved = await manager.resolve_alert(
            alert.alert_id,
            resolved_by="ops",
            notes="valve replaced",
            timestamp=T0 + timedelta(hours=1),
        )

        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolved_at == T0 + timedelta(hours=1)
        assert resolved.resolved_by == "ops"
        assert resolved.resolution_notes == "valve replaced"

    @pytest.mark.asyncio
    async def test_resolve_twice_fails(self, manager):
        alert = await raise_leak(manager)
        await manager.resolve_alert(alert.alert_id)

        with pytest.raises(AlertNotFoundError):
            await manager.resolve_alert(alert.alert_id)

    @pytest.mark.asyncio
    async def test_resolve_unknown_fails(self, manager):
        with pytest.raises(AlertNotFoundError):
            await manager.resolve_alert("missing")

    @pytest.mark.asyncio
    async def test_mark_false_positive(self, manager):
        alert = await raise_leak(manager)

        closed = await manager.mark_false_positive(alert.alert_id, resolved_by="ops")

        assert closed.status == AlertStatus.FALSE_POSITIVE
        assert closed.resolved_at is not None
        with pytest.raises(AlertNotFoundError):
            await manager.resolve_alert(alert.alert_id)

    @pytest.mark.asyncio
    async def test_bulk_resolve_counts_only_active(self, manager):
        active = await raise_leak(manager)
        done = await raise_leak(manager, meter_id="SM-002")
        await manager.resolve_alert(done.alert_id)

        result = await manager.bulk_resolve([active.alert_id, done.alert_id], resolved_by="ops")

        assert result.resolved == 1
        assert result.total == 2

    @pytest.mark.asyncio
    async def test_bulk_resolve_empty(self, manager):
        with pytest.raises(ValueError):
            await manager.bulk_resolve([])


class TestQueries:
    async def _populate(self, manager):
        alerts = []
        for i in range(5):
            alerts.append(await raise_leak(manager, at=T0 + timedelta(hours=3 * i)))
        alerts.append(
            await raise_leak(
                manager,
                meter_id="SM-002",
                alert_type=AlertType.LOW_BATTERY,
                severity=AlertSeverity.CRITICAL,
                at=T0 + timedelta(hours=1),
            )
        )
        return alerts

    @pytest.mark.asyncio
    async def test_list_alerts_paginates_newest_first(self, manager):
        alerts = await self._populate(manager)

        page = await manager.list_alerts(page=1, limit=4)
        last = await manager.list_alerts(page=2, limit=4)

        assert page.pagination.total == 6
        assert page.pagination.pages == 2
        assert page.alerts[0].alert_id == alerts[4].alert_id
        assert len(last.alerts) == 2
        triggered = [a.triggered_at for a in page.alerts + last.alerts]
        assert triggered == sorted(triggered, reverse=True)

    @pytest.mark.asyncio
    async def test_list_alerts_filters(self, manager):
        await self._populate(manager)

        by_owner = await manager.list_alerts(AlertFilters(owner_id="member-002"))
        by_type = await manager.list_alerts(AlertFilters(alert_type=AlertType.LEAK))
        unknown_owner = await manager.list_alerts(AlertFilters(owner_id="nobody"))
        mismatch = await manager.list_alerts(
            AlertFilters(owner_id="member-002", meter_id="SM-001")
        )

        assert [a.meter_id for a in by_owner.alerts] == ["SM-002"]
        assert by_type.pagination.total == 5
        assert unknown_owner.pagination.total == 0
        assert mismatch.pagination.total == 0

    @pytest.mark.asyncio
    async def test_list_alerts_invalid_page(self, manager):
        with pytest.raises(ValueError):
            await manager.list_alerts(page=0)

    @pytest.mark.asyncio
    async def test_active_alerts_most_severe_first(self, manager):
        alerts = await self._populate(manager)
        await manager.resolve_alert(alerts[0].alert_id)

        view = await manager.active_alerts()

        assert view.total == 5
        assert view.critical == 1
        assert view.alerts[0].alert_type == AlertType.LOW_BATTERY
        assert view.alerts[1].alert_id == alerts[4].alert_id
        assert [(s.alert_type, s.count) for s in view.by_type] == [
            (AlertType.LEAK, 4),
            (AlertType.LOW_BATTERY, 1),
        ]

    @pytest.mark.asyncio
    async def test_active_alerts_by_owner(self, manager):
        await self._populate(manager)

        view = await manager.active_alerts(owner_id="member-002")

        assert view.total == 1

    @pytest.mark.asyncio
    async def test_statistics(self, manager):
        alerts = await self._populate(manager)
        await manager.resolve_alert(alerts[0].alert_id)
        await manager.mark_false_positive(alerts[1].alert_id)

        stats = await manager.statistics(now=T0 + timedelta(days=1))

        assert stats.total_active == 4
        assert stats.total_critical == 1
        assert stats.by_status == {
            AlertStatus.ACTIVE: 4,
            AlertStatus.RESOLVED: 1,
            AlertStatus.FALSE_POSITIVE: 1,
        }
        assert stats.by_severity[AlertSeverity.LOW] == 0
        assert stats.by_severity[AlertSeverity.HIGH] == 3
        assert stats.by_type[AlertType.LEAK].count == 5
        assert stats.by_type[AlertType.LEAK].active_count == 3
        assert len(stats.trend) == 1
        assert stats.trend[0].day == T0.date()
        assert stats.trend[0].count == 6
        assert stats.trend[0].critical_count == 1

    @pytest.mark.asyncio
    async def test_statistics_trend_window(self, manager):
        await self._populate(manager)

        stats = await manager.statistics(now=T0 + timedelta(days=45))

        assert stats.trend == []
