"""Tests for readings, meters, and alerts."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from meterwatch.models import (
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
    DataQuality,
    MeterConfiguration,
    derive_consumption,
)

from tests.factories import T0, make_alert, make_meter, make_reading


class TestReading:
    def test_naive_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            make_reading(at=datetime(2024, 1, 1, 12, 0))

    def test_timestamp_normalised_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        reading = make_reading(at=datetime(2024, 1, 1, 14, 0, tzinfo=plus_two))

        assert reading.timestamp == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert reading.timestamp.utcoffset() == timedelta(0)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("battery", 101.0),
            ("flow", -0.1),
            ("current", -1.0),
        ],
    )
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            make_reading(**{field: value})

    def test_missing_flow_counts_as_zero(self):
        assert make_reading(flow=None).flow == 0.0

    def test_readings_are_immutable(self):
        reading = make_reading()
        with pytest.raises(ValidationError):
            reading.flow_rate = 3.0


class TestDeriveConsumption:
    def test_first_reading_unchanged(self):
        reading = make_reading()
        assert derive_consumption(None, reading) is reading

    def test_consumption_is_counter_delta(self):
        previous = make_reading(current=1000.0)
        reading = make_reading(at=T0 + timedelta(minutes=15), current=1012.5)

        derived = derive_consumption(previous, reading)

        assert derived.consumption_since_last == 12.5
        assert derived.data_quality == DataQuality.GOOD

    def test_decrease_marks_reset(self):
        previous = make_reading(current=1000.0)
        reading = make_reading(at=T0 + timedelta(minutes=15), current=5.0)

        derived = derive_consumption(previous, reading)

        assert derived.consumption_since_last == 0.0
        assert derived.data_quality == DataQuality.INVALID
        assert derived.metadata["meter_reset"] is True


class TestMeter:
    def test_configuration_defaults(self):
        config = MeterConfiguration()

        assert config.leak_threshold_lpm == 1.0
        assert config.high_consumption_threshold_ld == 500.0
        assert config.low_battery_threshold == 20.0
        assert config.transmission_interval_minutes == 60

    def test_leak_threshold_lower_bound(self):
        with pytest.raises(ValidationError):
            MeterConfiguration(leak_threshold_lpm=0.05)

    def test_battery_threshold_bounds(self):
        with pytest.raises(ValidationError):
            MeterConfiguration(low_battery_threshold=60)

    def test_summary(self):
        summary = make_meter().summary()

        assert summary.meter_id == "SM-001"
        assert summary.owner_id == "member-001"
        assert summary.location_description == "Kitchen"


class TestAlert:
    def test_severity_ordering(self):
        ranks = [s.rank for s in (AlertSeverity.LOW, AlertSeverity.MEDIUM,
                                  AlertSeverity.HIGH, AlertSeverity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert AlertSeverity.CRITICAL.is_critical
        assert not AlertSeverity.HIGH.is_critical

    def test_active_alert_cannot_have_resolved_at(self):
        with pytest.raises(ValidationError):
            Alert(
                meter_id="SM-001",
                alert_type=AlertType.LEAK,
                severity=AlertSeverity.HIGH,
                title="x",
                triggered_at=T0,
                resolved_at=T0,
            )

    def test_closed_alert_requires_resolved_at(self):
        with pytest.raises(ValidationError):
            Alert(
                meter_id="SM-001",
                alert_type=AlertType.LEAK,
                severity=AlertSeverity.HIGH,
                title="x",
                triggered_at=T0,
                status=AlertStatus.RESOLVED,
            )

    def test_close(self):
        alert = make_alert()
        closed = alert.close(
            AlertStatus.RESOLVED,
            resolved_by="ops",
            notes="fixed",
            timestamp=T0 + timedelta(hours=1),
        )

        assert alert.is_active
        assert not closed.is_active
        assert closed.resolved_by == "ops"
        assert closed.resolution_notes == "fixed"
        assert closed.duration_seconds == 3600

    def test_close_twice_fails(self):
        closed = make_alert().close(AlertStatus.FALSE_POSITIVE)
        with pytest.raises(ValueError):
            closed.close(AlertStatus.RESOLVED)

    def test_close_into_active_fails(self):
        with pytest.raises(ValueError):
            make_alert().close(AlertStatus.ACTIVE)

    def test_escalate(self):
        alert = make_alert(severity=AlertSeverity.MEDIUM)
        raised = alert.escalate(
            AlertSeverity.HIGH, "Continuous flow", "flow", timestamp=T0 + timedelta(hours=1)
        )

        assert raised.alert_id == alert.alert_id
        assert raised.severity == AlertSeverity.HIGH
        assert raised.title == "Continuous flow"
        assert raised.triggered_at == T0
        assert raised.last_raised_at == T0 + timedelta(hours=1)
        assert alert.last_raised_at == T0

    @pytest.mark.parametrize("severity", [AlertSeverity.LOW, AlertSeverity.HIGH])
    def test_escalate_requires_higher_severity(self, severity):
        with pytest.raises(ValueError):
            make_alert(severity=AlertSeverity.HIGH).escalate(severity, "x", "x")

    def test_escalate_closed_fails(self):
        closed = make_alert(severity=AlertSeverity.LOW).close(AlertStatus.RESOLVED)
        with pytest.raises(ValueError):
            closed.escalate(AlertSeverity.CRITICAL, "x", "x")

    def test_with_notifications_merges(self):
        alert = make_alert().with_notifications({"console": True})
        alert = alert.with_notifications({"redis": False})

        assert alert.notifications_sent == {"console": True, "redis": False}
