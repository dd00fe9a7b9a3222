"""
Anomaly detection rules.

Each rule is a stateless evaluator that looks at one incoming reading, the
meter's configuration, and the meter's reading history, and returns a
RuleResult. Rules never create alerts themselves; the DetectionEngine hands
triggered results to the AlertManager.

Every time window is anchored on the reading's own timestamp, so replaying a
historical or generated stream behaves exactly like live ingestion.

Rules:
    ContinuousFlowRule: Sustained flow above the leak threshold (rule A)
    DailyConsumptionRule: Daily volume far above the weekly baseline (rule B)
    FlowPatternRule: Flow more than 3 sigma above the 24h mean (rule C)
    NightFlowRule: Sustained flow during the night window (rule D)
    BatteryCheck: Battery at or below the configured threshold
    CommunicationLossCheck: No reading for 3 transmission intervals

Example:
    >>> rule = ContinuousFlowRule()
    >>> result = await rule.evaluate(reading, meter, reading_store)
    >>> if result.triggered:
    ...     print(result.title, result.metadata)
"""

import math
import statistics
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Optional

import structlog

from meterwatch.interfaces.stores import ReadingStore
from meterwatch.models.alerts import AlertSeverity, AlertType, RuleResult
from meterwatch.models.meter import Meter
from meterwatch.models.reading import Reading

logger = structlog.get_logger(__name__)

INSUFFICIENT_HISTORY = "insufficient_history"

# Rule A
CONTINUOUS_FLOW_WINDOW = timedelta(hours=2)
CONTINUOUS_FLOW_LIMIT = 10
CONTINUOUS_FLOW_MIN_READINGS = 8
READING_SPACING_MINUTES = 15

# Rule B
BASELINE_START = timedelta(days=14)
BASELINE_END = timedelta(days=7)
BASELINE_MULTIPLIER = 2.0

# Rule C
FLOW_PATTERN_WINDOW = timedelta(hours=24)
FLOW_PATTERN_LIMIT = 96
FLOW_PATTERN_MIN_SAMPLES = 48
FLOW_PATTERN_SIGMAS = 3.0

# Rule D
NIGHT_START = time(23, 0)
NIGHT_END = time(6, 0)
NIGHT_WINDOW = timedelta(hours=4)
NIGHT_MIN_READINGS = 6
NIGHT_FLOW_FACTOR = 0.5

# Communication loss
MISSED_TRANSMISSIONS = 3


def is_night(local: datetime) -> bool:
    """
    Check if a local time falls in the night window.

    The window is inclusive at both ends: 23:00 and 06:00 are night, 22:59
    and 06:01 are not.
    """
    t = local.time()
    return t >= NIGHT_START or t <= NIGHT_END


def local_midnight(ts: datetime, tz: tzinfo) -> datetime:
    """Start of the local calendar day containing ts, as a UTC instant."""
    local = ts.astimezone(tz)
    midnight = datetime.combine(local.date(), time(0, 0), tzinfo=tz)
    return midnight.astimezone(timezone.utc)


class DetectionRule:
    """
    Base class for the reading rules.

    Attributes:
        name: Rule identifier used in logs and results.
        tz: Timezone used for hour-of-day and calendar-day decisions.
    """

    name: str = "rule"

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz

    async def evaluate(
        self,
        reading: Reading,
        meter: Meter,
        store: ReadingStore,
    ) -> RuleResult:
        raise NotImplementedError

    def _not_met(self, message: str) -> RuleResult:
        return RuleResult(triggered=False, rule=self.name, message=message)

    def _skipped(self, reason: str, message: str) -> RuleResult:
        logger.debug(
            "rule_skipped",
            rule=self.name,
            reason=reason,
        )
        return RuleResult(
            triggered=False,
            rule=self.name,
            skip_reason=reason,
            message=message,
        )


class ContinuousFlowRule(DetectionRule):
    """
    Rule A: continuous flow leak.

    Fires when at least 8 of the newest readings in the last two hours have
    flow above the leak threshold and their mean flow also exceeds it.
    """

    name = "continuous_flow"

    async def evaluate(
        self,
        reading: Reading,
        meter: Meter,
        store: ReadingStore,
    ) -> RuleResult:
        threshold = meter.configuration.leak_threshold_lpm

        if reading.flow <= threshold:
            return self._not_met(f"Flow {reading.flow:.2f} <= {threshold}")

        above = await store.readings_matching(
            meter.meter_id,
            reading.timestamp - CONTINUOUS_FLOW_WINDOW,
            reading.timestamp,
            predicate=lambda flow: flow is not None and flow > threshold,
            limit=CONTINUOUS_FLOW_LIMIT,
            newest_first=True,
        )

        if len(above) < CONTINUOUS_FLOW_MIN_READINGS:
            return self._not_met(
                f"Only {len(above)} readings above threshold in the last 2h"
            )

        avg_flow = statistics.fmean(r.flow for r in above)
        if avg_flow <= threshold:
            return self._not_met(f"Average flow {avg_flow:.2f} <= {threshold}")

        duration = len(above) * READING_SPACING_MINUTES
        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.LEAK,
            severity=AlertSeverity.HIGH,
            title="Possible leak detected",
            description=(
                f"Continuous flow detected: {avg_flow:.2f} L/min "
                f"for {duration} minutes"
            ),
            metadata={
                "avgFlowRate": avg_flow,
                "duration": duration,
                "threshold": threshold,
                "readings": len(above),
            },
        )


class DailyConsumptionRule(DetectionRule):
    """
    Rule B: abnormal daily consumption.

    Compares today's volume (since local midnight) with the range of the
    cumulative counter over the same week one week earlier. When that
    earlier week has no readings there is no baseline and the rule does not
    fire.
    """

    name = "daily_consumption"

    async def evaluate(
        self,
        reading: Reading,
        meter: Meter,
        store: ReadingStore,
    ) -> RuleResult:
        t = reading.timestamp
        today = await store.readings_in_window(
            meter.meter_id, local_midnight(t, self.tz), t
        )

        if len(today) < 2:
            return self._skipped(
                INSUFFICIENT_HISTORY,
                f"{len(today)} readings since local midnight",
            )

        daily = today[-1].current_reading - today[0].current_reading
        threshold = meter.configuration.high_consumption_threshold_ld

        if daily <= threshold:
            return self._not_met(f"Daily consumption {daily:.0f} <= {threshold}")

        baseline_readings = await store.readings_in_window(
            meter.meter_id, t - BASELINE_START, t - BASELINE_END
        )
        # Half-open window: drop readings exactly at t - 7d.
        baseline_readings = [
            r for r in baseline_readings if r.timestamp < t - BASELINE_END
        ]

        if not baseline_readings:
            return self._not_met("No baseline readings for the previous week")

        values = [r.current_reading for r in baseline_readings]
        weekly = max(values) - min(values)

        if daily <= BASELINE_MULTIPLIER * weekly:
            return self._not_met(
                f"Daily consumption {daily:.0f} <= 2x baseline {weekly:.0f}"
            )

        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.HIGH_CONSUMPTION,
            severity=AlertSeverity.MEDIUM,
            title="Abnormal consumption detected",
            description=(
                f"Daily consumption {daily:.0f}L significantly exceeds "
                f"the weekly average of {weekly:.0f}L"
            ),
            metadata={
                "dailyConsumption": daily,
                "weeklyAverage": weekly,
                "threshold": threshold,
            },
        )


class FlowPatternRule(DetectionRule):
    """
    Rule C: statistical flow-pattern anomaly.

    Needs at least 48 of the newest 96 readings in the last 24 hours. Missing
    flow rates count as zero; sigma is the population standard deviation.
    """

    name = "flow_pattern"

    async def evaluate(
        self,
        reading: Reading,
        meter: Meter,
        store: ReadingStore,
    ) -> RuleResult:
        if reading.flow_rate is None:
            return self._skipped("no_flow_rate", "Reading has no flow rate")

        history = await store.readings_in_window(
            meter.meter_id,
            reading.timestamp - FLOW_PATTERN_WINDOW,
            reading.timestamp,
            limit=FLOW_PATTERN_LIMIT,
            newest_first=True,
        )

        if len(history) < FLOW_PATTERN_MIN_SAMPLES:
            return self._skipped(
                INSUFFICIENT_HISTORY,
                f"{len(history)} of {FLOW_PATTERN_MIN_SAMPLES} samples in the last 24h",
            )

        flows = [r.flow for r in history]
        mean = statistics.fmean(flows)
        std = statistics.pstdev(flows, mu=mean)
        upper = mean + FLOW_PATTERN_SIGMAS * std
        threshold = meter.configuration.leak_threshold_lpm

        if reading.flow_rate <= upper or reading.flow_rate <= threshold:
            return self._not_met(
                f"Flow {reading.flow_rate:.2f} within {mean:.2f} + 3*{std:.2f}"
            )

        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.LEAK,
            severity=AlertSeverity.MEDIUM,
            title="Flow pattern anomaly",
            description=(
                f"Anomalous flow detected: {reading.flow_rate:.2f} L/min "
                f"(mean: {mean:.2f} ± {std:.2f})"
            ),
            metadata={
                "currentFlow": reading.flow_rate,
                "averageFlow": mean,
                "standardDeviation": std,
                "threshold": upper,
            },
        )


class NightFlowRule(DetectionRule):
    """
    Rule D: night-time sustained flow.

    Only readings whose local time is in 23:00-06:00 are considered, both
    for the incoming reading and for the 4-hour lookback.
    """

    name = "night_flow"

    async def evaluate(
        self,
        reading: Reading,
        meter: Meter,
        store: ReadingStore,
    ) -> RuleResult:
        if not is_night(reading.timestamp.astimezone(self.tz)):
            return self._not_met("Outside night window")

        floor = meter.configuration.leak_threshold_lpm * NIGHT_FLOW_FACTOR
        if reading.flow <= floor:
            return self._not_met(f"Flow {reading.flow:.2f} <= {floor}")

        candidates = await store.readings_matching(
            meter.meter_id,
            reading.timestamp - NIGHT_WINDOW,
            reading.timestamp,
            predicate=lambda flow: flow is not None and flow > floor,
        )
        night = [r for r in candidates if is_night(r.timestamp.astimezone(self.tz))]

        if len(night) < NIGHT_MIN_READINGS:
            return self._not_met(f"Only {len(night)} night readings above {floor}")

        avg_night_flow = statistics.fmean(r.flow for r in night)
        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.LEAK,
            severity=AlertSeverity.HIGH,
            title="Night-time flow detected",
            description=(
                f"Continuous flow during night hours: {avg_night_flow:.2f} L/min"
            ),
            metadata={
                "avgNightFlow": avg_night_flow,
                "nightReadingsCount": len(night),
                "timeRange": "23:00-06:00",
            },
        )


class BatteryCheck:
    """Low battery check, run once per ingested reading."""

    name = "battery"

    def evaluate(self, reading: Reading, meter: Meter) -> RuleResult:
        level = reading.battery_level
        if level is None:
            return RuleResult(
                triggered=False,
                rule=self.name,
                skip_reason="no_battery_level",
                message="Reading has no battery level",
            )

        threshold = meter.configuration.low_battery_threshold
        if level > threshold:
            return RuleResult(
                triggered=False,
                rule=self.name,
                message=f"Battery {level}% > {threshold}%",
            )

        if level <= 10:
            severity = AlertSeverity.CRITICAL
        elif level <= 15:
            severity = AlertSeverity.HIGH
        else:
            severity = AlertSeverity.MEDIUM

        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.LOW_BATTERY,
            severity=severity,
            title="Low battery detected",
            description=f"Battery level: {level}%",
            metadata={"batteryLevel": level, "threshold": threshold},
        )


class CommunicationLossCheck:
    """
    Communication loss check, run periodically per meter.

    Fires when the latest stored reading is older than three transmission
    intervals at the reference time.
    """

    name = "communication_loss"

    async def evaluate(
        self,
        meter: Meter,
        store: ReadingStore,
        now: Optional[datetime] = None,
    ) -> RuleResult:
        now = now or datetime.now(timezone.utc)
        last = await store.latest_reading(meter.meter_id)

        if last is None:
            return RuleResult(
                triggered=False,
                rule=self.name,
                skip_reason="no_readings",
                message="Meter has no readings",
            )

        interval = meter.configuration.transmission_interval_minutes
        elapsed = now - last.timestamp
        if elapsed <= timedelta(minutes=MISSED_TRANSMISSIONS * interval):
            return RuleResult(
                triggered=False,
                rule=self.name,
                message=f"Last reading {elapsed} ago",
            )

        hours_offline = math.floor(elapsed.total_seconds() / 3600)
        return RuleResult(
            triggered=True,
            rule=self.name,
            alert_type=AlertType.COMMUNICATION_LOSS,
            severity=AlertSeverity.HIGH if hours_offline > 12 else AlertSeverity.MEDIUM,
            title="Communication loss",
            description=f"No communication for {hours_offline} hours",
            metadata={
                "lastReadingTime": last.timestamp.isoformat(),
                "hoursOffline": hours_offline,
                "expectedInterval": interval,
            },
        )


def default_rules(tz: tzinfo = timezone.utc) -> list[DetectionRule]:
    """The four reading rules, in evaluation order."""
    return [
        ContinuousFlowRule(tz),
        DailyConsumptionRule(tz),
        FlowPatternRule(tz),
        NightFlowRule(tz),
    ]
