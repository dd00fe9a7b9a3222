"""
Detection engine.

Runs the reading rules concurrently for each incoming reading and turns
triggered results into alerts through the AlertManager. Each rule runs in
its own isolation boundary: an exception in one rule (including an
unavailable store) is logged and never prevents the others from completing.

Example:
    >>> engine = DetectionEngine(reading_store, alert_manager)
    >>> created = await engine.evaluate(reading, meter)
    >>> for alert in created:
    ...     print(alert.alert_type, alert.severity)
"""

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import Any, List, Optional, Sequence

import structlog

from meterwatch.detection.manager import CONFIGURED_WINDOW, AlertManager
from meterwatch.detection.rules import (
    BatteryCheck,
    CommunicationLossCheck,
    DetectionRule,
    default_rules,
)
from meterwatch.interfaces.stores import ReadingStore
from meterwatch.models.alerts import Alert, RuleResult
from meterwatch.models.meter import Meter
from meterwatch.models.reading import Reading

logger = structlog.get_logger(__name__)


class DetectionEngine:
    """
    Evaluates readings against the detection rules.

    Attributes:
        reading_store: History used by the rules.
        alert_manager: Creates and deduplicates alerts.
        rules: Reading rules evaluated on every reading.
        battery_check: Standalone low-battery check.
        communication_check: Standalone communication-loss check.
    """

    def __init__(
        self,
        reading_store: ReadingStore,
        alert_manager: AlertManager,
        rules: Optional[Sequence[DetectionRule]] = None,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.reading_store = reading_store
        self.alert_manager = alert_manager
        self.rules = list(rules) if rules is not None else default_rules(tz)
        self.battery_check = BatteryCheck()
        self.communication_check = CommunicationLossCheck()

        logger.info(
            "detection_engine_initialized",
            rules=[rule.name for rule in self.rules],
            timezone=str(tz),
        )

    async def evaluate(self, reading: Reading, meter: Meter) -> List[Alert]:
        """
        Run every reading rule for one reading.

        Args:
            reading: The reading just ingested (already persisted).
            meter: The meter it belongs to, with its configuration.

        Returns:
            List[Alert]: Alerts newly created by this evaluation.
        """
        outcomes = await asyncio.gather(
            *(self._run_rule(rule, reading, meter) for rule in self.rules)
        )
        return [alert for alert in outcomes if alert is not None]

    async def _run_rule(
        self,
        rule: DetectionRule,
        reading: Reading,
        meter: Meter,
    ) -> Optional[Alert]:
        try:
            result = await rule.evaluate(reading, meter, self.reading_store)
            return await self._raise(result, meter, reading.timestamp, CONFIGURED_WINDOW)
        except Exception as e:
            logger.error(
                "rule_failed",
                rule=rule.name,
                meter_id=meter.meter_id,
                reading_id=reading.reading_id,
                error=str(e),
            )
            return None

    async def check_battery(self, reading: Reading, meter: Meter) -> Optional[Alert]:
        """
        Run the low-battery check for one reading.

        Suppressed while any low_battery alert is active for the meter.
        """
        try:
            result = self.battery_check.evaluate(reading, meter)
            return await self._raise(result, meter, reading.timestamp, None)
        except Exception as e:
            logger.error(
                "rule_failed",
                rule=self.battery_check.name,
                meter_id=meter.meter_id,
                error=str(e),
            )
            return None

    async def check_communication(
        self,
        meter: Meter,
        now: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """
        Run the communication-loss check for one meter.

        Suppressed while any communication_loss alert is active for the meter.
        """
        now = now or datetime.now(timezone.utc)
        try:
            result = await self.communication_check.evaluate(
                meter, self.reading_store, now
            )
            return await self._raise(result, meter, now, None)
        except Exception as e:
            logger.error(
                "rule_failed",
                rule=self.communication_check.name,
                meter_id=meter.meter_id,
                error=str(e),
            )
            return None

    async def _raise(
        self,
        result: RuleResult,
        meter: Meter,
        timestamp: datetime,
        dedup_window: Any,
    ) -> Optional[Alert]:
        if not result.triggered:
            return None

        logger.info(
            "rule_triggered",
            rule=result.rule,
            meter_id=meter.meter_id,
            alert_type=result.alert_type.value if result.alert_type else None,
            severity=result.severity.value if result.severity else None,
        )

        return await self.alert_manager.raise_alert(
            meter_id=meter.meter_id,
            alert_type=result.alert_type,
            severity=result.severity,
            title=result.title or result.rule or "",
            description=result.description or "",
            metadata=result.metadata,
            timestamp=timestamp,
            dedup_window=dedup_window,
        )


def create_detection_engine(
    reading_store: ReadingStore,
    alert_manager: AlertManager,
    tz: tzinfo = timezone.utc,
) -> DetectionEngine:
    """Factory function to create a DetectionEngine with the default rules."""
    return DetectionEngine(reading_store, alert_manager, tz=tz)
