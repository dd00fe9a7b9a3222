"""
Anomaly detection for the monitoring system.

This module contains the detection rules, the engine that runs them, the
alert lifecycle manager, and notification dispatch.

Components:
    rules: Reading rules (continuous flow, daily consumption, flow pattern,
        night flow) and the battery and communication-loss checks
    engine: DetectionEngine for concurrent, isolated rule evaluation
    manager: AlertManager for alert lifecycle
    dispatcher: NotificationDispatcher for created alerts
    channels/: Alert notification channels (console, redis pub/sub)

Example:
    >>> from meterwatch.detection import (
    ...     AlertManager,
    ...     DetectionEngine,
    ...     NotificationDispatcher,
    ... )
    >>>
    >>> dispatcher = NotificationDispatcher()
    >>> manager = AlertManager(alert_store, registry, dispatcher)
    >>> engine = DetectionEngine(reading_store, manager)
    >>> created = await engine.evaluate(reading, meter)
"""

from meterwatch.detection.rules import (
    INSUFFICIENT_HISTORY,
    BatteryCheck,
    CommunicationLossCheck,
    ContinuousFlowRule,
    DailyConsumptionRule,
    DetectionRule,
    FlowPatternRule,
    NightFlowRule,
    default_rules,
    is_night,
)
from meterwatch.detection.dispatcher import (
    NotificationDispatcher,
    create_dispatcher,
)
from meterwatch.detection.manager import (
    CONFIGURED_WINDOW,
    DEFAULT_DEDUP_WINDOW_SECONDS,
    AlertManager,
    create_alert_manager,
)
from meterwatch.detection.engine import (
    DetectionEngine,
    create_detection_engine,
)

__all__ = [
    # Rules
    "DetectionRule",
    "ContinuousFlowRule",
    "DailyConsumptionRule",
    "FlowPatternRule",
    "NightFlowRule",
    "BatteryCheck",
    "CommunicationLossCheck",
    "default_rules",
    "is_night",
    "INSUFFICIENT_HISTORY",
    # Dispatcher
    "NotificationDispatcher",
    "create_dispatcher",
    # Manager
    "AlertManager",
    "create_alert_manager",
    "CONFIGURED_WINDOW",
    "DEFAULT_DEDUP_WINDOW_SECONDS",
    # Engine
    "DetectionEngine",
    "create_detection_engine",
]
