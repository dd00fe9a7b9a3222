"""
Shared Pydantic data models for the monitoring system.

This module exports all data models used throughout the system.

Modules:
    meter: Meter records and per-device detection thresholds
    reading: Timestamped meter readings and consumption derivation
    alerts: Alert instances, rule results, and query views

Example:
    >>> from meterwatch.models import Reading, Meter, MeterConfiguration
    >>> from meterwatch.models import Alert, AlertType, AlertSeverity
"""

# Meter models
from meterwatch.models.meter import (
    CommunicationType,
    Meter,
    MeterConfiguration,
    MeterStatus,
    MeterSummary,
    TamperSensitivity,
)

# Reading models
from meterwatch.models.reading import (
    DataQuality,
    Reading,
    derive_consumption,
)

# Alert models
from meterwatch.models.alerts import (
    ActiveAlertsView,
    Alert,
    AlertFilters,
    AlertPage,
    AlertSeverity,
    AlertStatistics,
    AlertStatus,
    AlertType,
    AlertTypeSummary,
    BulkResolveResult,
    DailyTrend,
    Pagination,
    RuleResult,
    TypeCount,
)

__all__ = [
    # Meter
    "TamperSensitivity",
    "MeterStatus",
    "CommunicationType",
    "MeterConfiguration",
    "MeterSummary",
    "Meter",
    # Reading
    "DataQuality",
    "Reading",
    "derive_consumption",
    # Alerts
    "AlertType",
    "AlertSeverity",
    "AlertStatus",
    "RuleResult",
    "Alert",
    "AlertFilters",
    "Pagination",
    "AlertPage",
    "AlertTypeSummary",
    "ActiveAlertsView",
    "TypeCount",
    "DailyTrend",
    "AlertStatistics",
    "BulkResolveResult",
]
