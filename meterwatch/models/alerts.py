"""
Alert data models for the monitoring system.

This module defines alert-related structures including the alert instance
and its lifecycle, rule evaluation results, and the views returned by the
administrative queries of the alert manager.

Models:
    AlertType: Kinds of condition an alert can describe
    AlertSeverity: Severity levels (low, medium, high, critical)
    AlertStatus: Lifecycle status (active, resolved, false_positive)
    RuleResult: Result of a single detection rule
    Alert: Active or historical alert instance
    AlertFilters: Filters accepted by the alert listing
    Pagination: Page metadata for listings
    AlertPage: One page of alerts
    AlertTypeSummary: Per-type counts for the active view
    ActiveAlertsView: Active alerts with a summary
    TypeCount: Per-type counts for statistics
    DailyTrend: One day of the 30-day trend
    AlertStatistics: Aggregated counts
    BulkResolveResult: Outcome of a bulk resolve
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class AlertType(str, Enum):
    """Kinds of condition an alert can describe."""

    LEAK = "leak"
    TAMPER = "tamper"
    LOW_BATTERY = "low_battery"
    COMMUNICATION_LOSS = "communication_loss"
    HIGH_CONSUMPTION = "high_consumption"
    SENSOR_ERROR = "sensor_error"


class AlertSeverity(str, Enum):
    """
    Alert severity levels, ordered low < medium < high < critical.

    Attributes:
        LOW: Informational.
        MEDIUM: Investigate when convenient.
        HIGH: Investigate soon.
        CRITICAL: Immediate attention required.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank, higher is more severe."""
        return _SEVERITY_RANK[self]

    @property
    def is_critical(self) -> bool:
        """Check if this is the critical severity."""
        return self == AlertSeverity.CRITICAL


_SEVERITY_RANK = {
    AlertSeverity.LOW: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.HIGH: 3,
    AlertSeverity.CRITICAL: 4,
}


class AlertStatus(str, Enum):
    """Alert lifecycle status. Alerts never return to ACTIVE once closed."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"


class RuleResult(BaseModel):
    """
    Result of a single detection rule.

    Returned by every rule, whether or not it fired.

    Attributes:
        triggered: Whether the rule condition was met.
        rule: Name of the rule that was evaluated.
        alert_type: The alert type if triggered.
        severity: The severity if triggered.
        title: Alert title if triggered.
        description: Alert description if triggered.
        metadata: Rule-specific evidence for the alert.
        skip_reason: Reason the rule did not apply (e.g. "insufficient_history").
        message: Optional message with details.

    Example:
        >>> result = RuleResult(
        ...     triggered=False,
        ...     rule="flow_pattern",
        ...     skip_reason="insufficient_history",
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    triggered: bool = Field(
        ...,
        description="Whether the rule condition was met",
    )
    rule: Optional[str] = Field(
        default=None,
        description="Name of the rule that was evaluated",
    )
    alert_type: Optional[AlertType] = Field(
        default=None,
        description="The alert type if triggered",
    )
    severity: Optional[AlertSeverity] = Field(
        default=None,
        description="The severity if triggered",
    )
    title: Optional[str] = Field(
        default=None,
        description="Alert title if triggered",
    )
    description: Optional[str] = Field(
        default=None,
        description="Alert description if triggered",
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Rule-specific evidence",
    )
    skip_reason: Optional[str] = Field(
        default=None,
        description="Reason the rule did not apply (e.g., 'insufficient_history')",
    )
    message: Optional[str] = Field(
        default=None,
        description="Optional message with details",
    )

    @property
    def was_skipped(self) -> bool:
        """Check if the rule was skipped (not triggered, but not due to condition)."""
        return not self.triggered and self.skip_reason is not None


class Alert(BaseModel):
    """
    Active or historical alert instance.

    Attributes:
        alert_id: Unique identifier for this alert instance.
        meter_id: Meter the alert concerns.
        alert_type: The kind of condition.
        severity: Alert severity.
        title: Short human-readable title.
        description: Human-readable description.
        triggered_at: When the alert was triggered.
        escalated_at: When a more severe detection last raised the severity.
        status: Lifecycle status.
        resolved_at: When the alert was closed (if applicable).
        resolved_by: Who closed the alert.
        resolution_notes: Free-form closing notes.
        metadata: Rule-specific evidence.
        notifications_sent: Channel name to delivery success.

    Example:
        >>> alert = Alert(
        ...     meter_id="SM-001",
        ...     alert_type=AlertType.LEAK,
        ...     severity=AlertSeverity.HIGH,
        ...     title="Possible leak detected",
        ...     description="Continuous flow of 2.40 L/min for 120 minutes",
        ...     triggered_at=datetime.now(timezone.utc),
        ... )
    """

    model_config = {"extra": "forbid"}

    # Identification
    alert_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier for this alert instance",
    )
    meter_id: str = Field(
        ...,
        description="Meter the alert concerns",
        min_length=1,
    )

    # Classification
    alert_type: AlertType = Field(
        ...,
        description="The kind of condition",
    )
    severity: AlertSeverity = Field(
        ...,
        description="Alert severity",
    )
    title: str = Field(
        ...,
        description="Short human-readable title",
        max_length=200,
    )
    description: str = Field(
        default="",
        description="Human-readable description",
    )

    # Lifecycle
    triggered_at: datetime = Field(
        ...,
        description="When the alert was triggered",
    )
    escalated_at: Optional[datetime] = Field(
        default=None,
        description="When the severity was last raised",
    )
    status: AlertStatus = Field(
        default=AlertStatus.ACTIVE,
        description="Lifecycle status",
    )
    resolved_at: Optional[datetime] = Field(
        default=None,
        description="When the alert was closed",
    )
    resolved_by: Optional[str] = Field(
        default=None,
        description="Who closed the alert",
    )
    resolution_notes: Optional[str] = Field(
        default=None,
        description="Free-form closing notes",
    )

    # Context
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        description="Rule-specific evidence",
    )
    notifications_sent: Dict[str, bool] = Field(
        default_factory=dict,
        description="Channel name to delivery success",
    )

    @model_validator(mode="after")
    def check_resolution_consistency(self) -> "Alert":
        """Active alerts carry no resolved_at; closed alerts always do."""
        if self.status == AlertStatus.ACTIVE and self.resolved_at is not None:
            raise ValueError("active alert cannot have resolved_at")
        if self.status != AlertStatus.ACTIVE and self.resolved_at is None:
            raise ValueError(f"{self.status.value} alert requires resolved_at")
        return self

    @property
    def is_active(self) -> bool:
        """Check if the alert is currently active."""
        return self.status == AlertStatus.ACTIVE

    @property
    def last_raised_at(self) -> datetime:
        """Trigger time, or the latest escalation if there was one."""
        return self.escalated_at or self.triggered_at

    @property
    def duration_seconds(self) -> Optional[int]:
        """Seconds between trigger and resolution, None while active."""
        if self.resolved_at is None:
            return None
        return int((self.resolved_at - self.triggered_at).total_seconds())

    def close(
        self,
        status: AlertStatus,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "Alert":
        """
        Close the alert.

        Args:
            status: RESOLVED or FALSE_POSITIVE.
            resolved_by: Who closed the alert.
            notes: Resolution notes.
            timestamp: Resolution time, defaults to now.

        Returns:
            Alert: Closed copy of the alert.

        Raises:
            ValueError: If the alert is not active or status is ACTIVE.
        """
        if status == AlertStatus.ACTIVE:
            raise ValueError("cannot close an alert into the active status")
        if not self.is_active:
            raise ValueError(f"alert {self.alert_id} is already {self.status.value}")

        return self.model_copy(
            update={
                "status": status,
                "resolved_at": timestamp or datetime.now(timezone.utc),
                "resolved_by": resolved_by,
                "resolution_notes": notes,
            }
        )

    def escalate(
        self,
        severity: AlertSeverity,
        title: str,
        description: str,
        timestamp: Optional[datetime] = None,
    ) -> "Alert":
        """
        Raise the severity of an active alert.

        Title and description follow the more severe detection; metadata and
        triggered_at are kept.

        Raises:
            ValueError: If the alert is closed or severity is not higher.
        """
        if not self.is_active:
            raise ValueError(f"alert {self.alert_id} is already {self.status.value}")
        if severity.rank <= self.severity.rank:
            raise ValueError(
                f"cannot escalate {self.severity.value} alert to {severity.value}"
            )

        return self.model_copy(
            update={
                "severity": severity,
                "title": title,
                "description": description,
                "escalated_at": timestamp or datetime.now(timezone.utc),
            }
        )

    def with_notifications(self, sent: Dict[str, bool]) -> "Alert":
        """Return a copy with delivery results merged in."""
        return self.model_copy(
            update={"notifications_sent": {**self.notifications_sent, **sent}}
        )


class AlertFilters(BaseModel):
    """Filters accepted by AlertManager.list_alerts()."""

    model_config = {"frozen": True, "extra": "forbid"}

    status: Optional[AlertStatus] = None
    severity: Optional[AlertSeverity] = None
    alert_type: Optional[AlertType] = None
    meter_id: Optional[str] = None
    owner_id: Optional[str] = None


class Pagination(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)


class AlertPage(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    alerts: List[Alert]
    pagination: Pagination


class AlertTypeSummary(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    alert_type: AlertType
    count: int = 0
    critical_count: int = 0


class ActiveAlertsView(BaseModel):
    """Active alerts, most severe first, with per-type counts."""

    model_config = {"frozen": True, "extra": "forbid"}

    alerts: List[Alert]
    total: int = 0
    by_type: List[AlertTypeSummary] = Field(default_factory=list)
    critical: int = 0


class TypeCount(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    count: int = 0
    active_count: int = 0


class DailyTrend(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    day: date
    count: int = 0
    critical_count: int = 0


class AlertStatistics(BaseModel):
    """
    Aggregated alert counts.

    Attributes:
        total_active: Number of active alerts.
        total_critical: Number of active critical alerts.
        by_status: Count per lifecycle status.
        by_severity: Count per severity among active alerts.
        by_type: Total and active count per alert type.
        trend: Alerts per day over the last 30 days, ordered by day.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    total_active: int = 0
    total_critical: int = 0
    by_status: Dict[AlertStatus, int] = Field(default_factory=dict)
    by_severity: Dict[AlertSeverity, int] = Field(default_factory=dict)
    by_type: Dict[AlertType, TypeCount] = Field(default_factory=dict)
    trend: List[DailyTrend] = Field(default_factory=list)


class BulkResolveResult(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    resolved: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
