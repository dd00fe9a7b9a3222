"""
Console notification channel.

Writes one line per newly created alert, either as a structured log event
or as a short colored line on stdout.

Example:
    >>> channel = ConsoleChannel(format=OutputFormat.SIMPLE)
    >>> await channel.on_alert_created(alert, meter.summary())
    True
"""

import sys
from enum import Enum
from typing import TextIO

import structlog

from meterwatch.models.alerts import Alert, AlertSeverity
from meterwatch.models.meter import MeterSummary

logger = structlog.get_logger(__name__)


class OutputFormat(str, Enum):
    STRUCTURED = "structured"
    SIMPLE = "simple"


class AnsiColors:
    RED = "\033[91m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    GREY = "\033[90m"
    BOLD = "\033[1m"
    RESET = "\033[0m"


SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: AnsiColors.RED + AnsiColors.BOLD,
    AlertSeverity.HIGH: AnsiColors.RED,
    AlertSeverity.MEDIUM: AnsiColors.YELLOW,
    AlertSeverity.LOW: AnsiColors.BLUE,
}


class ConsoleChannel:
    """
    Console output for alerts.

    Attributes:
        format: STRUCTURED emits a structlog event, SIMPLE prints a line.
        use_colors: Whether SIMPLE lines are colored by severity.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.STRUCTURED,
        use_colors: bool = True,
        stream: TextIO = sys.stdout,
    ) -> None:
        self.format = format
        self.use_colors = use_colors
        self.stream = stream

    async def on_alert_created(self, alert: Alert, meter: MeterSummary) -> bool:
        if self.format == OutputFormat.STRUCTURED:
            logger.warning(
                "alert_notification",
                alert_id=alert.alert_id,
                meter_id=alert.meter_id,
                owner_id=meter.owner_id,
                alert_type=alert.alert_type.value,
                severity=alert.severity.value,
                title=alert.title,
                description=alert.description,
                triggered_at=alert.triggered_at.isoformat(),
            )
            return True

        self.stream.write(self.format_line(alert, meter) + "\n")
        self.stream.flush()
        return True

    def format_line(self, alert: Alert, meter: MeterSummary) -> str:
        """Render a single human-readable line for an alert."""
        location = f" ({meter.location_description})" if meter.location_description else ""
        line = (
            f"[{alert.severity.value.upper()}] {alert.meter_id}{location} "
            f"{alert.title}: {alert.description}"
        )
        if not self.use_colors:
            return line
        color = SEVERITY_COLORS.get(alert.severity, AnsiColors.GREY)
        return f"{color}{line}{AnsiColors.RESET}"


def create_console_channel(
    format: str = "structured",
    use_colors: bool = True,
) -> ConsoleChannel:
    return ConsoleChannel(format=OutputFormat(format), use_colors=use_colors)
