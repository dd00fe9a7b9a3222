"""
Application services built on the detection, storage, and simulation layers.

Components:
    ingestion: ReadingIngestor, the per-reading pipeline into detection
    simulation: SimulationService, a full generate-ingest-detect run

The package also provides setup_logging, shared by the service entry points
under services/.

Example:
    >>> from meterwatch.services import SimulationService, setup_logging
    >>> setup_logging("INFO", "text")
    >>> service = await SimulationService.from_config(config)
    >>> summary = await service.run()
"""

import logging

import structlog

from meterwatch.services.ingestion import ReadingIngestor
from meterwatch.services.simulation import SimulationService, SimulationSummary


def setup_logging(level: str = "INFO", format: str = "json") -> None:
    """
    Configure structlog over standard logging.

    Args:
        level: Standard logging level name.
        format: "json" for machine-readable output, "text" for console output.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if format == "text"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )


__all__ = [
    # Logging
    "setup_logging",
    # Ingestion
    "ReadingIngestor",
    # Simulation
    "SimulationService",
    "SimulationSummary",
]
