"""
Simulator service entry point.

This service:
- Loads meters, alert settings, and generator defaults from config/
- Generates 15-minute readings for every active meter over the window
- Replays each reading through ingestion and anomaly detection
- Sweeps meters for communication loss at the end of the window
- Logs a summary of created alerts

Usage:
    python -m services.simulator.main

Environment Variables:
    CONFIG_PATH: Path to config directory (default: config)
    SIMULATION_HOURS: Window length in hours (default: simulation.yaml hours)
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    LOG_LEVEL: Logging level (default: INFO)
"""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone

import structlog

from meterwatch.config import ConfigLoadError, load_config
from meterwatch.exceptions import MeterWatchError
from meterwatch.services import SimulationService, setup_logging

logger = structlog.get_logger(__name__)


async def main() -> None:
    """Main entry point."""
    # Set up initial logging
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    config_path = os.getenv("CONFIG_PATH", "config")

    logger.info(
        "simulator_service_starting",
        version="0.1.0",
        config_path=config_path,
    )

    try:
        config = load_config(config_path)
    except ConfigLoadError as e:
        logger.error(
            "config_load_failed",
            error=e.message,
            file_path=str(e.file_path) if e.file_path else None,
        )
        sys.exit(1)

    setup_logging(config.log_level.value, config.features.logging.format.value)

    hours = int(os.getenv("SIMULATION_HOURS", str(config.simulation.hours)))
    start = config.simulation.start or datetime.now(timezone.utc) - timedelta(hours=hours)
    end = start + timedelta(hours=hours)

    service = None
    try:
        service = await SimulationService.from_config(config)
        summary = await service.run(start, end)
        logger.info("simulator_service_finished", **summary.model_dump(mode="json"))
    except MeterWatchError as e:
        logger.error("service_failed", error=str(e))
        sys.exit(1)
    finally:
        if service is not None:
            await service.close()


if __name__ == "__main__":
    asyncio.run(main())
