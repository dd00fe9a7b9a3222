"""
Alert notification channels.

This module contains implementations for the alert delivery mechanisms:
console logging and Redis pub/sub push.

Components:
    console: Console/log output for alerts
    redis_pubsub: Publishes alerts on the Redis updates channel

Example:
    >>> from meterwatch.detection.channels import ConsoleChannel, RedisPubSubChannel
    >>>
    >>> console = ConsoleChannel(format=OutputFormat.SIMPLE)
    >>> pubsub = RedisPubSubChannel(redis_client)
    >>>
    >>> await console.on_alert_created(alert, summary)
    >>> await pubsub.on_alert_created(alert, summary)
"""

from meterwatch.detection.channels.console import (
    AnsiColors,
    ConsoleChannel,
    OutputFormat,
    create_console_channel,
)
from meterwatch.detection.channels.redis_pubsub import (
    RedisPubSubChannel,
    create_redis_pubsub_channel,
)

__all__ = [
    # Console
    "ConsoleChannel",
    "OutputFormat",
    "AnsiColors",
    "create_console_channel",
    # Redis
    "RedisPubSubChannel",
    "create_redis_pubsub_channel",
]
