"""
Redis pub/sub notification channel.

Publishes each newly created alert, together with the meter summary, on the
alerts update channel so that dashboards and socket gateways can push it to
the owning member in real time.

Example:
    >>> channel = RedisPubSubChannel(redis_client)
    >>> await channel.on_alert_created(alert, meter.summary())
    True
"""

from typing import TYPE_CHECKING

import structlog

from meterwatch.models.alerts import Alert
from meterwatch.models.meter import MeterSummary

if TYPE_CHECKING:
    from meterwatch.storage.redis_client import RedisClient

logger = structlog.get_logger(__name__)


class RedisPubSubChannel:
    """
    Publishes alerts through RedisClient.publish_alert().

    Delivery succeeds when the publish call returns without error, even if
    no subscriber is currently listening.
    """

    def __init__(self, redis_client: "RedisClient") -> None:
        self.redis_client = redis_client

    async def on_alert_created(self, alert: Alert, meter: MeterSummary) -> bool:
        receivers = await self.redis_client.publish_alert(alert, meter)
        logger.debug(
            "alert_published",
            alert_id=alert.alert_id,
            receivers=receivers,
        )
        return True


def create_redis_pubsub_channel(redis_client: "RedisClient") -> RedisPubSubChannel:
    return RedisPubSubChannel(redis_client)
