"""
Notification dispatcher for newly created alerts.

This module provides the NotificationDispatcher class which fans a newly
created alert out to every registered observer. Delivery runs as a
background task so that a slow or failing channel never delays, or rolls
back, the alert that was already persisted.

Key Features:
    - Explicit observer registry (add/remove by name)
    - Per-observer failure isolation
    - Background delivery with drain() for shutdown and tests
    - Delivery results reported back as {channel_name: success}

Example:
    >>> dispatcher = NotificationDispatcher(
    ...     observers={"console": ConsoleChannel()},
    ... )
    >>> dispatcher.notify(alert, meter.summary())
    >>> await dispatcher.drain()
"""

import asyncio
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, Set

import structlog

from meterwatch.interfaces.stores import AlertObserver
from meterwatch.models.alerts import Alert
from meterwatch.models.meter import MeterSummary

if TYPE_CHECKING:
    from meterwatch.storage.redis_client import RedisClient

logger = structlog.get_logger(__name__)

DeliveryCallback = Callable[[Alert, Dict[str, bool]], Awaitable[None]]


class NotificationDispatcher:
    """
    Routes newly created alerts to registered observers.

    Attributes:
        observers: Dict mapping observer name to observer instance.

    Example:
        >>> dispatcher = NotificationDispatcher()
        >>> dispatcher.add_observer("console", ConsoleChannel())
        >>> sent = await dispatcher.deliver(alert, summary)
        >>> sent
        {'console': True}
    """

    def __init__(
        self,
        observers: Optional[Dict[str, AlertObserver]] = None,
    ) -> None:
        self.observers: Dict[str, AlertObserver] = dict(observers or {})
        self._pending: Set[asyncio.Task] = set()

        logger.info(
            "notification_dispatcher_initialized",
            observers=list(self.observers.keys()),
        )

    def add_observer(self, name: str, observer: AlertObserver) -> None:
        """
        Register an observer under a channel name.

        Args:
            name: Channel name recorded in Alert.notifications_sent.
            observer: Observer instance.
        """
        self.observers[name] = observer
        logger.info("observer_added", observer=name)

    def remove_observer(self, name: str) -> bool:
        """
        Remove an observer.

        Returns:
            bool: True if the observer was removed, False if not found.
        """
        if name in self.observers:
            del self.observers[name]
            logger.info("observer_removed", observer=name)
            return True
        return False

    async def deliver(self, alert: Alert, meter: MeterSummary) -> Dict[str, bool]:
        """
        Deliver an alert to every observer, in registration order.

        A failing observer is logged and recorded as False; the remaining
        observers still receive the alert.

        Args:
            alert: The newly created alert.
            meter: Summary of the meter the alert concerns.

        Returns:
            Dict[str, bool]: Channel name to delivery success.
        """
        sent: Dict[str, bool] = {}

        for name, observer in list(self.observers.items()):
            try:
                delivered = await observer.on_alert_created(alert, meter)
                sent[name] = bool(delivered) if delivered is not None else True

                logger.debug(
                    "alert_delivered_to_observer",
                    observer=name,
                    alert_id=alert.alert_id,
                    delivered=sent[name],
                )

            except Exception as e:
                sent[name] = False
                logger.error(
                    "observer_dispatch_failed",
                    observer=name,
                    alert_id=alert.alert_id,
                    error=str(e),
                )

        logger.info(
            "alert_dispatch_complete",
            alert_id=alert.alert_id,
            dispatched_to=sum(sent.values()),
            total_observers=len(sent),
        )

        return sent

    def notify(
        self,
        alert: Alert,
        meter: MeterSummary,
        on_complete: Optional[DeliveryCallback] = None,
    ) -> asyncio.Task:
        """
        Schedule background delivery of an alert.

        Args:
            alert: The newly created, already persisted alert.
            meter: Summary of the meter the alert concerns.
            on_complete: Awaited with the delivery results once done.

        Returns:
            asyncio.Task: The scheduled delivery task.
        """
        task = asyncio.create_task(self._run(alert, meter, on_complete))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(
        self,
        alert: Alert,
        meter: MeterSummary,
        on_complete: Optional[DeliveryCallback],
    ) -> None:
        sent = await self.deliver(alert, meter)
        if on_complete is None:
            return
        try:
            await on_complete(alert, sent)
        except Exception as e:
            logger.error(
                "delivery_callback_failed",
                alert_id=alert.alert_id,
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._pending)

    def get_observer_names(self) -> list[str]:
        return list(self.observers.keys())


def create_dispatcher(
    console_enabled: bool = True,
    console_format: str = "structured",
    redis_client: Optional["RedisClient"] = None,
    redis_enabled: bool = False,
) -> NotificationDispatcher:
    """
    Factory function to create a NotificationDispatcher with default channels.

    Args:
        console_enabled: Whether to register the console channel.
        console_format: Console output format ("structured" or "simple").
        redis_client: Connected RedisClient for the pub/sub channel.
        redis_enabled: Whether to register the Redis pub/sub channel.

    Returns:
        NotificationDispatcher: Configured dispatcher instance.

    Example:
        >>> dispatcher = create_dispatcher(console_format="simple")
    """
    from meterwatch.detection.channels.console import ConsoleChannel, OutputFormat
    from meterwatch.detection.channels.redis_pubsub import RedisPubSubChannel

    observers: Dict[str, AlertObserver] = {}

    if console_enabled:
        observers["console"] = ConsoleChannel(format=OutputFormat(console_format))

    if redis_enabled and redis_client is not None:
        observers["redis"] = RedisPubSubChannel(redis_client)

    return NotificationDispatcher(observers=observers)
