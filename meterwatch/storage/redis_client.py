"""
Async Redis client implementing the reading, alert, and meter ports.

This module provides a Redis-backed store for reading history, alerts, and
the meter registry, plus pub/sub publication of newly created alerts.

Key Patterns:
    - Readings: `readings:{meter_id}` (sorted set of JSON, scored by epoch seconds)
    - Alerts: `alert:{alert_id}` (JSON string), `alerts:all` (sorted set by
              triggered_at), `alerts:active` (set), `alerts:by_meter:{meter_id}` (set)
    - Meters: `meter:{meter_id}` (JSON string), `meters` (set)
    - Pub/Sub channel: `updates:alerts`

Closed alerts may carry a TTL. Ids whose alert key has expired are removed
from the index sets when a read finds them missing, and in bulk by
prune_expired_alerts().

Example:
    >>> from meterwatch.config.models import RedisConnectionConfig
    >>> from meterwatch.storage.redis_client import RedisClient
    >>>
    >>> client = RedisClient(RedisConnectionConfig(url="redis://localhost:6379"))
    >>> await client.connect()
    >>> await client.add_reading(reading)
    >>> latest = await client.latest_reading("SM-001")
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from meterwatch.config.models import RedisConnectionConfig, RedisStorageConfig
from meterwatch.exceptions import UpstreamUnavailableError
from meterwatch.interfaces.stores import (
    AlertStore,
    FlowPredicate,
    MeterRegistry,
    ReadingStore,
)
from meterwatch.models.alerts import Alert, AlertSeverity, AlertStatus, AlertType
from meterwatch.models.meter import Meter, MeterStatus, MeterSummary
from meterwatch.models.reading import Reading

logger = structlog.get_logger(__name__)


class RedisClientError(UpstreamUnavailableError):
    """Redis was unreachable or a command failed."""

    pass


class RedisConnectionException(RedisClientError):
    """No usable connection to Redis."""

    pass


class RedisOperationError(RedisClientError):
    """A Redis command or pipeline returned an error."""

    pass


class RedisClient(ReadingStore, AlertStore, MeterRegistry):
    """
    Async Redis client for readings, alerts, and meters.

    Attributes:
        config: Redis connection configuration.
        storage_config: Redis storage configuration (TTLs).
        _pool: Pool opened by connect() when no client was injected.
        _client: Active Redis instance.
        _connected: Set once a ping succeeds.

    Example:
        >>> client = RedisClient(RedisConnectionConfig())
        >>> await client.connect()
        >>> try:
        ...     await client.save(alert)
        ... finally:
        ...     await client.disconnect()
    """

    # Key prefixes
    KEY_READINGS = "readings"
    KEY_ALERT = "alert"
    KEY_ALERTS_ALL = "alerts:all"
    KEY_ALERTS_ACTIVE = "alerts:active"
    KEY_ALERTS_BY_METER = "alerts:by_meter"
    KEY_METER = "meter"
    KEY_METERS = "meters"

    # Pub/sub channels
    CHANNEL_ALERTS = "updates:alerts"

    def __init__(
        self,
        config: Optional[RedisConnectionConfig] = None,
        storage_config: Optional[RedisStorageConfig] = None,
        client: Optional[Redis] = None,  # type: ignore[type-arg]
    ) -> None:
        """
        Prepare a client; no connection is opened until connect().

        Args:
            config: Connection configuration containing URL, db, and pool settings.
            storage_config: Storage configuration for TTLs.
            client: Pre-built Redis instance (decode_responses=True) to use
                instead of opening a pool, e.g. fakeredis in tests.
        """
        self.config = config or RedisConnectionConfig()
        self.storage_config = storage_config or RedisStorageConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client  # type: ignore[type-arg]
        self._owns_client = client is None
        self._connected: bool = False

        logger.info(
            "redis_client_created",
            url=self.config.url,
            db=self.config.db,
            max_connections=self.config.max_connections,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> None:
        """
        Open the pool (unless a client was injected) and ping.

        Raises:
            RedisConnectionException: If Redis does not answer.
        """
        if self._connected:
            logger.debug("redis_connect_skipped", reason="already_connected")
            return

        try:
            if self._client is None:
                self._pool = ConnectionPool.from_url(
                    self.config.url,
                    db=self.config.db,
                    max_connections=self.config.max_connections,
                    socket_timeout=self.config.socket_timeout,
                    socket_connect_timeout=self.config.socket_timeout,
                    decode_responses=True,
                )
                self._client = Redis(connection_pool=self._pool)

            await self._client.ping()
            self._connected = True

            logger.info(
                "redis_connected",
                url=self.config.url,
                db=self.config.db,
            )

        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            self._connected = False
            logger.error(
                "redis_connection_failed",
                url=self.config.url,
                error=str(e),
            )
            raise RedisConnectionException(
                f"Failed to connect to Redis at {self.config.url}: {e}", cause=e
            ) from e

    async def disconnect(self) -> None:
        """
        Close the client and pool opened by connect().

        Safe to call multiple times. An injected client is left open.
        """
        if self._client is not None and self._owns_client:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("redis_close_error", error=str(e))
            finally:
                self._client = None

        if self._pool is not None:
            try:
                await self._pool.aclose()
            except Exception as e:
                logger.warning("redis_pool_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("redis_disconnected")

    async def ping(self) -> bool:
        if not self._client:
            return False

        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    def _require_connection(self) -> Redis:  # type: ignore[type-arg]
        """
        Return the live Redis instance.

        Raises:
            RedisConnectionException: If connect() has not succeeded.
        """
        if not self._connected or self._client is None:
            raise RedisConnectionException("Redis client is not connected")
        return self._client

    # =========================================================================
    # READINGS
    # =========================================================================

    def _readings_key(self, meter_id: str) -> str:
        return f"{self.KEY_READINGS}:{meter_id}"

    async def add_reading(self, reading: Reading) -> None:
        await self.add_readings([reading])

    async def add_readings(self, readings: Sequence[Reading]) -> int:
        """
        Store readings in their per-meter sorted sets.

        Raises:
            RedisConnectionException: If connect() has not succeeded.
            RedisOperationError: If Redis rejects the command.
        """
        if not readings:
            return 0

        client = self._require_connection()

        by_meter: Dict[str, Dict[str, float]] = {}
        for reading in readings:
            by_meter.setdefault(reading.meter_id, {})[
                reading.model_dump_json()
            ] = reading.timestamp.timestamp()

        try:
            async with client.pipeline(transaction=True) as pipe:
                for meter_id, members in by_meter.items():
                    key = self._readings_key(meter_id)
                    pipe.zadd(key, members)
                    if self.storage_config.readings_ttl_seconds:
                        pipe.expire(key, self.storage_config.readings_ttl_seconds)
                await pipe.execute()

            logger.debug(
                "readings_stored",
                count=len(readings),
                meters=len(by_meter),
            )
            return len(readings)

        except RedisError as e:
            logger.error("readings_store_failed", error=str(e))
            raise RedisOperationError(f"Failed to store readings: {e}", cause=e) from e

    async def readings_in_window(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        client = self._require_connection()
        key = self._readings_key(meter_id)
        paging: Dict[str, Any] = {}
        if limit is not None:
            paging = {"start": 0, "num": limit}

        try:
            if newest_first:
                raw = await client.zrevrangebyscore(
                    key, end.timestamp(), start.timestamp(), **paging
                )
            else:
                raw = await client.zrangebyscore(
                    key, start.timestamp(), end.timestamp(), **paging
                )
            return [Reading.model_validate_json(item) for item in raw]

        except RedisError as e:
            logger.error(
                "readings_retrieve_failed",
                meter_id=meter_id,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to retrieve readings for {meter_id}: {e}", cause=e
            ) from e

    async def readings_matching(
        self,
        meter_id: str,
        start: datetime,
        end: datetime,
        predicate: FlowPredicate,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[Reading]:
        window = await self.readings_in_window(
            meter_id, start, end, newest_first=newest_first
        )
        matching = [r for r in window if predicate(r.flow_rate)]
        return matching[:limit] if limit is not None else matching

    async def latest_reading(self, meter_id: str) -> Optional[Reading]:
        client = self._require_connection()

        try:
            raw = await client.zrevrange(self._readings_key(meter_id), 0, 0)
            return Reading.model_validate_json(raw[0]) if raw else None

        except RedisError as e:
            logger.error(
                "latest_reading_retrieve_failed",
                meter_id=meter_id,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to retrieve latest reading for {meter_id}: {e}", cause=e
            ) from e

    # =========================================================================
    # ALERTS
    # =========================================================================

    def _alert_key(self, alert_id: str) -> str:
        return f"{self.KEY_ALERT}:{alert_id}"

    def _alerts_by_meter_key(self, meter_id: str) -> str:
        return f"{self.KEY_ALERTS_BY_METER}:{meter_id}"

    async def save(self, alert: Alert) -> None:
        """
        Store an alert with index maintenance.

        Stores the alert as a JSON string and keeps the active and per-meter
        index sets in step with its status.

        Raises:
            RedisConnectionException: If connect() has not succeeded.
            RedisOperationError: If Redis rejects the command.
        """
        client = self._require_connection()
        key = self._alert_key(alert.alert_id)

        try:
            serialized = alert.model_dump_json()

            async with client.pipeline(transaction=True) as pipe:
                ttl = self.storage_config.resolved_alert_ttl_seconds
                if not alert.is_active and ttl:
                    pipe.set(key, serialized, ex=ttl)
                else:
                    pipe.set(key, serialized)

                pipe.zadd(
                    self.KEY_ALERTS_ALL,
                    {alert.alert_id: alert.triggered_at.timestamp()},
                )
                pipe.sadd(self._alerts_by_meter_key(alert.meter_id), alert.alert_id)

                if alert.is_active:
                    pipe.sadd(self.KEY_ALERTS_ACTIVE, alert.alert_id)
                else:
                    pipe.srem(self.KEY_ALERTS_ACTIVE, alert.alert_id)

                await pipe.execute()

            logger.debug(
                "alert_stored",
                alert_id=alert.alert_id,
                alert_type=alert.alert_type.value,
                status=alert.status.value,
            )

        except RedisError as e:
            logger.error(
                "alert_store_failed",
                alert_id=alert.alert_id,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to store alert {alert.alert_id}: {e}", cause=e
            ) from e

    async def get(self, alert_id: str) -> Optional[Alert]:
        client = self._require_connection()

        try:
            data = await client.get(self._alert_key(alert_id))
            if data is None:
                logger.debug("alert_not_found", alert_id=alert_id)
                return None
            return Alert.model_validate_json(data)

        except RedisError as e:
            logger.error(
                "alert_retrieve_failed",
                alert_id=alert_id,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to retrieve alert {alert_id}: {e}", cause=e
            ) from e

    async def _load_alerts(
        self,
        alert_ids: Sequence[str],
        meter_ids: Sequence[str] = (),
    ) -> List[Alert]:
        """
        Fetch alerts by id.

        Ids whose key has expired are dropped from alerts:all, alerts:active,
        and the by-meter sets of meter_ids.
        """
        if not alert_ids:
            return []
        client = self._require_connection()
        raw = await client.mget([self._alert_key(a) for a in alert_ids])

        alerts: List[Alert] = []
        expired: List[str] = []
        for alert_id, item in zip(alert_ids, raw):
            if item is None:
                expired.append(alert_id)
            else:
                alerts.append(Alert.model_validate_json(item))

        if expired:
            await self._unindex(expired, [self._alerts_by_meter_key(m) for m in meter_ids])
        return alerts

    async def _unindex(self, alert_ids: Sequence[str], meter_keys: Sequence[str]) -> None:
        client = self._require_connection()
        async with client.pipeline(transaction=True) as pipe:
            pipe.zrem(self.KEY_ALERTS_ALL, *alert_ids)
            pipe.srem(self.KEY_ALERTS_ACTIVE, *alert_ids)
            for key in meter_keys:
                pipe.srem(key, *alert_ids)
            await pipe.execute()
        logger.debug("expired_alerts_unindexed", count=len(alert_ids))

    async def prune_expired_alerts(self) -> int:
        """
        Remove ids of expired alerts from every alert index.

        Returns:
            int: Number of distinct alert ids removed.

        Raises:
            RedisOperationError: If Redis rejects the command.
        """
        client = self._require_connection()

        try:
            removed = set()
            keys = [self.KEY_ALERTS_ALL] + [
                key async for key in client.scan_iter(match=f"{self.KEY_ALERTS_BY_METER}:*")
            ]
            for key in keys:
                if key == self.KEY_ALERTS_ALL:
                    ids = await client.zrange(key, 0, -1)
                else:
                    ids = sorted(await client.smembers(key))
                if not ids:
                    continue
                raw = await client.mget([self._alert_key(a) for a in ids])
                expired = [a for a, item in zip(ids, raw) if item is None]
                if expired:
                    meter_keys = [] if key == self.KEY_ALERTS_ALL else [key]
                    await self._unindex(expired, meter_keys)
                    removed.update(expired)

            if removed:
                logger.info("expired_alerts_pruned", count=len(removed))
            return len(removed)

        except RedisError as e:
            logger.error("alert_prune_failed", error=str(e))
            raise RedisOperationError(f"Failed to prune alert indexes: {e}", cause=e) from e

    async def find_active(
        self,
        meter_id: str,
        alert_type: AlertType,
        since: Optional[datetime] = None,
    ) -> Optional[Alert]:
        client = self._require_connection()

        try:
            ids = await client.sinter(
                self.KEY_ALERTS_ACTIVE, self._alerts_by_meter_key(meter_id)
            )
            candidates = [
                a
                for a in await self._load_alerts(sorted(ids), [meter_id])
                if a.alert_type == alert_type
                and a.is_active
                and (since is None or a.last_raised_at >= since)
            ]
            if not candidates:
                return None
            return max(candidates, key=lambda a: a.last_raised_at)

        except RedisError as e:
            logger.error(
                "active_alert_lookup_failed",
                meter_id=meter_id,
                alert_type=alert_type.value,
                error=str(e),
            )
            raise RedisOperationError(
                f"Failed to look up active alerts for {meter_id}: {e}", cause=e
            ) from e

    async def query(
        self,
        status: Optional[AlertStatus] = None,
        severity: Optional[AlertSeverity] = None,
        alert_type: Optional[AlertType] = None,
        meter_ids: Optional[Sequence[str]] = None,
    ) -> List[Alert]:
        client = self._require_connection()

        try:
            if meter_ids is not None:
                if not meter_ids:
                    return []
                ids = sorted(
                    await client.sunion(
                        [self._alerts_by_meter_key(m) for m in meter_ids]
                    )
                )
            elif status == AlertStatus.ACTIVE:
                ids = sorted(await client.smembers(self.KEY_ALERTS_ACTIVE))
            else:
                ids = await client.zrevrange(self.KEY_ALERTS_ALL, 0, -1)

            alerts = [
                a
                for a in await self._load_alerts(ids, meter_ids or ())
                if (status is None or a.status == status)
                and (severity is None or a.severity == severity)
                and (alert_type is None or a.alert_type == alert_type)
            ]
            alerts.sort(key=lambda a: a.triggered_at, reverse=True)
            return alerts

        except RedisError as e:
            logger.error("alert_query_failed", error=str(e))
            raise RedisOperationError(f"Failed to query alerts: {e}", cause=e) from e

    async def publish_alert(self, alert: Alert, meter: Optional[MeterSummary] = None) -> int:
        """
        Publish an alert, with its meter summary, to subscribers.

        Returns:
            int: How many subscribers received it.

        Raises:
            RedisConnectionException: If connect() has not succeeded.
            RedisOperationError: If Redis rejects the command.
        """
        client = self._require_connection()

        try:
            message = json.dumps(
                {
                    "type": "alert_created",
                    "alert": alert.model_dump(mode="json"),
                    "meter": meter.model_dump(mode="json") if meter else None,
                }
            )
            count = await client.publish(self.CHANNEL_ALERTS, message)

            logger.debug(
                "alert_published",
                alert_id=alert.alert_id,
                alert_type=alert.alert_type.value,
                subscribers=count,
            )

            return int(count)

        except RedisError as e:
            logger.error(
                "alert_publish_failed",
                alert_id=alert.alert_id,
                error=str(e),
            )
            raise RedisOperationError(f"Failed to publish alert: {e}", cause=e) from e

    # =========================================================================
    # METERS
    # =========================================================================

    def _meter_key(self, meter_id: str) -> str:
        return f"{self.KEY_METER}:{meter_id}"

    async def get_meter(self, meter_id: str) -> Optional[Meter]:
        client = self._require_connection()

        try:
            data = await client.get(self._meter_key(meter_id))
            return Meter.model_validate_json(data) if data is not None else None

        except RedisError as e:
            logger.error("meter_retrieve_failed", meter_id=meter_id, error=str(e))
            raise RedisOperationError(
                f"Failed to retrieve meter {meter_id}: {e}", cause=e
            ) from e

    async def list_meters(
        self,
        status: Optional[MeterStatus] = None,
        owner_id: Optional[str] = None,
    ) -> List[Meter]:
        client = self._require_connection()

        try:
            ids = sorted(await client.smembers(self.KEY_METERS))
            if not ids:
                return []
            raw = await client.mget([self._meter_key(m) for m in ids])
            meters = [Meter.model_validate_json(item) for item in raw if item is not None]
            return [
                m
                for m in meters
                if (status is None or m.status == status)
                and (owner_id is None or m.owner_id == owner_id)
            ]

        except RedisError as e:
            logger.error("meter_list_failed", error=str(e))
            raise RedisOperationError(f"Failed to list meters: {e}", cause=e) from e

    async def save_meter(self, meter: Meter) -> None:
        client = self._require_connection()

        try:
            async with client.pipeline(transaction=True) as pipe:
                pipe.set(self._meter_key(meter.meter_id), meter.model_dump_json())
                pipe.sadd(self.KEY_METERS, meter.meter_id)
                await pipe.execute()

            logger.debug("meter_stored", meter_id=meter.meter_id)

        except RedisError as e:
            logger.error("meter_store_failed", meter_id=meter.meter_id, error=str(e))
            raise RedisOperationError(
                f"Failed to store meter {meter.meter_id}: {e}", cause=e
            ) from e

    async def update_last_reading(self, meter_id: str, timestamp: datetime) -> None:
        meter = await self.get_meter(meter_id)
        if meter is None:
            return
        if meter.last_reading_at is not None and meter.last_reading_at >= timestamp:
            return
        await self.save_meter(meter.model_copy(update={"last_reading_at": timestamp}))

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    async def flush_db(self) -> None:
        """
        Delete every key in the selected database.

        Intended for tests and local resets only.
        """
        client = self._require_connection()

        try:
            await client.flushdb()
            logger.warning("redis_db_flushed", db=self.config.db)

        except RedisError as e:
            logger.error("redis_flush_failed", error=str(e))
            raise RedisOperationError(f"Failed to flush database: {e}", cause=e) from e


async def create_redis_client(
    config: Optional[RedisConnectionConfig] = None,
    storage_config: Optional[RedisStorageConfig] = None,
) -> RedisClient:
    """
    Factory function to create and connect a RedisClient.

    Example:
        >>> client = await create_redis_client(RedisConnectionConfig())
    """
    client = RedisClient(config, storage_config)
    await client.connect()
    return client
