"""
Storage adapters for the monitoring system.

Components:
    memory: In-memory reading, alert, and meter stores
    redis_client: Redis client implementing all three ports plus alert pub/sub

Example:
    >>> from meterwatch.storage import InMemoryReadingStore, RedisClient
"""

from meterwatch.storage.memory import (
    InMemoryAlertStore,
    InMemoryMeterRegistry,
    InMemoryReadingStore,
)
from meterwatch.storage.redis_client import (
    RedisClient,
    RedisClientError,
    RedisConnectionException,
    RedisOperationError,
    create_redis_client,
)

__all__ = [
    # Memory
    "InMemoryReadingStore",
    "InMemoryAlertStore",
    "InMemoryMeterRegistry",
    # Redis
    "RedisClient",
    "RedisClientError",
    "RedisConnectionException",
    "RedisOperationError",
    "create_redis_client",
]
