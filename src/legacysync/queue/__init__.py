"""Migration queue implementations.

Available Implementations:
- InMemoryMigrationQueue: In-process queue (development/testing/single-instance)
- RedisMigrationQueue: Redis-backed queue shared by several worker processes

Example:
    >>> from legacysync.queue import InMemoryMigrationQueue
    >>>
    >>> queue = InMemoryMigrationQueue()
    >>> await queue.send_message(MigrationMessageType.MIGRATE_ENTITIES, context)
    >>> await queue.is_probably_non_empty("ALERTS")
    True

For the Redis-based queue:
    >>> from legacysync.queue import RedisMigrationQueue, RedisMigrationQueueConfig
    >>>
    >>> queue = RedisMigrationQueue(RedisMigrationQueueConfig(redis_url="redis://localhost:6379"))
    >>> await queue.connect()
"""

from legacysync.queue.interface import MigrationQueue, ReceivedMessage
from legacysync.queue.memory import InMemoryMigrationQueue, InMemoryQueueConfig

# Redis queue - conditionally usable based on redis availability
from legacysync.queue.redis import (
    REDIS_AVAILABLE,
    RedisMigrationQueue,
    RedisMigrationQueueConfig,
    RedisNotAvailableError,
)

__all__ = [
    "MigrationQueue",
    "ReceivedMessage",
    "InMemoryMigrationQueue",
    "InMemoryQueueConfig",
    "RedisMigrationQueue",
    "RedisMigrationQueueConfig",
    "RedisNotAvailableError",
    "REDIS_AVAILABLE",
]
