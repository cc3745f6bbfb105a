"""Redis migration queue implementation.

This module provides a distributed migration queue on plain Redis data
structures, so several worker processes can share one run's fan-out.

Per queue id the following keys are used (``{prefix}:{queue_id}:<name>``):

- ``messages`` (hash): message id -> encoded MigrationMessage
- ``pending`` (sorted set): message id scored by the time it becomes visible;
  holds both ready and delayed messages
- ``inflight`` (sorted set): message id scored by its visibility deadline
- ``receives`` (hash): message id -> delivery count
- ``fanout`` (set): ids of fan-out messages still held by the queue
- ``dlq`` (list): bodies of dead-lettered messages

Moves between ``pending`` and ``inflight`` are claimed with ZREM, so when
two consumers race for the same message only the one whose ZREM removed it
proceeds.

Example:
    >>> from legacysync.queue.redis import RedisMigrationQueue, RedisMigrationQueueConfig
    >>>
    >>> queue = RedisMigrationQueue(RedisMigrationQueueConfig(redis_url="redis://localhost:6379"))
    >>> await queue.connect()
    >>> await queue.send_message(MigrationMessageType.MIGRATE_ENTITIES, context)
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from legacysync.messages import MigrationContext, MigrationMessage, MigrationMessageType
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_MESSAGE_DELAY,
    ATTR_MESSAGE_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_MIGRATION_ID,
)
from legacysync.observability.tracer import SpanKindEnum
from legacysync.queue.interface import MigrationQueue, ReceivedMessage

# Optional Redis import - fail gracefully if not installed
try:
    import redis.asyncio as aioredis
    from redis.asyncio import Redis

    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    aioredis = None  # type: ignore[assignment]
    Redis = None  # type: ignore[assignment, misc]

logger = logging.getLogger(__name__)


class RedisNotAvailableError(ImportError):
    """Raised when redis package is not installed."""

    def __init__(self) -> None:
        super().__init__(
            "Redis package is not installed. Install it with: pip install legacysync-py[redis]"
        )


@dataclass
class RedisMigrationQueueConfig:
    """Configuration for the Redis migration queue.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379")
        key_prefix: Prefix for every key the queue writes (default: "legacysync")
        max_receive_count: Deliveries allowed before a message is dead-lettered (default: 5)
        visibility_timeout_seconds: How long a received message stays hidden (default: 30)
        redelivery_delay_seconds: Delay before a released message is visible again (default: 0)
        socket_timeout: Socket timeout in seconds (default: 5.0)
        socket_connect_timeout: Socket connection timeout in seconds (default: 5.0)
        enable_tracing: Enable OpenTelemetry tracing (default: True)
    """

    redis_url: str = "redis://localhost:6379"
    key_prefix: str = "legacysync"
    max_receive_count: int = 5
    visibility_timeout_seconds: float = 30.0
    redelivery_delay_seconds: float = 0.0
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        if self.max_receive_count < 1:
            raise ValueError(f"max_receive_count must be >= 1, got {self.max_receive_count}")
        if self.visibility_timeout_seconds <= 0:
            raise ValueError(
                f"visibility_timeout_seconds must be > 0, got {self.visibility_timeout_seconds}"
            )

    def key(self, queue_id: str, name: str) -> str:
        return f"{self.key_prefix}:{queue_id}:{name}"


class RedisMigrationQueue(MigrationQueue):
    """
    Redis-backed migration queue.

    Receipts are the message ids: a delete or release is only honoured
    while the message is still in flight, so acknowledging a delivery whose
    visibility timeout already expired is ignored.
    """

    def __init__(
        self,
        config: RedisMigrationQueueConfig | None = None,
        *,
        redis: Redis | None = None,
        clock: Callable[[], float] = time.time,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the Redis migration queue.

        Args:
            config: Queue configuration. Defaults to RedisMigrationQueueConfig().
            redis: Already connected client to use instead of connecting
            clock: Wall-clock time source in seconds, shared by all workers
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on config.enable_tracing setting.

        Raises:
            RedisNotAvailableError: If redis package is not installed
        """
        if not REDIS_AVAILABLE:
            raise RedisNotAvailableError()

        self._config = config or RedisMigrationQueueConfig()
        self._redis: Redis | None = redis
        self._connected = redis is not None
        self._clock = clock

        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def config(self) -> RedisMigrationQueueConfig:
        """Get the configuration."""
        return self._config

    @property
    def is_connected(self) -> bool:
        """Check if connected to Redis."""
        return self._connected

    async def connect(self) -> None:
        """
        Connect to Redis.

        Raises:
            RedisConnectionError: If connection fails
        """
        if self._connected:
            logger.warning("RedisMigrationQueue already connected")
            return

        try:
            self._redis = await aioredis.from_url(  # type: ignore[no-untyped-call]
                self._config.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self._config.socket_timeout,
                socket_connect_timeout=self._config.socket_connect_timeout,
            )
            if self._redis is None:
                raise RuntimeError("Redis client not initialized")
            await self._redis.ping()
            logger.info("Connected to Redis", extra={"redis_url": self._config.redis_url})
            self._connected = True

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            self._connected = False
            logger.info("Disconnected from Redis")

    def _client(self) -> Redis:
        if not self._redis:
            raise RuntimeError("Redis client not initialized")
        return self._redis

    async def send_message(
        self,
        message_type: MigrationMessageType,
        context: MigrationContext,
        delay_seconds: float = 0,
    ) -> str:
        client = self._client()
        queue_id = context.domain_type
        key = self._config.key

        with self._tracer.span_with_kind(
            "legacysync.queue.send",
            SpanKindEnum.PRODUCER,
            {
                ATTR_MESSAGING_SYSTEM: "redis",
                ATTR_MESSAGING_DESTINATION: queue_id,
                ATTR_MESSAGING_OPERATION: "send",
                ATTR_MESSAGE_TYPE: message_type.value,
                ATTR_MESSAGE_DELAY: delay_seconds,
                ATTR_MIGRATION_ID: context.migration_id,
            },
        ):
            message_id = str(uuid.uuid4())
            body = MigrationMessage(type=message_type, context=context).to_json()
            visible_at = self._clock() + max(delay_seconds, 0)

            async with client.pipeline(transaction=True) as pipe:
                pipe.hset(key(queue_id, "messages"), message_id, body)
                if message_type.is_fan_out:
                    pipe.sadd(key(queue_id, "fanout"), message_id)
                pipe.zadd(key(queue_id, "pending"), {message_id: visible_at})
                await pipe.execute()

        logger.debug(
            f"Sent {message_type.value} to Redis queue {queue_id}",
            extra={
                "message_id": message_id,
                "message_type": message_type.value,
                "migration_id": context.migration_id,
                "delay_seconds": delay_seconds,
            },
        )
        return message_id

    async def is_probably_non_empty(self, queue_id: str) -> bool:
        return await self._client().scard(self._config.key(queue_id, "fanout")) > 0

    async def count_failed(self, queue_id: str) -> int:
        return int(await self._client().llen(self._config.key(queue_id, "dlq")))

    async def purge_all(self, queue_id: str) -> int:
        client = self._client()
        key = self._config.key

        with self._tracer.span(
            "legacysync.queue.purge",
            {
                ATTR_MESSAGING_SYSTEM: "redis",
                ATTR_MESSAGING_DESTINATION: queue_id,
                ATTR_MESSAGING_OPERATION: "purge",
            },
        ):
            await self._restore_expired(queue_id, self._clock())
            pending = await client.zrange(key(queue_id, "pending"), 0, -1)
            if not pending:
                return 0
            fan_out_flags = await client.smismember(key(queue_id, "fanout"), pending)

            purged = 0
            for message_id, is_fan_out in zip(pending, fan_out_flags, strict=True):
                if not is_fan_out:
                    continue
                if await client.zrem(key(queue_id, "pending"), message_id):
                    await self._forget(queue_id, message_id)
                    purged += 1

        logger.debug("Purged %d message(s) from Redis queue %s", purged, queue_id)
        return purged

    async def receive_messages(self, queue_id: str, max_messages: int = 10) -> list[ReceivedMessage]:
        client = self._client()
        key = self._config.key
        now = self._clock()

        await self._restore_expired(queue_id, now)

        due = await client.zrangebyscore(
            key(queue_id, "pending"), "-inf", now, start=0, num=max_messages
        )
        received: list[ReceivedMessage] = []
        for message_id in due:
            if not await client.zrem(key(queue_id, "pending"), message_id):
                # claimed by another consumer
                continue

            previous = int(await client.hget(key(queue_id, "receives"), message_id) or 0)
            if previous >= self._config.max_receive_count:
                await self._dead_letter(queue_id, message_id, previous)
                continue

            async with client.pipeline(transaction=True) as pipe:
                pipe.hincrby(key(queue_id, "receives"), message_id, 1)
                pipe.zadd(
                    key(queue_id, "inflight"),
                    {message_id: now + self._config.visibility_timeout_seconds},
                )
                pipe.hget(key(queue_id, "messages"), message_id)
                receive_count, _, body = await pipe.execute()

            if body is None:
                logger.warning("Message %s on %s has no body, dropping it", message_id, queue_id)
                await self._forget(queue_id, message_id)
                continue

            received.append(
                ReceivedMessage(
                    queue_id=queue_id,
                    message_id=message_id,
                    receipt=message_id,
                    body=body,
                    receive_count=int(receive_count),
                )
            )
        return received

    async def delete_message(self, queue_id: str, receipt: str) -> None:
        if not await self._client().zrem(self._config.key(queue_id, "inflight"), receipt):
            logger.debug("Ignoring delete for stale receipt %s on %s", receipt, queue_id)
            return
        await self._forget(queue_id, receipt)

    async def release_message(self, queue_id: str, receipt: str) -> bool:
        client = self._client()
        key = self._config.key

        if not await client.zrem(key(queue_id, "inflight"), receipt):
            logger.debug("Ignoring release for stale receipt %s on %s", receipt, queue_id)
            return False

        receive_count = int(await client.hget(key(queue_id, "receives"), receipt) or 0)
        if receive_count >= self._config.max_receive_count:
            await self._dead_letter(queue_id, receipt, receive_count)
            return True

        await client.zadd(
            key(queue_id, "pending"),
            {receipt: self._clock() + self._config.redelivery_delay_seconds},
        )
        return False

    async def _restore_expired(self, queue_id: str, now: float) -> None:
        """Make in-flight messages whose visibility timeout passed visible again."""
        client = self._client()
        key = self._config.key
        expired = await client.zrangebyscore(key(queue_id, "inflight"), "-inf", now)
        for message_id in expired:
            if await client.zrem(key(queue_id, "inflight"), message_id):
                await client.zadd(key(queue_id, "pending"), {message_id: now})

    async def _dead_letter(self, queue_id: str, message_id: str, receive_count: int) -> None:
        client = self._client()
        body = await client.hget(self._config.key(queue_id, "messages"), message_id)
        if body is not None:
            await client.rpush(self._config.key(queue_id, "dlq"), body)
        await self._forget(queue_id, message_id)
        logger.warning(
            f"Moved message {message_id} to dead letters after {receive_count} deliveries",
            extra={"message_id": message_id, "queue_id": queue_id, "receive_count": receive_count},
        )

    async def _forget(self, queue_id: str, message_id: str) -> None:
        key = self._config.key
        async with self._client().pipeline(transaction=True) as pipe:
            pipe.hdel(key(queue_id, "messages"), message_id)
            pipe.hdel(key(queue_id, "receives"), message_id)
            pipe.srem(key(queue_id, "fanout"), message_id)
            await pipe.execute()

    async def get_dead_letters(self, queue_id: str) -> list[MigrationMessage]:
        """Decode the messages parked on a queue's dead-letter list."""
        bodies = await self._client().lrange(self._config.key(queue_id, "dlq"), 0, -1)
        return [MigrationMessage.from_json(body) for body in bodies]


__all__ = [
    "RedisMigrationQueue",
    "RedisMigrationQueueConfig",
    "RedisNotAvailableError",
    "REDIS_AVAILABLE",
]
