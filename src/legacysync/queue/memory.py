"""In-memory migration queue implementation.

This module provides an in-process queue with the delivery semantics the
engine relies on: delayed messages, visibility timeouts, receive counting,
redelivery on release and a dead-letter list once a message has been
received too many times.

Suitable for development, testing, and single-instance deployments.
For multi-process deployments, use RedisMigrationQueue instead.

The clock is injectable, so tests can drive delays deterministically with
``legacysync.testing.ManualClock``.
"""

import itertools
import logging
import threading
import time
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field

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

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InMemoryQueueConfig:
    """Configuration for the in-memory queue.

    Attributes:
        max_receive_count: Deliveries allowed before a message is dead-lettered (default: 5)
        visibility_timeout_seconds: How long a received message stays hidden (default: 30)
        redelivery_delay_seconds: Delay before a released message is visible again (default: 0)
    """

    max_receive_count: int = 5
    visibility_timeout_seconds: float = 30.0
    redelivery_delay_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.max_receive_count < 1:
            raise ValueError(f"max_receive_count must be >= 1, got {self.max_receive_count}")
        if self.visibility_timeout_seconds <= 0:
            raise ValueError(
                f"visibility_timeout_seconds must be > 0, got {self.visibility_timeout_seconds}"
            )


@dataclass
class _StoredMessage:
    message_id: str
    message_type: MigrationMessageType
    body: str
    visible_at: float
    sequence: int
    receive_count: int = 0
    receipt: str | None = None


@dataclass
class _QueueState:
    messages: dict[str, _StoredMessage] = field(default_factory=dict)
    dead_letters: list[_StoredMessage] = field(default_factory=list)


class InMemoryMigrationQueue(MigrationQueue):
    """
    In-memory migration queue.

    Example:
        >>> queue = InMemoryMigrationQueue()
        >>> await queue.send_message(MigrationMessageType.MIGRATE_ENTITY, context)
        >>> [received] = await queue.receive_messages("ALERTS")
        >>> await queue.delete_message("ALERTS", received.receipt)

    Thread Safety:
        All state changes happen under a lock, so the queue may be shared by
        consumers running on different event loops or threads.
    """

    def __init__(
        self,
        config: InMemoryQueueConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the queue.

        Args:
            config: Queue configuration. Defaults to InMemoryQueueConfig().
            clock: Monotonic time source in seconds
            tracer: Optional custom Tracer instance
            enable_tracing: If True, emit traces. Ignored if tracer is provided.
        """
        self._config = config or InMemoryQueueConfig()
        self._clock = clock
        self._queues: dict[str, _QueueState] = defaultdict(_QueueState)
        self._lock = threading.RLock()
        self._sequence = itertools.count()
        self._stats = {
            "messages_sent": 0,
            "messages_received": 0,
            "messages_deleted": 0,
            "messages_released": 0,
            "messages_dead_lettered": 0,
            "messages_purged": 0,
        }

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def config(self) -> InMemoryQueueConfig:
        return self._config

    async def send_message(
        self,
        message_type: MigrationMessageType,
        context: MigrationContext,
        delay_seconds: float = 0,
    ) -> str:
        queue_id = context.domain_type
        with self._tracer.span_with_kind(
            "legacysync.queue.send",
            SpanKindEnum.PRODUCER,
            {
                ATTR_MESSAGING_SYSTEM: "memory",
                ATTR_MESSAGING_DESTINATION: queue_id,
                ATTR_MESSAGING_OPERATION: "send",
                ATTR_MESSAGE_TYPE: message_type.value,
                ATTR_MESSAGE_DELAY: delay_seconds,
                ATTR_MIGRATION_ID: context.migration_id,
            },
        ):
            body = MigrationMessage(type=message_type, context=context).to_json()
            message_id = str(uuid.uuid4())
            with self._lock:
                self._queues[queue_id].messages[message_id] = _StoredMessage(
                    message_id=message_id,
                    message_type=message_type,
                    body=body,
                    visible_at=self._clock() + max(delay_seconds, 0),
                    sequence=next(self._sequence),
                )
                self._stats["messages_sent"] += 1

        logger.debug(
            f"Sent {message_type.value} to {queue_id}",
            extra={
                "message_id": message_id,
                "message_type": message_type.value,
                "migration_id": context.migration_id,
                "delay_seconds": delay_seconds,
            },
        )
        return message_id

    async def is_probably_non_empty(self, queue_id: str) -> bool:
        with self._lock:
            return any(
                stored.message_type.is_fan_out
                for stored in self._queues[queue_id].messages.values()
            )

    async def count_failed(self, queue_id: str) -> int:
        with self._lock:
            return len(self._queues[queue_id].dead_letters)

    async def purge_all(self, queue_id: str) -> int:
        with self._tracer.span(
            "legacysync.queue.purge",
            {
                ATTR_MESSAGING_SYSTEM: "memory",
                ATTR_MESSAGING_DESTINATION: queue_id,
                ATTR_MESSAGING_OPERATION: "purge",
            },
        ):
            now = self._clock()
            with self._lock:
                state = self._queues[queue_id]
                # in flight only while its visibility timeout holds
                purged = [
                    message_id
                    for message_id, stored in state.messages.items()
                    if stored.message_type.is_fan_out
                    and (stored.receipt is None or stored.visible_at <= now)
                ]
                for message_id in purged:
                    del state.messages[message_id]
                self._stats["messages_purged"] += len(purged)

        logger.debug("Purged %d message(s) from %s", len(purged), queue_id)
        return len(purged)

    async def receive_messages(self, queue_id: str, max_messages: int = 10) -> list[ReceivedMessage]:
        now = self._clock()
        received: list[ReceivedMessage] = []
        with self._lock:
            state = self._queues[queue_id]
            visible = sorted(
                (stored for stored in state.messages.values() if stored.visible_at <= now),
                key=lambda stored: (stored.visible_at, stored.sequence),
            )
            for stored in visible:
                if len(received) >= max_messages:
                    break
                if stored.receive_count >= self._config.max_receive_count:
                    # visibility timed out on its final delivery
                    self._dead_letter(state, stored)
                    continue
                stored.receive_count += 1
                stored.receipt = str(uuid.uuid4())
                stored.visible_at = now + self._config.visibility_timeout_seconds
                received.append(
                    ReceivedMessage(
                        queue_id=queue_id,
                        message_id=stored.message_id,
                        receipt=stored.receipt,
                        body=stored.body,
                        receive_count=stored.receive_count,
                    )
                )
            self._stats["messages_received"] += len(received)
        return received

    async def delete_message(self, queue_id: str, receipt: str) -> None:
        with self._lock:
            stored = self._find_by_receipt(queue_id, receipt)
            if stored is None:
                logger.debug("Ignoring delete for stale receipt %s on %s", receipt, queue_id)
                return
            del self._queues[queue_id].messages[stored.message_id]
            self._stats["messages_deleted"] += 1

    async def release_message(self, queue_id: str, receipt: str) -> bool:
        with self._lock:
            state = self._queues[queue_id]
            stored = self._find_by_receipt(queue_id, receipt)
            if stored is None:
                logger.debug("Ignoring release for stale receipt %s on %s", receipt, queue_id)
                return False
            self._stats["messages_released"] += 1
            if stored.receive_count >= self._config.max_receive_count:
                self._dead_letter(state, stored)
                return True
            stored.receipt = None
            stored.visible_at = self._clock() + self._config.redelivery_delay_seconds
            return False

    def _find_by_receipt(self, queue_id: str, receipt: str) -> _StoredMessage | None:
        for stored in self._queues[queue_id].messages.values():
            if stored.receipt == receipt:
                return stored
        return None

    def _dead_letter(self, state: _QueueState, stored: _StoredMessage) -> None:
        del state.messages[stored.message_id]
        stored.receipt = None
        state.dead_letters.append(stored)
        self._stats["messages_dead_lettered"] += 1
        logger.warning(
            f"Moved message {stored.message_id} to dead letters after {stored.receive_count} deliveries",
            extra={
                "message_id": stored.message_id,
                "message_type": stored.message_type.value,
                "receive_count": stored.receive_count,
            },
        )

    def seconds_until_next_message(self, queue_id: str) -> float | None:
        """
        Time until the next message becomes visible, 0 if one already is.

        Returns None when the queue holds no messages at all.
        """
        with self._lock:
            messages = self._queues[queue_id].messages.values()
            if not messages:
                return None
            return max(min(stored.visible_at for stored in messages) - self._clock(), 0.0)

    def get_dead_letters(self, queue_id: str) -> list[MigrationMessage]:
        """Decode the messages parked on a queue's dead-letter list."""
        with self._lock:
            bodies = [stored.body for stored in self._queues[queue_id].dead_letters]
        return [MigrationMessage.from_json(body) for body in bodies]

    def pending_count(self, queue_id: str, message_type: MigrationMessageType | None = None) -> int:
        """Number of messages held (pending, delayed or in flight), optionally of one type."""
        with self._lock:
            return sum(
                1
                for stored in self._queues[queue_id].messages.values()
                if message_type is None or stored.message_type == message_type
            )

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)


__all__ = ["InMemoryMigrationQueue", "InMemoryQueueConfig"]
