"""
Queue consumer for migration messages.

``MigrationMessageListener`` polls each registered domain's queue, decodes
every message and hands it to the migration service registered for the
message's domain. A handled message is deleted. A message whose handling
raised is released, so the queue redelivers it and eventually moves it to
the dead-letter destination.

Example:
    >>> listener = MigrationMessageListener(queue, [alerts_service, visits_service])
    >>> await listener.start()
    >>> ...
    >>> await listener.stop()

Tests and tools that need deterministic control call
``process_available(queue_id)`` instead of starting the background loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from legacysync.engine import MigrationService
from legacysync.exceptions import UnknownDomainError
from legacysync.messages import MigrationMessage
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_ERROR_TYPE,
    ATTR_MESSAGE_ID,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_RECEIVE_COUNT,
)
from legacysync.observability.tracer import SpanKindEnum
from legacysync.queue.interface import MigrationQueue, ReceivedMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListenerConfig:
    """
    Configuration for the message listener.

    Attributes:
        concurrency: Messages handled at once across all queues (default: 10)
        batch_size: Messages requested per receive call (default: 10)
        poll_interval_seconds: Wait after a receive returned nothing (default: 1.0)
        shutdown_timeout: Seconds stop() waits for in-flight work (default: 30.0)
        enable_tracing: Emit OpenTelemetry spans (default: True)
    """

    concurrency: int = 10
    batch_size: int = 10
    poll_interval_seconds: float = 1.0
    shutdown_timeout: float = 30.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.poll_interval_seconds < 0:
            raise ValueError(
                f"poll_interval_seconds must be >= 0, got {self.poll_interval_seconds}"
            )


class MigrationMessageListener:
    """Concurrent consumer dispatching queue messages to migration services."""

    def __init__(
        self,
        queue: MigrationQueue,
        services: Iterable[MigrationService[Any, Any]] = (),
        config: ListenerConfig | None = None,
        *,
        tracer: Tracer | None = None,
    ) -> None:
        self._queue = queue
        self._config = config or ListenerConfig()
        self._services: dict[str, MigrationService[Any, Any]] = {}
        for service in services:
            self.register(service)

        self._semaphore = asyncio.Semaphore(self._config.concurrency)
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self._stats = {
            "messages_handled": 0,
            "messages_failed": 0,
        }

        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def config(self) -> ListenerConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_ids(self) -> list[str]:
        return list(self._services)

    def register(self, service: MigrationService[Any, Any]) -> None:
        """
        Register the migration service for a domain.

        Raises:
            ValueError: If a service is already registered for the domain
        """
        if service.domain_type in self._services:
            raise ValueError(f"A migration service is already registered for {service.domain_type}")
        self._services[service.domain_type] = service

    def get_service(self, domain_type: str) -> MigrationService[Any, Any]:
        """
        Raises:
            UnknownDomainError: If no service is registered for the domain
        """
        try:
            return self._services[domain_type]
        except KeyError:
            raise UnknownDomainError(domain_type) from None

    async def process_available(self, queue_id: str) -> int:
        """
        Receive one batch from a queue and handle it.

        Returns:
            Number of messages received
        """
        received = await self._queue.receive_messages(queue_id, self._config.batch_size)
        if received:
            await asyncio.gather(*(self._handle_with_limit(message) for message in received))
        return len(received)

    async def _handle_with_limit(self, received: ReceivedMessage) -> None:
        async with self._semaphore:
            await self._handle(received)

    async def _handle(self, received: ReceivedMessage) -> None:
        with self._tracer.span_with_kind(
            "legacysync.listener.handle",
            SpanKindEnum.CONSUMER,
            {
                ATTR_MESSAGING_SYSTEM: type(self._queue).__name__,
                ATTR_MESSAGING_DESTINATION: received.queue_id,
                ATTR_MESSAGING_OPERATION: "process",
                ATTR_MESSAGE_ID: received.message_id,
                ATTR_RECEIVE_COUNT: received.receive_count,
            },
        ) as span:
            try:
                message = MigrationMessage.from_json(received.body)
                service = self.get_service(message.context.domain_type)
                await service.handle_message(message)
            except Exception as e:
                self._stats["messages_failed"] += 1
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                logger.error(
                    f"Failed to handle message {received.message_id} from {received.queue_id}: {e}",
                    exc_info=True,
                    extra={
                        "message_id": received.message_id,
                        "queue_id": received.queue_id,
                        "receive_count": received.receive_count,
                    },
                )
                await self._queue.release_message(received.queue_id, received.receipt)
                return

            await self._queue.delete_message(received.queue_id, received.receipt)
            self._stats["messages_handled"] += 1

    async def start(self) -> None:
        """Start one polling task per registered domain queue."""
        if self._running:
            logger.warning("MigrationMessageListener already running")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(self._consume(queue_id), name=f"legacysync-listener-{queue_id}")
            for queue_id in self._services
        ]
        logger.info("Started listening on %d queue(s)", len(self._tasks))

    async def _consume(self, queue_id: str) -> None:
        while self._running:
            try:
                received = await self.process_available(queue_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error receiving from {queue_id}: {e}", exc_info=True)
                received = 0
            if received == 0:
                await asyncio.sleep(self._config.poll_interval_seconds)

    async def stop(self) -> None:
        """Stop polling, then wait for the services' background work."""
        if not self._running:
            return

        self._running = False
        if self._tasks:
            _, remaining = await asyncio.wait(self._tasks, timeout=self._config.shutdown_timeout)
            for task in remaining:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tasks = []

        for service in self._services.values():
            await service.shutdown(self._config.shutdown_timeout)
        logger.info("Stopped migration message listener")

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)


__all__ = ["ListenerConfig", "MigrationMessageListener"]
