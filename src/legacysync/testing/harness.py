"""
Test harness for driving whole migration runs deterministically.

``MigrationTestHarness`` wires an in-memory queue on a manual clock, an
in-memory history store, a recording telemetry client and a listener.
``run_until_idle`` handles every visible message, then jumps the clock to
the next delayed one, until the queue is empty.

Example:
    >>> harness = MigrationTestHarness()
    >>> service = harness.create_service(AlertsDomain(source, target, mappings))
    >>> context = await service.start_migration(AlertsFilter())
    >>> await harness.run_until_idle("ALERTS")
    >>> (await harness.history.get(context.migration_id)).status
    <MigrationStatus.COMPLETED: 'COMPLETED'>
"""

from __future__ import annotations

from typing import Any

from legacysync.clients import MigrationDomain
from legacysync.engine import MigrationService
from legacysync.history.in_memory import InMemoryMigrationHistoryRepository
from legacysync.history.service import MigrationHistoryService
from legacysync.listener import ListenerConfig, MigrationMessageListener
from legacysync.models import MigrationConfig
from legacysync.queue.memory import InMemoryMigrationQueue, InMemoryQueueConfig
from legacysync.testing.clock import ManualClock
from legacysync.testing.telemetry import InMemoryAuditClient, InMemoryTelemetryClient


class MigrationTestHarness:
    """
    Pre-configured in-memory infrastructure for migration tests.

    Components provided:
    - clock: ManualClock driving queue delays
    - queue: InMemoryMigrationQueue on that clock
    - history: MigrationHistoryService over an in-memory repository
    - telemetry: InMemoryTelemetryClient recording events
    - audit: InMemoryAuditClient recording run starts and cancel requests
    - listener: MigrationMessageListener every created service is registered with

    Tracing is disabled for all components.
    """

    def __init__(
        self,
        queue_config: InMemoryQueueConfig | None = None,
        batch_size: int = 10,
    ) -> None:
        self.clock = ManualClock()
        self.queue = InMemoryMigrationQueue(queue_config, clock=self.clock, enable_tracing=False)
        self.history_repository = InMemoryMigrationHistoryRepository(enable_tracing=False)
        self.history = MigrationHistoryService(self.history_repository)
        self.telemetry = InMemoryTelemetryClient()
        self.audit = InMemoryAuditClient()
        self.listener = MigrationMessageListener(
            self.queue,
            config=ListenerConfig(batch_size=batch_size, enable_tracing=False),
        )

    def create_service(
        self,
        domain: MigrationDomain[Any, Any, Any, Any, Any],
        config: MigrationConfig | None = None,
        service_class: type[MigrationService[Any, Any]] = MigrationService,
        **kwargs: Any,
    ) -> MigrationService[Any, Any]:
        """Build a migration service on the harness components and register it."""
        kwargs.setdefault("audit", self.audit)
        service = service_class(
            domain,
            self.queue,
            self.history,
            self.telemetry,
            config or MigrationConfig(enable_tracing=False),
            **kwargs,
        )
        self.listener.register(service)
        return service

    async def process_next_batch(self, queue_id: str) -> int:
        """Handle one batch of currently visible messages without moving the clock."""
        return await self.listener.process_available(queue_id)

    async def process_visible(self, queue_id: str) -> int:
        """Handle messages until none is visible, without moving the clock."""
        handled = 0
        while received := await self.listener.process_available(queue_id):
            handled += received
        return handled

    async def run_until_idle(self, queue_id: str, max_batches: int = 10_000) -> int:
        """
        Handle messages, advancing the clock past delays, until the queue is empty.

        Returns:
            Number of messages received

        Raises:
            RuntimeError: If the queue has not drained after max_batches batches
        """
        handled = 0
        for _ in range(max_batches):
            received = await self.listener.process_available(queue_id)
            if received:
                handled += received
                continue
            wait = self.queue.seconds_until_next_message(queue_id)
            if wait is None:
                return handled
            self.clock.advance(wait)
        raise RuntimeError(f"Queue {queue_id} did not drain within {max_batches} batches")


__all__ = ["MigrationTestHarness"]
