"""
Test utilities for legacysync.

Components:
    MigrationTestHarness: In-memory queue, history and listener on a manual clock
    ManualClock: Time source that only moves when advanced
    InMemoryTelemetryClient: Records telemetry events for assertions
    InMemoryAuditClient: Records audit events for assertions
    InMemoryMappingClient: Mapping store enforcing the source/target bijection

Example:
    >>> from legacysync.testing import MigrationTestHarness
    >>>
    >>> harness = MigrationTestHarness()
    >>> service = harness.create_service(domain)
    >>> await service.start_migration(migration_filter)
    >>> await harness.run_until_idle(domain.domain_type)

Note:
    This module is intended for test code only. It should not be imported
    in production code paths.
"""

from legacysync.testing.clock import ManualClock
from legacysync.testing.harness import MigrationTestHarness
from legacysync.testing.mappings import InMemoryMappingClient
from legacysync.testing.telemetry import (
    AuditEvent,
    InMemoryAuditClient,
    InMemoryTelemetryClient,
    TrackedEvent,
)

__all__ = [
    "MigrationTestHarness",
    "ManualClock",
    "InMemoryTelemetryClient",
    "InMemoryAuditClient",
    "AuditEvent",
    "InMemoryMappingClient",
    "TrackedEvent",
]
