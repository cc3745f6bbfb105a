"""
Shared pytest fixtures for the legacysync library tests.

This module provides:
- Domain fixtures (alerts source, target, mapping store, domain)
- Infrastructure fixtures (in-memory queue on a manual clock, history, telemetry)
- A MigrationTestHarness for end-to-end runs
- An in-memory aiosqlite connection (sqlite_connection)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

import pytest

from legacysync.history import InMemoryMigrationHistoryRepository, MigrationHistoryService
from legacysync.models import MigrationConfig
from legacysync.queue import InMemoryMigrationQueue
from legacysync.testing import (
    InMemoryMappingClient,
    InMemoryTelemetryClient,
    ManualClock,
    MigrationTestHarness,
)
from tests.fixtures import AlertsDomain, FakeAlertsSource, FakeAlertsTarget, make_alerts

if TYPE_CHECKING:
    import aiosqlite

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite

    AIOSQLITE_AVAILABLE = True
except ImportError:
    aiosqlite = None  # type: ignore[assignment]


skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# =============================================================================
# Domain Fixtures
# =============================================================================


@pytest.fixture
def source() -> FakeAlertsSource:
    """Legacy source holding two MDI alerts."""
    return FakeAlertsSource(make_alerts(2))


@pytest.fixture
def target() -> FakeAlertsTarget:
    return FakeAlertsTarget()


@pytest.fixture
def mappings() -> InMemoryMappingClient:
    return InMemoryMappingClient()


@pytest.fixture
def domain(
    source: FakeAlertsSource,
    target: FakeAlertsTarget,
    mappings: InMemoryMappingClient,
) -> AlertsDomain:
    return AlertsDomain(source=source, target=target, mappings=mappings)


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def queue(clock: ManualClock) -> InMemoryMigrationQueue:
    """In-memory queue on a manual clock, tracing disabled."""
    return InMemoryMigrationQueue(clock=clock, enable_tracing=False)


@pytest.fixture
def history() -> MigrationHistoryService:
    return MigrationHistoryService(InMemoryMigrationHistoryRepository(enable_tracing=False))


@pytest.fixture
def telemetry() -> InMemoryTelemetryClient:
    return InMemoryTelemetryClient()


@pytest.fixture
def migration_config() -> MigrationConfig:
    """Small, fast settings: K=3, no cancel purge repeats."""
    return MigrationConfig(
        page_size=10,
        complete_check_delay_seconds=10,
        complete_check_count=3,
        complete_check_retry_seconds=1,
        cancel_purge_total_seconds=0,
        enable_tracing=False,
    )


@pytest.fixture
def harness() -> MigrationTestHarness:
    return MigrationTestHarness()


# =============================================================================
# SQLite Fixtures
# =============================================================================


@pytest.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """In-memory SQLite connection, closed after the test."""
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")
    async with aiosqlite.connect(":memory:") as conn:
        yield conn
