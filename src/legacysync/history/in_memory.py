"""
In-memory migration history repository.

Provides a simple, task-safe history store for testing and development.
All data is stored in memory and lost when the process ends.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime

from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_DOMAIN_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
)

logger = logging.getLogger(__name__)


class InMemoryMigrationHistoryRepository:
    """
    In-memory implementation of MigrationHistoryRepository.

    Rows are stored in a dictionary keyed by migration id and copied on the
    way in and out, so callers never share state with the store.

    Example:
        >>> repo = InMemoryMigrationHistoryRepository()
        >>> await repo.create(MigrationHistory(migration_id="2026-10-19T12:30:05", domain_type="ALERTS"))
        >>> (await repo.get("2026-10-19T12:30:05")).status
        <MigrationStatus.STARTED: 'STARTED'>
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._rows: dict[str, MigrationHistory] = {}
        self._lock = asyncio.Lock()

    async def create(self, history: MigrationHistory) -> None:
        with self._tracer.span(
            "legacysync.history.create",
            {
                ATTR_MIGRATION_ID: history.migration_id,
                ATTR_DOMAIN_TYPE: history.domain_type,
                ATTR_DB_SYSTEM: "memory",
            },
        ):
            async with self._lock:
                if history.migration_id in self._rows:
                    raise ValueError(f"Migration history {history.migration_id} already exists")
                self._rows[history.migration_id] = copy.copy(history)

    async def get(self, migration_id: str) -> MigrationHistory | None:
        async with self._lock:
            row = self._rows.get(migration_id)
            return copy.copy(row) if row else None

    async def find_all(self, history_filter: HistoryFilter) -> list[MigrationHistory]:
        async with self._lock:
            rows = [copy.copy(row) for row in self._rows.values() if history_filter.matches(row)]
        return sorted(rows, key=lambda row: row.when_started, reverse=True)

    async def get_active(self, domain_type: str) -> MigrationHistory | None:
        async with self._lock:
            active = [
                row
                for row in self._rows.values()
                if row.domain_type == domain_type and row.status.is_active
            ]
        if not active:
            return None
        return copy.copy(max(active, key=lambda row: row.when_started))

    async def transition(
        self,
        migration_id: str,
        to_status: MigrationStatus,
        from_statuses: tuple[MigrationStatus, ...],
        *,
        when_ended: datetime | None = None,
        records_migrated: int | None = None,
        records_failed: int | None = None,
    ) -> bool:
        with self._tracer.span(
            "legacysync.history.transition",
            {
                ATTR_MIGRATION_ID: migration_id,
                ATTR_MIGRATION_STATUS: to_status.value,
                ATTR_DB_SYSTEM: "memory",
            },
        ):
            async with self._lock:
                row = self._rows.get(migration_id)
                if row is None or row.status not in from_statuses:
                    return False
                row.status = to_status
                if when_ended is not None:
                    row.when_ended = when_ended
                if records_migrated is not None:
                    row.records_migrated = records_migrated
                if records_failed is not None:
                    row.records_failed = records_failed

            logger.debug("Migration %s moved to %s", migration_id, to_status.value)
            return True

    async def clear(self) -> None:
        """Remove every row. Intended for test cleanup."""
        async with self._lock:
            self._rows.clear()


__all__ = ["InMemoryMigrationHistoryRepository"]
