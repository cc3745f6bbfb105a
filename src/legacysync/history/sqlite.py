"""
SQLite migration history repository.

Provides embedded history storage using SQLite with the async aiosqlite
driver. Datetimes are stored as ISO-8601 text, which sorts and compares
correctly as long as all values share the same (naive local) form.

Suitable for development, testing and single-instance deployments.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from legacysync.history.schema import HISTORY_COLUMNS, SQLITE_SCHEMA
from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_DOMAIN_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
)

# Optional dependency handling
try:
    import aiosqlite

    SQLITE_AVAILABLE = True
except ImportError:
    SQLITE_AVAILABLE = False
    aiosqlite = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class SQLiteNotAvailableError(ImportError):
    """Raised when aiosqlite is not installed."""

    def __init__(self) -> None:
        super().__init__(
            "aiosqlite is required for SQLiteMigrationHistoryRepository. "
            "Install it with: pip install legacysync-py[sqlite]"
        )


def _row_to_history(row: Any) -> MigrationHistory:
    return MigrationHistory(
        migration_id=row[0],
        domain_type=row[1],
        status=MigrationStatus(row[2]),
        when_started=datetime.fromisoformat(row[3]),
        when_ended=datetime.fromisoformat(row[4]) if row[4] else None,
        estimated_record_count=row[5],
        records_migrated=row[6],
        records_failed=row[7],
        filter=row[8],
    )


class SQLiteMigrationHistoryRepository:
    """
    SQLite implementation of MigrationHistoryRepository.

    Example:
        >>> async with aiosqlite.connect("history.db") as db:
        ...     repo = SQLiteMigrationHistoryRepository(db)
        ...     await repo.initialize()
        ...     await repo.create(history)

    Note:
        Call ``initialize()`` once to create the table, or create it with
        ``SQLITE_SCHEMA`` yourself.
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the repository.

        Args:
            connection: Open aiosqlite connection
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing (default True).
                          Ignored if tracer is explicitly provided.

        Raises:
            SQLiteNotAvailableError: If aiosqlite is not installed.
        """
        if not SQLITE_AVAILABLE:
            raise SQLiteNotAvailableError()

        self._connection = connection
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    async def initialize(self) -> None:
        """Create the migration_history table if it does not exist."""
        await self._connection.executescript(SQLITE_SCHEMA)
        await self._connection.commit()

    async def create(self, history: MigrationHistory) -> None:
        with self._tracer.span(
            "legacysync.history.create",
            {
                ATTR_MIGRATION_ID: history.migration_id,
                ATTR_DOMAIN_TYPE: history.domain_type,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            await self._connection.execute(
                f"""
                INSERT INTO migration_history ({HISTORY_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,  # nosec B608
                (
                    history.migration_id,
                    history.domain_type,
                    history.status.value,
                    history.when_started.isoformat(),
                    history.when_ended.isoformat() if history.when_ended else None,
                    history.estimated_record_count,
                    history.records_migrated,
                    history.records_failed,
                    history.filter,
                ),
            )
            await self._connection.commit()

    async def get(self, migration_id: str) -> MigrationHistory | None:
        with self._tracer.span(
            "legacysync.history.get",
            {ATTR_MIGRATION_ID: migration_id, ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                f"SELECT {HISTORY_COLUMNS} FROM migration_history WHERE migration_id = ?",  # nosec B608
                (migration_id,),
            )
            row = await cursor.fetchone()
            return _row_to_history(row) if row else None

    async def find_all(self, history_filter: HistoryFilter) -> list[MigrationHistory]:
        with self._tracer.span("legacysync.history.find_all", {ATTR_DB_SYSTEM: "sqlite"}):
            where_clauses: list[str] = []
            params: list[Any] = []

            if history_filter.domain_types:
                placeholders = ", ".join("?" for _ in history_filter.domain_types)
                where_clauses.append(f"domain_type IN ({placeholders})")
                params.extend(history_filter.domain_types)
            if history_filter.from_date_time:
                where_clauses.append("when_started >= ?")
                params.append(history_filter.from_date_time.isoformat())
            if history_filter.to_date_time:
                where_clauses.append("when_started <= ?")
                params.append(history_filter.to_date_time.isoformat())
            if history_filter.include_only_failures:
                where_clauses.append("records_failed > 0")
            if history_filter.filter_contains:
                where_clauses.append("instr(filter, ?) > 0")
                params.append(history_filter.filter_contains)

            where_clause = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

            # where_clause is built from static strings only
            cursor = await self._connection.execute(
                f"""
                SELECT {HISTORY_COLUMNS} FROM migration_history
                {where_clause}
                ORDER BY when_started DESC
                """,  # nosec B608
                tuple(params),
            )
            rows = await cursor.fetchall()
            return [_row_to_history(row) for row in rows]

    async def get_active(self, domain_type: str) -> MigrationHistory | None:
        with self._tracer.span(
            "legacysync.history.get_active",
            {ATTR_DOMAIN_TYPE: domain_type, ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                f"""
                SELECT {HISTORY_COLUMNS} FROM migration_history
                WHERE domain_type = ? AND status IN (?, ?)
                ORDER BY when_started DESC
                LIMIT 1
                """,  # nosec B608
                (
                    domain_type,
                    MigrationStatus.STARTED.value,
                    MigrationStatus.CANCELLED_REQUESTED.value,
                ),
            )
            row = await cursor.fetchone()
            return _row_to_history(row) if row else None

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
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            assignments = ["status = ?"]
            params: list[Any] = [to_status.value]
            if when_ended is not None:
                assignments.append("when_ended = ?")
                params.append(when_ended.isoformat())
            if records_migrated is not None:
                assignments.append("records_migrated = ?")
                params.append(records_migrated)
            if records_failed is not None:
                assignments.append("records_failed = ?")
                params.append(records_failed)

            placeholders = ", ".join("?" for _ in from_statuses)
            params.append(migration_id)
            params.extend(status.value for status in from_statuses)

            cursor = await self._connection.execute(
                f"""
                UPDATE migration_history
                SET {", ".join(assignments)}
                WHERE migration_id = ? AND status IN ({placeholders})
                """,  # nosec B608
                tuple(params),
            )
            await self._connection.commit()

            updated = cursor.rowcount > 0
            if updated:
                logger.debug("Migration %s moved to %s", migration_id, to_status.value)
            return updated


__all__ = [
    "SQLiteMigrationHistoryRepository",
    "SQLiteNotAvailableError",
    "SQLITE_AVAILABLE",
]
