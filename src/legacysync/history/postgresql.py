"""
PostgreSQL migration history repository.

Stores history rows in the ``migration_history`` table using SQLAlchemy's
async engine with plain ``text()`` queries. Create the table with
``POSTGRESQL_SCHEMA`` from ``legacysync.history.schema`` or ``create_tables``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from legacysync.history.schema import HISTORY_COLUMNS, POSTGRESQL_INDEX, POSTGRESQL_SCHEMA
from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_DOMAIN_TYPE,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
)

logger = logging.getLogger(__name__)


def _row_to_history(row: Any) -> MigrationHistory:
    return MigrationHistory(
        migration_id=row[0],
        domain_type=row[1],
        status=MigrationStatus(row[2]),
        when_started=row[3],
        when_ended=row[4],
        estimated_record_count=row[5],
        records_migrated=row[6],
        records_failed=row[7],
        filter=row[8],
    )


class PostgreSQLMigrationHistoryRepository:
    """
    PostgreSQL implementation of MigrationHistoryRepository.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> repo = PostgreSQLMigrationHistoryRepository(engine)
        >>> await repo.create_tables()
        >>> await repo.create(history)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ):
        """
        Initialize the repository.

        Args:
            conn: Database connection or engine
            tracer: Optional tracer for tracing (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self.conn = conn

    @asynccontextmanager
    async def _connect(self, write: bool) -> AsyncIterator[AsyncConnection]:
        # an injected connection is used as is; its owner manages the transaction
        if not isinstance(self.conn, AsyncEngine):
            yield self.conn
            return
        if write:
            async with self.conn.begin() as conn:
                yield conn
        else:
            async with self.conn.connect() as conn:
                yield conn

    async def create_tables(self) -> None:
        """Create the migration_history table and its index if missing."""
        async with self._connect(write=True) as conn:
            await conn.execute(text(POSTGRESQL_SCHEMA))
            await conn.execute(text(POSTGRESQL_INDEX))

    async def create(self, history: MigrationHistory) -> None:
        with self._tracer.span(
            "legacysync.history.create",
            {
                ATTR_MIGRATION_ID: history.migration_id,
                ATTR_DOMAIN_TYPE: history.domain_type,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            query = text(f"""
                INSERT INTO migration_history ({HISTORY_COLUMNS})
                VALUES (:migration_id, :domain_type, :status, :when_started, :when_ended,
                        :estimated_record_count, :records_migrated, :records_failed, :filter)
            """)  # nosec B608
            params = {
                "migration_id": history.migration_id,
                "domain_type": history.domain_type,
                "status": history.status.value,
                "when_started": history.when_started,
                "when_ended": history.when_ended,
                "estimated_record_count": history.estimated_record_count,
                "records_migrated": history.records_migrated,
                "records_failed": history.records_failed,
                "filter": history.filter,
            }

            async with self._connect(write=True) as conn:
                await conn.execute(query, params)

    async def get(self, migration_id: str) -> MigrationHistory | None:
        with self._tracer.span(
            "legacysync.history.get",
            {ATTR_MIGRATION_ID: migration_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"""
                SELECT {HISTORY_COLUMNS}
                FROM migration_history
                WHERE migration_id = :migration_id
            """)  # nosec B608

            async with self._connect(write=False) as conn:
                result = await conn.execute(query, {"migration_id": migration_id})
                row = result.fetchone()

            return _row_to_history(row) if row else None

    async def find_all(self, history_filter: HistoryFilter) -> list[MigrationHistory]:
        with self._tracer.span("legacysync.history.find_all", {ATTR_DB_SYSTEM: "postgresql"}):
            where_clauses: list[str] = []
            params: dict[str, Any] = {}

            if history_filter.domain_types:
                names = []
                for index, domain_type in enumerate(history_filter.domain_types):
                    params[f"domain_type_{index}"] = domain_type
                    names.append(f":domain_type_{index}")
                where_clauses.append(f"domain_type IN ({', '.join(names)})")
            if history_filter.from_date_time:
                where_clauses.append("when_started >= :from_date_time")
                params["from_date_time"] = history_filter.from_date_time
            if history_filter.to_date_time:
                where_clauses.append("when_started <= :to_date_time")
                params["to_date_time"] = history_filter.to_date_time
            if history_filter.include_only_failures:
                where_clauses.append("records_failed > 0")
            if history_filter.filter_contains:
                where_clauses.append("strpos(filter, :filter_contains) > 0")
                params["filter_contains"] = history_filter.filter_contains

            where_clause = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

            # where_clause is built from safe static strings only
            query = text(f"""
                SELECT {HISTORY_COLUMNS}
                FROM migration_history
                {where_clause}
                ORDER BY when_started DESC
            """)  # nosec B608

            async with self._connect(write=False) as conn:
                result = await conn.execute(query, params)
                rows = result.fetchall()

            return [_row_to_history(row) for row in rows]

    async def get_active(self, domain_type: str) -> MigrationHistory | None:
        with self._tracer.span(
            "legacysync.history.get_active",
            {ATTR_DOMAIN_TYPE: domain_type, ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"""
                SELECT {HISTORY_COLUMNS}
                FROM migration_history
                WHERE domain_type = :domain_type
                  AND status IN (:started, :cancel_requested)
                ORDER BY when_started DESC
                LIMIT 1
            """)  # nosec B608
            params = {
                "domain_type": domain_type,
                "started": MigrationStatus.STARTED.value,
                "cancel_requested": MigrationStatus.CANCELLED_REQUESTED.value,
            }

            async with self._connect(write=False) as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()

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
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            assignments = ["status = :to_status"]
            params: dict[str, Any] = {"to_status": to_status.value, "migration_id": migration_id}
            if when_ended is not None:
                assignments.append("when_ended = :when_ended")
                params["when_ended"] = when_ended
            if records_migrated is not None:
                assignments.append("records_migrated = :records_migrated")
                params["records_migrated"] = records_migrated
            if records_failed is not None:
                assignments.append("records_failed = :records_failed")
                params["records_failed"] = records_failed

            names = []
            for index, status in enumerate(from_statuses):
                params[f"from_status_{index}"] = status.value
                names.append(f":from_status_{index}")

            query = text(f"""
                UPDATE migration_history
                SET {", ".join(assignments)}
                WHERE migration_id = :migration_id
                  AND status IN ({", ".join(names)})
            """)  # nosec B608

            async with self._connect(write=True) as conn:
                result = await conn.execute(query, params)
                updated = result.rowcount > 0

            if updated:
                logger.debug("Migration %s moved to %s", migration_id, to_status.value)
            return updated


__all__ = ["PostgreSQLMigrationHistoryRepository"]
