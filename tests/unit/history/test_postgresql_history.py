"""
Unit tests for PostgreSQLMigrationHistoryRepository.

These tests mock the SQLAlchemy connection and check the SQL and
parameters the repository issues, plus how result rows are mapped.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from legacysync.history import PostgreSQLMigrationHistoryRepository
from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus

STARTED_AT = datetime(2026, 10, 19, 12, 30, 5)

ROW = (
    "2026-10-19T12:30:05",
    "ALERTS",
    "STARTED",
    STARTED_AT,
    None,
    10,
    0,
    0,
    '{"prison_ids":["MDI"]}',
)


@pytest.fixture
def result() -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = ROW
    result.fetchall.return_value = [ROW]
    result.rowcount = 1
    return result


@pytest.fixture
def conn(result: MagicMock) -> MagicMock:
    conn = MagicMock(spec=AsyncConnection)
    conn.execute = AsyncMock(return_value=result)
    return conn


@pytest.fixture
def repo(conn: MagicMock) -> PostgreSQLMigrationHistoryRepository:
    return PostgreSQLMigrationHistoryRepository(conn, enable_tracing=False)


def executed(conn: MagicMock) -> tuple[str, dict]:
    """Return the SQL text and parameters of the last execute call."""
    query, params = conn.execute.call_args.args
    return str(query), params


class TestCreateTables:
    async def test_creates_table_and_index(self, repo, conn):
        await repo.create_tables()

        statements = [str(c.args[0]) for c in conn.execute.call_args_list]
        assert "CREATE TABLE IF NOT EXISTS migration_history" in statements[0]
        assert "CREATE INDEX IF NOT EXISTS" in statements[1]


class TestCreate:
    async def test_insert_parameters(self, repo, conn):
        history = MigrationHistory(
            migration_id="2026-10-19T12:30:05",
            domain_type="ALERTS",
            when_started=STARTED_AT,
            estimated_record_count=10,
            filter="{}",
        )

        await repo.create(history)

        sql, params = executed(conn)
        assert "INSERT INTO migration_history" in sql
        assert params["migration_id"] == "2026-10-19T12:30:05"
        assert params["status"] == "STARTED"
        assert params["when_started"] == STARTED_AT
        assert params["when_ended"] is None
        assert params["filter"] == "{}"


class TestQueries:
    """Tests for get, find_all and get_active."""

    async def test_get_maps_row(self, repo, conn):
        history = await repo.get("2026-10-19T12:30:05")

        assert history == MigrationHistory(
            migration_id="2026-10-19T12:30:05",
            domain_type="ALERTS",
            status=MigrationStatus.STARTED,
            when_started=STARTED_AT,
            estimated_record_count=10,
            filter='{"prison_ids":["MDI"]}',
        )
        assert executed(conn)[1] == {"migration_id": "2026-10-19T12:30:05"}

    async def test_get_missing(self, repo, result):
        result.fetchone.return_value = None

        assert await repo.get("2026-10-19T12:30:05") is None

    async def test_find_all_without_criteria(self, repo, conn):
        rows = await repo.find_all(HistoryFilter())

        sql, params = executed(conn)
        assert "WHERE" not in sql
        assert "ORDER BY when_started DESC" in sql
        assert params == {}
        assert [row.migration_id for row in rows] == ["2026-10-19T12:30:05"]

    async def test_find_all_with_every_criterion(self, repo, conn):
        await repo.find_all(
            HistoryFilter(
                domain_types=("ALERTS", "VISITS"),
                from_date_time=datetime(2026, 10, 1),
                to_date_time=datetime(2026, 10, 31),
                include_only_failures=True,
                filter_contains="MDI",
            )
        )

        sql, params = executed(conn)
        assert "domain_type IN (:domain_type_0, :domain_type_1)" in sql
        assert "when_started >= :from_date_time" in sql
        assert "when_started <= :to_date_time" in sql
        assert "records_failed > 0" in sql
        assert "strpos(filter, :filter_contains) > 0" in sql
        assert params == {
            "domain_type_0": "ALERTS",
            "domain_type_1": "VISITS",
            "from_date_time": datetime(2026, 10, 1),
            "to_date_time": datetime(2026, 10, 31),
            "filter_contains": "MDI",
        }

    async def test_get_active(self, repo, conn):
        active = await repo.get_active("ALERTS")

        assert active.migration_id == "2026-10-19T12:30:05"
        assert executed(conn)[1] == {
            "domain_type": "ALERTS",
            "started": "STARTED",
            "cancel_requested": "CANCELLED_REQUESTED",
        }


class TestTransition:
    async def test_update_parameters(self, repo, conn):
        ended = datetime(2026, 10, 19, 13, 0, 0)

        updated = await repo.transition(
            "2026-10-19T12:30:05",
            MigrationStatus.CANCELLED,
            (MigrationStatus.STARTED, MigrationStatus.CANCELLED_REQUESTED),
            when_ended=ended,
            records_migrated=3,
            records_failed=1,
        )

        assert updated is True
        sql, params = executed(conn)
        assert "status IN (:from_status_0, :from_status_1)" in sql
        assert params == {
            "to_status": "CANCELLED",
            "migration_id": "2026-10-19T12:30:05",
            "when_ended": ended,
            "records_migrated": 3,
            "records_failed": 1,
            "from_status_0": "STARTED",
            "from_status_1": "CANCELLED_REQUESTED",
        }

    async def test_no_row_updated(self, repo, result):
        result.rowcount = 0

        assert (
            await repo.transition(
                "2026-10-19T12:30:05", MigrationStatus.COMPLETED, (MigrationStatus.STARTED,)
            )
            is False
        )


class TestEngineConnection:
    async def test_engine_writes_inside_transaction(self, result):
        conn = MagicMock(spec=AsyncConnection)
        conn.execute = AsyncMock(return_value=result)
        begin = MagicMock()
        begin.__aenter__ = AsyncMock(return_value=conn)
        begin.__aexit__ = AsyncMock(return_value=None)
        engine = MagicMock(spec=AsyncEngine)
        engine.begin.return_value = begin

        repo = PostgreSQLMigrationHistoryRepository(engine, enable_tracing=False)
        await repo.transition(
            "2026-10-19T12:30:05", MigrationStatus.COMPLETED, (MigrationStatus.STARTED,)
        )

        engine.begin.assert_called_once()
        conn.execute.assert_awaited_once()
