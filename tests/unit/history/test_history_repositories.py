"""
Unit tests for the migration history repositories.

The same behaviour is checked against every embedded backend:
- InMemoryMigrationHistoryRepository
- SQLiteMigrationHistoryRepository (in-memory SQLite database)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime

import pytest

from legacysync.history import InMemoryMigrationHistoryRepository, MigrationHistoryRepository
from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus
from tests.conftest import AIOSQLITE_AVAILABLE, skip_if_no_aiosqlite

if AIOSQLITE_AVAILABLE:
    import aiosqlite

    from legacysync.history.sqlite import SQLiteMigrationHistoryRepository


def make_history(
    migration_id: str,
    domain_type: str = "ALERTS",
    status: MigrationStatus = MigrationStatus.STARTED,
    records_failed: int = 0,
    migration_filter: str | None = None,
) -> MigrationHistory:
    return MigrationHistory(
        migration_id=migration_id,
        domain_type=domain_type,
        status=status,
        when_started=datetime.fromisoformat(migration_id),
        estimated_record_count=10,
        records_failed=records_failed,
        filter=migration_filter,
    )


@pytest.fixture(
    params=[
        "memory",
        pytest.param("sqlite", marks=[pytest.mark.sqlite, skip_if_no_aiosqlite]),
    ]
)
async def repository(request) -> AsyncGenerator[MigrationHistoryRepository, None]:
    if request.param == "memory":
        yield InMemoryMigrationHistoryRepository(enable_tracing=False)
        return

    async with aiosqlite.connect(":memory:") as conn:
        repo = SQLiteMigrationHistoryRepository(conn, enable_tracing=False)
        await repo.initialize()
        yield repo


class TestCreateAndGet:
    """Tests for create and get."""

    async def test_round_trip(self, repository):
        history = make_history("2026-10-19T12:30:05", migration_filter='{"prison_ids":["MDI"]}')

        await repository.create(history)
        loaded = await repository.get("2026-10-19T12:30:05")

        assert loaded == history

    async def test_get_missing_returns_none(self, repository):
        assert await repository.get("2026-10-19T12:30:05") is None

    async def test_duplicate_id_is_rejected(self, repository):
        await repository.create(make_history("2026-10-19T12:30:05"))

        with pytest.raises(Exception):  # noqa: B017
            await repository.create(make_history("2026-10-19T12:30:05"))


class TestFindAll:
    """Tests for find_all."""

    @pytest.fixture
    async def populated(self, repository):
        await repository.create(make_history("2026-10-17T09:00:00", migration_filter='{"prison_ids":["MDI"]}'))
        await repository.create(
            make_history(
                "2026-10-18T09:00:00",
                domain_type="VISITS",
                status=MigrationStatus.COMPLETED,
                records_failed=2,
            )
        )
        await repository.create(make_history("2026-10-19T09:00:00", migration_filter='{"prison_ids":["LEI"]}'))
        return repository

    async def test_newest_first(self, populated):
        rows = await populated.find_all(HistoryFilter())

        assert [row.migration_id for row in rows] == [
            "2026-10-19T09:00:00",
            "2026-10-18T09:00:00",
            "2026-10-17T09:00:00",
        ]

    async def test_by_domain_type(self, populated):
        rows = await populated.find_all(HistoryFilter(domain_types=("VISITS",)))

        assert [row.migration_id for row in rows] == ["2026-10-18T09:00:00"]

    async def test_by_date_range(self, populated):
        rows = await populated.find_all(
            HistoryFilter(
                from_date_time=datetime(2026, 10, 18),
                to_date_time=datetime(2026, 10, 18, 23, 59),
            )
        )

        assert [row.migration_id for row in rows] == ["2026-10-18T09:00:00"]

    async def test_only_failures(self, populated):
        rows = await populated.find_all(HistoryFilter(include_only_failures=True))

        assert [row.records_failed for row in rows] == [2]

    async def test_filter_contains(self, populated):
        rows = await populated.find_all(HistoryFilter(filter_contains="LEI"))

        assert [row.migration_id for row in rows] == ["2026-10-19T09:00:00"]

    async def test_criteria_are_combined(self, populated):
        rows = await populated.find_all(
            HistoryFilter(domain_types=("ALERTS",), filter_contains="MDI")
        )

        assert [row.migration_id for row in rows] == ["2026-10-17T09:00:00"]


class TestGetActive:
    """Tests for get_active."""

    async def test_no_active_migration(self, repository):
        await repository.create(make_history("2026-10-19T09:00:00", status=MigrationStatus.COMPLETED))

        assert await repository.get_active("ALERTS") is None

    @pytest.mark.parametrize(
        "status", [MigrationStatus.STARTED, MigrationStatus.CANCELLED_REQUESTED]
    )
    async def test_active_statuses(self, repository, status):
        await repository.create(make_history("2026-10-19T09:00:00", status=status))

        active = await repository.get_active("ALERTS")

        assert active is not None
        assert active.migration_id == "2026-10-19T09:00:00"

    async def test_other_domains_are_ignored(self, repository):
        await repository.create(make_history("2026-10-19T09:00:00", domain_type="VISITS"))

        assert await repository.get_active("ALERTS") is None


class TestTransition:
    """Tests for conditional status transitions."""

    async def test_transition_from_allowed_status(self, repository):
        await repository.create(make_history("2026-10-19T09:00:00"))
        ended = datetime(2026, 10, 19, 10, 0, 0)

        updated = await repository.transition(
            "2026-10-19T09:00:00",
            MigrationStatus.COMPLETED,
            (MigrationStatus.STARTED,),
            when_ended=ended,
            records_migrated=8,
            records_failed=2,
        )

        assert updated is True
        row = await repository.get("2026-10-19T09:00:00")
        assert row.status == MigrationStatus.COMPLETED
        assert row.when_ended == ended
        assert row.records_migrated == 8
        assert row.records_failed == 2

    async def test_transition_from_other_status_is_refused(self, repository):
        await repository.create(make_history("2026-10-19T09:00:00", status=MigrationStatus.CANCELLED))

        updated = await repository.transition(
            "2026-10-19T09:00:00",
            MigrationStatus.COMPLETED,
            (MigrationStatus.STARTED,),
            records_migrated=8,
        )

        assert updated is False
        row = await repository.get("2026-10-19T09:00:00")
        assert row.status == MigrationStatus.CANCELLED
        assert row.records_migrated == 0

    async def test_transition_of_missing_row(self, repository):
        assert (
            await repository.transition(
                "2026-10-19T09:00:00", MigrationStatus.CANCELLED, (MigrationStatus.STARTED,)
            )
            is False
        )

    async def test_transition_leaves_unset_fields(self, repository):
        await repository.create(make_history("2026-10-19T09:00:00"))

        await repository.transition(
            "2026-10-19T09:00:00",
            MigrationStatus.CANCELLED_REQUESTED,
            (MigrationStatus.STARTED,),
        )

        row = await repository.get("2026-10-19T09:00:00")
        assert row.status == MigrationStatus.CANCELLED_REQUESTED
        assert row.when_ended is None
        assert row.estimated_record_count == 10


class TestInMemoryRepository:
    """Tests specific to the in-memory repository."""

    async def test_rows_are_copied(self):
        repo = InMemoryMigrationHistoryRepository(enable_tracing=False)
        history = make_history("2026-10-19T09:00:00")
        await repo.create(history)

        history.status = MigrationStatus.COMPLETED
        loaded = await repo.get("2026-10-19T09:00:00")
        loaded.records_migrated = 99

        reloaded = await repo.get("2026-10-19T09:00:00")
        assert reloaded.status == MigrationStatus.STARTED
        assert reloaded.records_migrated == 0

    async def test_clear(self):
        repo = InMemoryMigrationHistoryRepository(enable_tracing=False)
        await repo.create(make_history("2026-10-19T09:00:00"))

        await repo.clear()

        assert await repo.find_all(HistoryFilter()) == []
