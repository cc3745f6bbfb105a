"""
Migration history service.

Records the lifecycle of every migration run on top of a
``MigrationHistoryRepository``:

    record_migration_started      -> STARTED
    record_cancel_requested       STARTED -> CANCELLED_REQUESTED
    record_migration_completed    STARTED -> COMPLETED
    record_migration_cancelled    STARTED | CANCELLED_REQUESTED -> CANCELLED

Finalisation returns False when the row was not in an allowed status, which
is how a duplicated status-check delivery learns it lost the race.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from legacysync.exceptions import MigrationNotFoundError, MigrationStateError
from legacysync.history.interface import MigrationHistoryRepository
from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus

logger = logging.getLogger(__name__)


class MigrationHistoryService:
    """
    Lifecycle operations over migration history rows.

    Example:
        >>> service = MigrationHistoryService(InMemoryMigrationHistoryRepository())
        >>> await service.record_migration_started("2026-10-19T12:30:05", "ALERTS", 2, '{"prison_ids":[]}')
        >>> await service.is_migration_in_progress("ALERTS")
        True
    """

    def __init__(
        self,
        repository: MigrationHistoryRepository,
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """
        Args:
            repository: Storage for history rows
            now: Time source for start and end times
        """
        self._repository = repository
        self._now = now

    @property
    def repository(self) -> MigrationHistoryRepository:
        return self._repository

    async def record_migration_started(
        self,
        migration_id: str,
        domain_type: str,
        estimated_record_count: int = 0,
        migration_filter: str | None = None,
    ) -> MigrationHistory:
        history = MigrationHistory(
            migration_id=migration_id,
            domain_type=domain_type,
            status=MigrationStatus.STARTED,
            when_started=self._now(),
            estimated_record_count=estimated_record_count,
            filter=migration_filter,
        )
        await self._repository.create(history)
        logger.info(
            "Recorded %s migration %s started with %d estimated records",
            domain_type,
            migration_id,
            estimated_record_count,
        )
        return history

    async def record_cancel_requested(self, migration_id: str) -> None:
        """
        Mark a running migration as being cancelled.

        Raises:
            MigrationNotFoundError: If the run does not exist
            MigrationStateError: If the run is not STARTED
        """
        updated = await self._repository.transition(
            migration_id,
            MigrationStatus.CANCELLED_REQUESTED,
            (MigrationStatus.STARTED,),
        )
        if not updated:
            history = await self.get(migration_id)
            raise MigrationStateError(
                migration_id, history.status.value, "only a started migration can be cancelled"
            )

    async def record_migration_completed(
        self,
        migration_id: str,
        records_migrated: int,
        records_failed: int,
    ) -> bool:
        updated = await self._repository.transition(
            migration_id,
            MigrationStatus.COMPLETED,
            (MigrationStatus.STARTED,),
            when_ended=self._now(),
            records_migrated=records_migrated,
            records_failed=records_failed,
        )
        if not updated:
            logger.warning("Migration %s was not STARTED, completion ignored", migration_id)
        return updated

    async def record_migration_cancelled(
        self,
        migration_id: str,
        records_migrated: int,
        records_failed: int,
    ) -> bool:
        updated = await self._repository.transition(
            migration_id,
            MigrationStatus.CANCELLED,
            (MigrationStatus.STARTED, MigrationStatus.CANCELLED_REQUESTED),
            when_ended=self._now(),
            records_migrated=records_migrated,
            records_failed=records_failed,
        )
        if not updated:
            logger.warning("Migration %s is already finalised, cancellation ignored", migration_id)
        return updated

    async def get(self, migration_id: str) -> MigrationHistory:
        """
        Raises:
            MigrationNotFoundError: If the run does not exist
        """
        history = await self._repository.get(migration_id)
        if history is None:
            raise MigrationNotFoundError(migration_id)
        return history

    async def is_cancelling(self, migration_id: str) -> bool:
        history = await self._repository.get(migration_id)
        return history is not None and history.status == MigrationStatus.CANCELLED_REQUESTED

    async def is_migration_in_progress(self, domain_type: str) -> bool:
        return await self._repository.get_active(domain_type) is not None

    async def get_active_migration(self, domain_type: str) -> MigrationHistory | None:
        return await self._repository.get_active(domain_type)

    async def find_all(self, history_filter: HistoryFilter | None = None) -> list[MigrationHistory]:
        return await self._repository.find_all(history_filter or HistoryFilter())


__all__ = ["MigrationHistoryService"]
