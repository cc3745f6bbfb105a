"""
Migration history repository protocol.

A history repository persists one ``MigrationHistory`` row per run. Status
transitions are conditional: ``transition`` only updates a row whose current
status is one of the allowed source statuses, so two deliveries of the same
status-check message cannot finalise a run twice.
"""

from datetime import datetime
from typing import Protocol, runtime_checkable

from legacysync.models import HistoryFilter, MigrationHistory, MigrationStatus


@runtime_checkable
class MigrationHistoryRepository(Protocol):
    """Storage for migration history rows."""

    async def create(self, history: MigrationHistory) -> None:
        """Insert a new history row."""
        ...

    async def get(self, migration_id: str) -> MigrationHistory | None:
        """Get a row by run id, or None if absent."""
        ...

    async def find_all(self, history_filter: HistoryFilter) -> list[MigrationHistory]:
        """Find rows matching the filter, newest first."""
        ...

    async def get_active(self, domain_type: str) -> MigrationHistory | None:
        """Get the most recent STARTED or CANCELLED_REQUESTED row of a domain."""
        ...

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
        """
        Move a row to a new status if it currently holds one of from_statuses.

        Counts and end time are only written when given.

        Returns:
            True if the row was updated
        """
        ...


__all__ = ["MigrationHistoryRepository"]
