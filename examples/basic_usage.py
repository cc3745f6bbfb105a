"""
Basic Usage Example

This example migrates a small set of visit records end to end:
- Describing a record type with a MigrationDomain
- Wiring the queue, history store and telemetry
- Running the listener until the migration finishes
- Reading the migration history

Everything runs in memory. Swap InMemoryMigrationQueue for
RedisMigrationQueue and the history repository for the SQLite or
PostgreSQL one to run across processes.

Run with: python examples/basic_usage.py
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel

from legacysync import (
    IdPage,
    InMemoryMigrationHistoryRepository,
    InMemoryMigrationQueue,
    ListenerConfig,
    MigrationConfig,
    MigrationContext,
    MigrationDomain,
    MigrationHistoryService,
    MigrationMapping,
    MigrationMessageListener,
    MigrationService,
    OpenTelemetryTelemetryClient,
)
from legacysync.testing import InMemoryMappingClient

# =============================================================================
# Step 1: Describe the records
# =============================================================================
# The filter selects which legacy records a run covers. Source records are
# fetched one at a time and transformed into the target's shape.


class VisitsFilter(BaseModel):
    prison_id: str | None = None


class LegacyVisit(BaseModel):
    visit_id: int
    prison_id: str
    visitor: str


class NewVisit(BaseModel):
    legacy_id: int
    prison_code: str
    visitor_name: str


# =============================================================================
# Step 2: Source and target clients
# =============================================================================
# In a real deployment these call the legacy system and the new service
# over HTTP. Here they hold records in dictionaries.


class LegacyVisitsApi:
    def __init__(self, visits: list[LegacyVisit]) -> None:
        self.visits = {visit.visit_id: visit for visit in visits}

    async def get_ids(self, migration_filter: VisitsFilter, page_number: int, page_size: int) -> IdPage[int]:
        ids = sorted(
            visit.visit_id
            for visit in self.visits.values()
            if migration_filter.prison_id in (None, visit.prison_id)
        )
        start = page_number * page_size
        return IdPage(items=ids[start : start + page_size], total_count=len(ids))

    async def get_record(self, source_id: int) -> LegacyVisit | None:
        return self.visits.get(source_id)


class VisitsService:
    def __init__(self) -> None:
        self.visits: dict[str, NewVisit] = {}

    async def create(self, record: NewVisit) -> str | None:
        target_id = f"visit-{record.legacy_id}"
        self.visits[target_id] = record
        return target_id


class VisitsDomain(MigrationDomain[VisitsFilter, int, LegacyVisit, NewVisit, MigrationMapping]):
    domain_type = "VISITS"
    telemetry_name = "visits"
    filter_type = VisitsFilter
    id_type = int

    def transform(self, record: LegacyVisit, context: MigrationContext[Any]) -> NewVisit:
        return NewVisit(
            legacy_id=record.visit_id,
            prison_code=record.prison_id,
            visitor_name=record.visitor.title(),
        )


# =============================================================================
# Step 3: Run a migration
# =============================================================================


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("Legacy Sync Basic Usage Example")
    print("=" * 60)

    source = LegacyVisitsApi(
        [
            LegacyVisit(visit_id=i, prison_id="MDI" if i % 3 else "LEI", visitor=f"visitor {i}")
            for i in range(1, 31)
        ]
    )
    target = VisitsService()
    mappings = InMemoryMappingClient()

    queue = InMemoryMigrationQueue(enable_tracing=False)
    history = MigrationHistoryService(InMemoryMigrationHistoryRepository(enable_tracing=False))
    service = MigrationService(
        VisitsDomain(source=source, target=target, mappings=mappings),
        queue,
        history,
        OpenTelemetryTelemetryClient(),
        MigrationConfig(
            page_size=5,
            complete_check_delay_seconds=1,
            complete_check_retry_seconds=0,
            complete_check_count=3,
            enable_tracing=False,
        ),
    )
    listener = MigrationMessageListener(
        queue, [service], ListenerConfig(poll_interval_seconds=0.05, enable_tracing=False)
    )

    print("\n1. Starting the listener")
    await listener.start()

    print("\n2. Starting a migration of the MDI visits")
    context = await service.start_migration(VisitsFilter(prison_id="MDI"))
    print(f"   Migration id: {context.migration_id}")
    print(f"   Estimated records: {context.estimated_count}")

    print("\n3. Waiting for the migration to finish")
    migration = await history.get(context.migration_id)
    while not migration.status.is_terminal:
        await asyncio.sleep(0.1)
        migration = await history.get(context.migration_id)

    await listener.stop()

    print("\n4. Migration history:")
    print(f"   Status: {migration.status.value}")
    print(f"   Records migrated: {migration.records_migrated}")
    print(f"   Records failed: {migration.records_failed}")
    print(f"   Filter: {migration.filter}")

    print("\n5. Target now holds:")
    for target_id, visit in sorted(target.visits.items())[:3]:
        print(f"   {target_id}: {visit.visitor_name} at {visit.prison_code}")
    print(f"   ... {len(target.visits)} visits in total")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
