"""
End-to-end migration runs on the in-memory infrastructure.

Each test starts a run through the Coordinator and drives the queue with
MigrationTestHarness until it drains, then checks the target, the mapping
store, the history row and the telemetry trail.
"""

import pytest

from legacysync.engine import ByLastIdMigrationService
from legacysync.exceptions import MigrationAlreadyInProgressError
from legacysync.messages import ByPageNumber, MigrationMessageType, MigrationPage
from legacysync.models import HistoryFilter, MigrationConfig, MigrationMapping, MigrationStatus
from legacysync.queue import InMemoryQueueConfig
from legacysync.testing import InMemoryMappingClient, MigrationTestHarness
from tests.fixtures import Alert, AlertsDomain, AlertsFilter, FakeAlertsSource, make_alerts

QUEUE_ID = "ALERTS"


@pytest.fixture
def source() -> FakeAlertsSource:
    return FakeAlertsSource(make_alerts(25))


@pytest.fixture
def service(harness, domain, migration_config):
    return harness.create_service(domain, migration_config)


class TestCompletedMigration:
    """A run over every record completes and reports its counts."""

    async def test_migrates_every_record(self, harness, service, source, target, mappings):
        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert sorted(target.created_ids()) == list(range(1, 26))
        assert await mappings.count_by_migration_id(context.migration_id) == 25

        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.estimated_record_count == 25
        assert history.records_migrated == 25
        assert history.records_failed == 0
        assert history.when_ended is not None

    async def test_pages_cover_the_estimate(self, harness, service, source):
        await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert source.get_ids_calls[0] == (0, 1)
        assert sorted(source.get_ids_calls[1:]) == [(0, 10), (1, 10), (2, 10)]

    async def test_telemetry_trail(self, harness, service):
        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        telemetry = harness.telemetry
        assert telemetry.names()[0] == "alerts-migration-started"
        assert telemetry.count("alerts-migration-entity-migrated") == 25
        [completed] = telemetry.find("alerts-migration-completed")
        assert completed.properties["migrationId"] == context.migration_id
        assert completed.properties["recordsMigrated"] == "25"
        assert completed.properties["recordsFailed"] == "0"
        assert telemetry.names()[-1] == "alerts-migration-completed"

    async def test_domain_is_free_again_after_completion(self, harness, service):
        await service.start_migration(AlertsFilter())
        assert await harness.history.is_migration_in_progress(QUEUE_ID)

        await harness.run_until_idle(QUEUE_ID)

        assert not await harness.history.is_migration_in_progress(QUEUE_ID)

    async def test_second_run_refused_while_active(self, harness, service, target):
        context = await service.start_migration(AlertsFilter())

        with pytest.raises(MigrationAlreadyInProgressError) as exc_info:
            await service.start_migration(AlertsFilter())

        assert exc_info.value.migration_id == context.migration_id
        await harness.run_until_idle(QUEUE_ID)
        assert len(target.created_ids()) == 25

    async def test_empty_source_completes(self, harness, target, mappings, migration_config):
        service = harness.create_service(
            AlertsDomain(source=FakeAlertsSource(), target=target, mappings=mappings),
            migration_config,
        )

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.records_migrated == 0

    async def test_filter_limits_the_run(self, harness, target, mappings, migration_config):
        source = FakeAlertsSource(make_alerts(4) + [Alert(alert_id=5, prison_id="LEI", code="CODE5")])
        service = harness.create_service(
            AlertsDomain(source=source, target=target, mappings=mappings), migration_config
        )

        context = await service.start_migration(AlertsFilter(prison_ids=["LEI"]))
        await harness.run_until_idle(QUEUE_ID)

        assert target.created_ids() == [5]
        history = await harness.history.get(context.migration_id)
        assert history.records_migrated == 1
        assert await harness.history.find_all(HistoryFilter(filter_contains="LEI")) == [history]


class TestIdempotency:
    """Re-delivered and re-run work never creates a record twice."""

    async def test_previously_migrated_records_are_skipped(self, harness, target, source, migration_config):
        mappings = InMemoryMappingClient(
            [MigrationMapping(source_id=str(alert_id), target_id=f"dps-{alert_id}") for alert_id in range(1, 11)]
        )
        service = harness.create_service(
            AlertsDomain(source=source, target=target, mappings=mappings), migration_config
        )

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert sorted(target.created_ids()) == list(range(11, 26))
        assert harness.telemetry.count("alerts-migration-entity-skipped") == 10
        history = await harness.history.get(context.migration_id)
        assert history.records_migrated == 15

    async def test_duplicated_page_delivery(self, harness, service, target):
        context = await service.start_migration(AlertsFilter())
        await harness.process_next_batch(QUEUE_ID)

        # the same page delivered twice
        await harness.queue.send_message(
            MigrationMessageType.MIGRATE_BY_PAGE,
            context.with_body(
                MigrationPage(filter=AlertsFilter(), page_key=ByPageNumber(page_number=0), page_size=10)
            ),
        )
        await harness.run_until_idle(QUEUE_ID)

        assert sorted(target.created_ids()) == list(range(1, 26))
        assert harness.telemetry.count("alerts-migration-entity-skipped") == 10
        assert harness.telemetry.count("alerts-migration-completed") == 1


class TestFailures:
    """Failed records are retried, then counted as failures."""

    async def test_persistent_failure_is_dead_lettered(self, harness, service, target):
        target.errors[3] = ConnectionError("target down")

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.records_migrated == 24
        assert history.records_failed == 1
        [dead] = harness.queue.get_dead_letters(QUEUE_ID)
        assert dead.type == MigrationMessageType.MIGRATE_ENTITY
        assert dead.context.body == 3

    async def test_receive_limit_controls_retries(self, source, target, mappings, migration_config):
        harness = MigrationTestHarness(InMemoryQueueConfig(max_receive_count=2))
        service = harness.create_service(
            AlertsDomain(source=source, target=target, mappings=mappings), migration_config
        )
        calls = []
        original = target.create

        async def failing_create(record):
            calls.append(record.legacy_id)
            if record.legacy_id == 3:
                raise ConnectionError("target down")
            return await original(record)

        target.create = failing_create

        await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert calls.count(3) == 2

    async def test_transient_mapping_failure_is_retried(self, harness, service, target, mappings):
        mappings.fail_next_creates(2)

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert sorted(target.created_ids()) == list(range(1, 26))
        assert len(mappings.all()) == 25
        assert mappings.create_calls == 27
        assert harness.telemetry.count("alerts-migration-mapping-retry-scheduled") == 2
        history = await harness.history.get(context.migration_id)
        assert history.records_migrated == 25
        assert history.records_failed == 0

    async def test_mapping_conflict_is_not_retried(self, harness, target, source, migration_config):
        mappings = InMemoryMappingClient([MigrationMapping(source_id="77", target_id="dps-3")])
        service = harness.create_service(
            AlertsDomain(source=source, target=target, mappings=mappings), migration_config
        )

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert target.created_ids().count(3) == 1
        assert mappings.create_calls == 25
        [duplicate] = harness.telemetry.find("alerts-migration-duplicate")
        assert duplicate.properties["duplicateSourceId"] == "3"
        assert duplicate.properties["existingSourceId"] == "77"
        assert harness.telemetry.count("alerts-migration-mapping-retry-scheduled") == 0
        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.records_migrated == 24

    async def test_rejected_and_missing_records(self, harness, service, source, target):
        target.rejected.add(4)
        source.missing.add(5)

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        history = await harness.history.get(context.migration_id)
        assert history.records_migrated == 23
        assert harness.telemetry.count("alerts-migration-entity-rejected") == 1
        assert harness.telemetry.count("alerts-migration-entity-missing") == 1


class TestCompletionDebounce:
    """Completion is never declared while work is still outstanding."""

    async def test_early_status_checks_wait_for_the_work(self, harness, domain, target):
        service = harness.create_service(
            domain,
            MigrationConfig(
                page_size=10,
                complete_check_delay_seconds=0,
                complete_check_count=3,
                cancel_purge_total_seconds=0,
                enable_tracing=False,
            ),
        )

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert len(target.created_ids()) == 25
        [completed] = harness.telemetry.find("alerts-migration-completed")
        assert completed.properties["recordsMigrated"] == "25"
        assert (await harness.history.get(context.migration_id)).records_migrated == 25

    async def test_slow_redelivery_keeps_the_run_open(self, source, target, mappings, migration_config):
        harness = MigrationTestHarness(InMemoryQueueConfig(redelivery_delay_seconds=120))
        service = harness.create_service(
            AlertsDomain(source=source, target=target, mappings=mappings), migration_config
        )
        target.errors[7] = ConnectionError("target down")

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.records_failed == 1
        assert harness.clock.now >= 4 * 120


class TestCancellation:
    """Cancelling a run stops fan-out and finalises it as CANCELLED."""

    async def test_cancel_before_pages_are_listed(self, harness, service, target):
        context = await service.start_migration(AlertsFilter())
        await harness.process_next_batch(QUEUE_ID)

        await service.cancel(context.migration_id)
        assert (await harness.history.get(context.migration_id)).status == MigrationStatus.CANCELLED_REQUESTED

        await harness.run_until_idle(QUEUE_ID)

        assert target.created == []
        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.CANCELLED
        assert history.records_migrated == 0
        assert harness.telemetry.count("alerts-migration-cancelled") == 1
        assert harness.telemetry.count("alerts-migration-completed") == 0
        assert harness.audit.whats() == ["MIGRATION_STARTED", "MIGRATION_CANCEL_REQUESTED"]

    async def test_cancel_part_way_through(self, harness, service, target):
        context = await service.start_migration(AlertsFilter())
        await harness.process_next_batch(QUEUE_ID)
        await harness.process_next_batch(QUEUE_ID)
        await harness.process_next_batch(QUEUE_ID)

        await service.cancel(context.migration_id)
        await harness.run_until_idle(QUEUE_ID)

        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.CANCELLED
        assert history.records_migrated == len(target.created_ids())
        assert len(target.created_ids()) < 25
        [cancelled] = harness.telemetry.find("alerts-migration-cancelled")
        assert cancelled.properties["recordsMigrated"] == str(history.records_migrated)

    async def test_new_run_allowed_after_cancel(self, harness, service):
        context = await service.start_migration(AlertsFilter())
        await service.cancel(context.migration_id)
        await harness.run_until_idle(QUEUE_ID)

        assert not await harness.history.is_migration_in_progress(QUEUE_ID)


class TestByLastIdMigration:
    """Runs using key-ordered paging."""

    @pytest.mark.parametrize("parallel", [1, 3])
    async def test_migrates_every_record_once(self, harness, domain, target, migration_config, parallel):
        service = harness.create_service(
            domain,
            migration_config,
            service_class=ByLastIdMigrationService,
            get_ids_parallel_count=parallel,
        )

        context = await service.start_migration(AlertsFilter())
        await harness.run_until_idle(QUEUE_ID)

        assert sorted(target.created_ids()) == list(range(1, 26))
        history = await harness.history.get(context.migration_id)
        assert history.status == MigrationStatus.COMPLETED
        assert history.records_migrated == 25
