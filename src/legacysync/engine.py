"""
Generic migration engine.

``MigrationService`` is the queue-driven state machine that migrates one
record type. It is instantiated once per domain with a ``MigrationDomain``
supplying the client adapters and types:

    start_migration            Coordinator: record count, history row, MIGRATE_ENTITIES
    divide_entities_by_page    Page Divider: MIGRATE_BY_PAGE per page + first status check
    migrate_entities_for_page  Page Processor: MIGRATE_ENTITY per listed id
    migrate_entity             Entity Migrator: idempotent create + mapping
    migrate_status_check       Status Checker: debounced completion detection
    cancel                     Cancel request: flag, purge now and again, CANCEL_MIGRATION
    cancel_migrate_status_check  Cancellation Checker: purge and debounce to CANCELLED
    retry_create_mapping       Mapping retry without repeating the target create

All coordination state lives in the history store, the mapping store or the
message being handled. Handlers are safe to run concurrently and under
redelivery.

Example:
    >>> service = MigrationService(
    ...     domain=AlertsDomain(source=nomis, target=alerts_api, mappings=mapping_api),
    ...     queue=InMemoryMigrationQueue(),
    ...     history=MigrationHistoryService(InMemoryMigrationHistoryRepository()),
    ...     telemetry=OpenTelemetryTelemetryClient(),
    ...     config=MigrationConfig(page_size=500),
    ... )
    >>> context = await service.start_migration(AlertsFilter(prison_ids=["MDI"]))
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from legacysync.clients import ByLastIdSourceClient, MigrationDomain
from legacysync.exceptions import (
    DuplicateMappingError,
    MessageDecodeError,
    MigrationAlreadyInProgressError,
    MigrationStateError,
    TargetConflictError,
)
from legacysync.history.service import MigrationHistoryService
from legacysync.messages import (
    ByLastId,
    ByPageNumber,
    MigrationContext,
    MigrationMessage,
    MigrationMessageType,
    MigrationPage,
    MigrationStatusCheck,
)
from legacysync.models import MigrationConfig, duration_minutes, generate_migration_id
from legacysync.observability import Tracer, create_tracer
from legacysync.observability.attributes import (
    ATTR_CHECK_COUNT,
    ATTR_DOMAIN_TYPE,
    ATTR_ENTITY_OUTCOME,
    ATTR_ESTIMATED_COUNT,
    ATTR_MIGRATION_ID,
    ATTR_PAGE_COUNT,
    ATTR_PAGE_SIZE,
    ATTR_RECORDS_FAILED,
    ATTR_RECORDS_MIGRATED,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
)
from legacysync.queue.interface import MigrationQueue
from legacysync.telemetry import (
    AUDIT_MIGRATION_CANCEL_REQUESTED,
    AUDIT_MIGRATION_STARTED,
    AuditClient,
    LoggingAuditClient,
    TelemetryClient,
)

logger = logging.getLogger(__name__)

FilterT = TypeVar("FilterT")
IdT = TypeVar("IdT")

ContextHandler = Callable[[MigrationContext[Any]], Awaitable[None]]


class MigrationService(Generic[FilterT, IdT]):
    """
    Page-number migration engine for one domain.

    Pages are addressed with ``ByPageNumber``. Subclasses change the paging
    strategy by overriding ``_page_key_annotation``, ``divide_entities_by_page`` and
    ``migrate_entities_for_page`` (see ``ByLastIdMigrationService``).
    """

    def __init__(
        self,
        domain: MigrationDomain[FilterT, IdT, Any, Any, Any],
        queue: MigrationQueue,
        history: MigrationHistoryService,
        telemetry: TelemetryClient,
        config: MigrationConfig | None = None,
        *,
        audit: AuditClient | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the migration service.

        Args:
            domain: Adapter bundling the domain clients and types
            queue: Queue gateway shared by every stage
            history: History service recording the run lifecycle
            telemetry: Sink for migration telemetry events
            config: Paging and completion-check tuning
            audit: Audit trail for run starts and cancel requests. Defaults to
                   LoggingAuditClient.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on config.enable_tracing setting.
        """
        self._domain = domain
        self._queue = queue
        self._history = history
        self._telemetry = telemetry
        self._audit = audit or LoggingAuditClient()
        self._config = config or MigrationConfig()

        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._background_tasks: set[asyncio.Task[None]] = set()

        self._body_adapters: dict[MigrationMessageType, TypeAdapter[Any]] = {
            MigrationMessageType.MIGRATE_ENTITIES: TypeAdapter(domain.filter_type),
            MigrationMessageType.MIGRATE_BY_PAGE: TypeAdapter(
                MigrationPage[domain.filter_type, self._page_key_annotation()]
            ),
            MigrationMessageType.MIGRATE_ENTITY: TypeAdapter(domain.id_type),
            MigrationMessageType.MIGRATE_STATUS_CHECK: TypeAdapter(MigrationStatusCheck),
            MigrationMessageType.CANCEL_MIGRATION: TypeAdapter(MigrationStatusCheck),
            MigrationMessageType.RETRY_MIGRATION_MAPPING: TypeAdapter(domain.mapping_type),
        }
        self._handlers: dict[MigrationMessageType, ContextHandler] = {
            MigrationMessageType.MIGRATE_ENTITIES: self.divide_entities_by_page,
            MigrationMessageType.MIGRATE_BY_PAGE: self.migrate_entities_for_page,
            MigrationMessageType.MIGRATE_ENTITY: self.migrate_entity,
            MigrationMessageType.MIGRATE_STATUS_CHECK: self.migrate_status_check,
            MigrationMessageType.CANCEL_MIGRATION: self.cancel_migrate_status_check,
            MigrationMessageType.RETRY_MIGRATION_MAPPING: self.retry_create_mapping,
        }

    def _page_key_annotation(self) -> Any:
        return ByPageNumber

    @property
    def domain(self) -> MigrationDomain[FilterT, IdT, Any, Any, Any]:
        return self._domain

    @property
    def domain_type(self) -> str:
        return self._domain.domain_type

    @property
    def config(self) -> MigrationConfig:
        return self._config

    def _event_name(self, suffix: str) -> str:
        return f"{self._domain.telemetry_name}-migration-{suffix}"

    def _track(self, suffix: str, context: MigrationContext[Any], **properties: Any) -> None:
        self._telemetry.track_event(
            self._event_name(suffix),
            {"migrationId": context.migration_id, **properties},
        )

    # Source access

    async def get_total_number_of_ids(self, migration_filter: FilterT) -> int:
        """List a page of one id purely to read the total."""
        page = await self._domain.source.get_ids(migration_filter, 0, 1)
        return page.total_count

    async def get_page_of_ids(self, migration_filter: FilterT, page_size: int, page_number: int) -> list[IdT]:
        page = await self._domain.source.get_ids(migration_filter, page_number, page_size)
        return list(page.items)

    async def get_migration_count(self, migration_id: str) -> int:
        return await self._domain.mappings.count_by_migration_id(migration_id)

    # Coordinator

    async def start_migration(self, migration_filter: FilterT) -> MigrationContext[FilterT]:
        """
        Start a migration run.

        Raises:
            MigrationAlreadyInProgressError: If a run of this domain is active
        """
        with self._tracer.span(
            "legacysync.engine.start_migration",
            {ATTR_DOMAIN_TYPE: self.domain_type},
        ):
            active = await self._history.get_active_migration(self.domain_type)
            if active is not None:
                raise MigrationAlreadyInProgressError(self.domain_type, active.migration_id)

            estimated_count = await self.get_total_number_of_ids(migration_filter)
            context: MigrationContext[FilterT] = MigrationContext(
                domain_type=self.domain_type,
                migration_id=generate_migration_id(),
                estimated_count=estimated_count,
                properties=await self._domain.context_properties(migration_filter),
                body=migration_filter,
            )

            await self._history.record_migration_started(
                migration_id=context.migration_id,
                domain_type=self.domain_type,
                estimated_record_count=estimated_count,
                migration_filter=self._filter_text(migration_filter),
            )
            self._track(
                "started",
                context,
                estimatedCount=estimated_count,
                **self._domain.filter_properties(migration_filter),
            )
            await self._send_audit_event(
                AUDIT_MIGRATION_STARTED,
                context.migration_id,
                filter=self._filter_text(migration_filter),
            )
            await self._queue.send_message(MigrationMessageType.MIGRATE_ENTITIES, context)

            logger.info(
                "Started %s migration %s with an estimated %d records",
                self.domain_type,
                context.migration_id,
                estimated_count,
            )
            return context

    def _filter_text(self, migration_filter: FilterT) -> str:
        return TypeAdapter(self._domain.filter_type).dump_json(migration_filter).decode()

    async def _send_audit_event(self, what: str, migration_id: str, **details: Any) -> None:
        # audit failures never fail the request
        try:
            await self._audit.send_audit_event(
                what,
                {"migrationType": self.domain_type, "migrationId": migration_id, **details},
            )
        except Exception as e:
            logger.error(
                f"Failed to send audit event {what} for migration {migration_id}: {e}",
                exc_info=True,
            )

    # Page Divider

    async def divide_entities_by_page(self, context: MigrationContext[FilterT]) -> None:
        page_size = self._config.page_size
        page_count = math.ceil(context.estimated_count / page_size)

        with self._tracer.span(
            "legacysync.engine.divide_entities_by_page",
            {
                ATTR_MIGRATION_ID: context.migration_id,
                ATTR_ESTIMATED_COUNT: context.estimated_count,
                ATTR_PAGE_SIZE: page_size,
                ATTR_PAGE_COUNT: page_count,
            },
        ):
            for page_number in range(page_count):
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_BY_PAGE,
                    context.with_body(
                        MigrationPage(
                            filter=context.body,
                            page_key=ByPageNumber(page_number=page_number),
                            page_size=page_size,
                        )
                    ),
                )
            await self.start_status_check(context)

        logger.info(
            "Divided %s migration %s into %d page(s)",
            self.domain_type,
            context.migration_id,
            page_count,
        )

    async def start_status_check(self, context: MigrationContext[Any]) -> None:
        # held back so the page messages have time to fan out entity messages
        await self._queue.send_message(
            MigrationMessageType.MIGRATE_STATUS_CHECK,
            context.with_body(MigrationStatusCheck()),
            delay_seconds=self._config.complete_check_delay_seconds,
        )

    # Page Processor

    async def migrate_entities_for_page(self, context: MigrationContext[MigrationPage[FilterT, Any]]) -> None:
        if await self._history.is_cancelling(context.migration_id):
            logger.info(
                "Migration %s is cancelling, not listing page %s",
                context.migration_id,
                context.body.page_key,
            )
            return

        page = context.body
        with self._tracer.span(
            "legacysync.engine.migrate_entities_for_page",
            {ATTR_MIGRATION_ID: context.migration_id, ATTR_PAGE_SIZE: page.page_size},
        ):
            source_ids = await self.get_page_of_ids(
                page.filter, page.page_size, page.page_key.page_number
            )
            for source_id in source_ids:
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_ENTITY, context.with_body(source_id)
                )

        logger.debug(
            "Page %d of migration %s produced %d entity message(s)",
            page.page_key.page_number,
            context.migration_id,
            len(source_ids),
        )

    # Entity Migrator

    async def migrate_entity(self, context: MigrationContext[IdT]) -> None:
        """
        Migrate one source record.

        Source fetch and target create failures propagate so the queue's
        redelivery and dead-letter handling governs retries.
        """
        source_id = context.body
        id_properties = self._domain.source_id_properties(source_id)

        with self._tracer.span(
            "legacysync.engine.migrate_entity",
            {ATTR_MIGRATION_ID: context.migration_id, ATTR_SOURCE_ID: str(source_id)},
        ) as span:
            existing = await self._domain.mappings.get_by_source_id(source_id)
            if existing is not None:
                logger.info("Will not migrate %s since it is already migrated", source_id)
                self._track("entity-skipped", context, **id_properties)
                self._set_outcome(span, "skipped")
                return

            record = await self._domain.source.get_record(source_id)
            if record is None:
                logger.warning("Source record %s no longer exists, skipping", source_id)
                self._track("entity-missing", context, **id_properties)
                self._set_outcome(span, "missing")
                return

            try:
                target_id = await self._domain.target.create(self._domain.transform(record, context))
            except TargetConflictError as e:
                self._track_duplicate(context, e.duplicate, e.existing)
                self._set_outcome(span, "duplicate")
                return

            if target_id is None:
                logger.warning("Target rejected %s from migration %s", source_id, context.migration_id)
                self._track("entity-rejected", context, **id_properties)
                self._set_outcome(span, "rejected")
                return

            if span is not None:
                span.set_attribute(ATTR_TARGET_ID, target_id)

            mapping = self._domain.build_mapping(source_id, target_id, context.migration_id)
            if await self.create_mapping_or_schedule_retry(mapping, context):
                self._track("entity-migrated", context, targetId=target_id, **id_properties)
                self._set_outcome(span, "migrated")
            else:
                self._set_outcome(span, "mapping-not-created")

    @staticmethod
    def _set_outcome(span: Any, outcome: str) -> None:
        if span is not None:
            span.set_attribute(ATTR_ENTITY_OUTCOME, outcome)

    async def create_mapping_or_schedule_retry(self, mapping: Any, context: MigrationContext[Any]) -> bool:
        """
        Create the mapping for a record that now exists on the target.

        A duplicate conflict is reported and not retried. Any other failure
        queues a RETRY_MIGRATION_MAPPING message carrying the mapping, so the
        target create is never repeated.

        Returns:
            True if the mapping was created
        """
        try:
            await self._domain.mappings.create_mapping(mapping)
            return True
        except DuplicateMappingError as e:
            self._track_duplicate(context, e.duplicate, e.existing)
            return False
        except Exception as e:
            logger.error(
                f"Failed to create mapping {mapping!r}, an attempt will be made to create it again: {e}",
                exc_info=True,
                extra={"migration_id": context.migration_id},
            )
            await self._queue.send_message(
                MigrationMessageType.RETRY_MIGRATION_MAPPING, context.with_body(mapping)
            )
            self._track(
                "mapping-retry-scheduled",
                context,
                **self._domain.mapping_properties(mapping, "mapping"),
            )
            return False

    def _track_duplicate(self, context: MigrationContext[Any], duplicate: Any, existing: Any) -> None:
        logger.warning(
            "Duplicate record detected in migration %s: %r conflicts with %r",
            context.migration_id,
            duplicate,
            existing,
        )
        self._track(
            "duplicate",
            context,
            **self._domain.mapping_properties(duplicate, "duplicate"),
            **self._domain.mapping_properties(existing, "existing"),
        )

    async def retry_create_mapping(self, context: MigrationContext[Any]) -> None:
        """Create a mapping whose first attempt failed. Transient failures propagate."""
        with self._tracer.span(
            "legacysync.engine.retry_create_mapping",
            {ATTR_MIGRATION_ID: context.migration_id},
        ):
            try:
                await self._domain.mappings.create_mapping(context.body)
            except DuplicateMappingError as e:
                self._track_duplicate(context, e.duplicate, e.existing)

    # Status Checker

    async def migrate_status_check(self, context: MigrationContext[MigrationStatusCheck]) -> None:
        if await self._history.is_cancelling(context.migration_id):
            return

        with self._tracer.span(
            "legacysync.engine.migrate_status_check",
            {ATTR_MIGRATION_ID: context.migration_id, ATTR_CHECK_COUNT: context.body.check_count},
        ):
            if await self._queue.is_probably_non_empty(context.domain_type):
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_STATUS_CHECK,
                    context.with_body(MigrationStatusCheck()),
                    delay_seconds=self._config.complete_check_scheduled_retry_seconds or 0,
                )
                return

            next_check = context.body.increment()
            if not next_check.has_checked_enough(self._config.complete_check_count):
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_STATUS_CHECK,
                    context.with_body(next_check),
                    delay_seconds=self._config.complete_check_retry_seconds,
                )
                return

            records_failed = await self._queue.count_failed(context.domain_type)
            records_migrated = await self.get_migration_count(context.migration_id)
            completed = await self._history.record_migration_completed(
                context.migration_id,
                records_migrated=records_migrated,
                records_failed=records_failed,
            )
            if completed:
                self._track_finished("completed", context, records_migrated, records_failed)

    def _track_finished(
        self,
        suffix: str,
        context: MigrationContext[Any],
        records_migrated: int,
        records_failed: int,
    ) -> None:
        logger.info(
            "%s migration %s %s: %d migrated, %d failed",
            self.domain_type,
            context.migration_id,
            suffix,
            records_migrated,
            records_failed,
            extra={ATTR_RECORDS_MIGRATED: records_migrated, ATTR_RECORDS_FAILED: records_failed},
        )
        self._track(
            suffix,
            context,
            estimatedCount=context.estimated_count,
            durationMinutes=duration_minutes(context.migration_id),
            recordsMigrated=records_migrated,
            recordsFailed=records_failed,
        )

    # Cancellation

    async def cancel(self, migration_id: str) -> None:
        """
        Request cancellation of a running migration.

        The run is flagged CANCELLED_REQUESTED straight away, so Page
        Processors stop fanning out. Pending work is purged now and again
        every ``cancel_purge_frequency_seconds`` for
        ``cancel_purge_total_seconds``, after which the Cancellation Checker
        takes over.

        Raises:
            MigrationNotFoundError: If the run does not exist
            MigrationStateError: If the run is not STARTED
        """
        migration = await self._history.get(migration_id)
        if migration.status.is_terminal:
            raise MigrationStateError(
                migration_id, migration.status.value, "a finished migration cannot be cancelled"
            )

        await self._history.record_cancel_requested(migration_id)
        context = MigrationContext(
            domain_type=migration.domain_type,
            migration_id=migration_id,
            estimated_count=migration.estimated_record_count,
            body=MigrationStatusCheck(),
        )
        self._track("cancel-requested", context)
        await self._send_audit_event(AUDIT_MIGRATION_CANCEL_REQUESTED, migration_id)
        logger.info("Cancel requested for %s migration %s", migration.domain_type, migration_id)

        await self._queue.purge_all(migration.domain_type)
        if self._config.cancel_purge_total_seconds <= 0:
            await self._send_cancel_check(context)
            return

        task = asyncio.create_task(self._purge_again_then_check(context))
        task.add_done_callback(self._on_background_task_done)
        self._background_tasks.add(task)

    async def _purge_again_then_check(self, context: MigrationContext[MigrationStatusCheck]) -> None:
        frequency = self._config.cancel_purge_frequency_seconds
        repeats = int(self._config.cancel_purge_total_seconds // frequency)
        for _ in range(repeats):
            await asyncio.sleep(frequency)
            await self._queue.purge_all(context.domain_type)
        await self._send_cancel_check(context)

    async def _send_cancel_check(self, context: MigrationContext[MigrationStatusCheck]) -> None:
        await self._queue.send_message(MigrationMessageType.CANCEL_MIGRATION, context)

    def _on_background_task_done(self, task: asyncio.Task[None]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled():
            exc = task.exception()
            if exc:
                logger.error(f"Cancellation purge task failed: {exc}", exc_info=exc)

    async def cancel_migrate_status_check(self, context: MigrationContext[MigrationStatusCheck]) -> None:
        with self._tracer.span(
            "legacysync.engine.cancel_migrate_status_check",
            {ATTR_MIGRATION_ID: context.migration_id, ATTR_CHECK_COUNT: context.body.check_count},
        ):
            if await self._queue.is_probably_non_empty(context.domain_type):
                await self._queue.purge_all(context.domain_type)
                await self._queue.send_message(
                    MigrationMessageType.CANCEL_MIGRATION,
                    context.with_body(MigrationStatusCheck()),
                    delay_seconds=self._config.complete_check_retry_seconds * 10,
                )
                return

            next_check = context.body.increment()
            if not next_check.has_checked_enough(self._config.complete_check_count):
                await self._queue.purge_all(context.domain_type)
                await self._queue.send_message(
                    MigrationMessageType.CANCEL_MIGRATION,
                    context.with_body(next_check),
                    delay_seconds=self._config.complete_check_retry_seconds,
                )
                return

            records_failed = await self._queue.count_failed(context.domain_type)
            records_migrated = await self.get_migration_count(context.migration_id)
            cancelled = await self._history.record_migration_cancelled(
                context.migration_id,
                records_migrated=records_migrated,
                records_failed=records_failed,
            )
            if cancelled:
                self._track_finished("cancelled", context, records_migrated, records_failed)

    # Dispatch

    def parse_context(self, message: MigrationMessage) -> MigrationContext[Any]:
        """
        Validate the message body into the typed payload for its message type.

        Raises:
            MessageDecodeError: If the body does not match the expected type
        """
        adapter = self._body_adapters[message.type]
        try:
            body = adapter.validate_python(message.context.body)
        except ValidationError as e:
            raise MessageDecodeError(message.type.value, str(e)) from e
        return message.context.with_body(body)

    async def handle_message(self, message: MigrationMessage) -> None:
        """Decode and run the stage a message drives."""
        context = self.parse_context(message)
        logger.debug(
            f"Handling {message.type.value} for migration {context.migration_id}",
            extra={"message_type": message.type.value, "migration_id": context.migration_id},
        )
        await self._handlers[message.type](context)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """
        Wait for pending cancellation purge tasks to finish.

        Tasks still running after timeout seconds are cancelled.
        """
        if not self._background_tasks:
            return

        pending = list(self._background_tasks)
        done, remaining = await asyncio.wait(pending, timeout=timeout)
        if remaining:
            logger.warning(
                f"Migration service shutdown: {len(remaining)} task(s) did not complete within timeout",
                extra={"remaining_tasks": len(remaining)},
            )
            for task in remaining:
                task.cancel()


class ByLastIdMigrationService(MigrationService[FilterT, IdT]):
    """
    Migration engine that pages through ids in key order.

    Offset paging gets slower the deeper it goes; this variant lists each
    page as "the next page_size ids after the last one seen". To keep
    listing parallel, the divider samples ``get_ids_parallel_count - 1``
    split points and starts one chain of pages per id range. Each Page
    Processor enqueues the next page of its range before fanning out the
    ids it listed.

    The domain's source client must implement ``ByLastIdSourceClient``.
    """

    def __init__(
        self,
        domain: MigrationDomain[FilterT, IdT, Any, Any, Any],
        queue: MigrationQueue,
        history: MigrationHistoryService,
        telemetry: TelemetryClient,
        config: MigrationConfig | None = None,
        *,
        get_ids_parallel_count: int = 1,
        audit: AuditClient | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        if get_ids_parallel_count < 1:
            raise ValueError(f"get_ids_parallel_count must be >= 1, got {get_ids_parallel_count}")
        if not isinstance(domain.source, ByLastIdSourceClient):
            raise TypeError(f"{type(domain.source).__name__} does not support listing ids by last id")
        self._get_ids_parallel_count = get_ids_parallel_count
        super().__init__(domain, queue, history, telemetry, config, audit=audit, tracer=tracer)

    def _page_key_annotation(self) -> Any:
        return ByLastId[self._domain.id_type]

    @property
    def get_ids_parallel_count(self) -> int:
        return self._get_ids_parallel_count

    async def calculate_page_key_ranges(self, context: MigrationContext[FilterT]) -> list[ByLastId[Any]]:
        """Split the id space into one range per parallel listing chain."""
        page_size = self._config.page_size
        parallel = self._get_ids_parallel_count
        if parallel < 2 or context.estimated_count <= page_size:
            return [ByLastId(last_id=None, end_id=None)]

        pages = context.estimated_count // page_size + 1
        page_numbers = [(index - 1) * pages // parallel for index in range(2, parallel + 1)]

        split_pages = await asyncio.gather(
            *(self.get_page_of_ids(context.body, page_size, page_number) for page_number in page_numbers)
        )
        last_ids = [ids[-1] for ids in split_pages if ids]

        page_keys = [ByLastId(last_id=None, end_id=last_ids[0] if last_ids else None)]
        for index, last_id in enumerate(last_ids):
            end_id = last_ids[index + 1] if index + 1 < len(last_ids) else None
            page_keys.append(ByLastId(last_id=last_id, end_id=end_id))
        return page_keys

    async def divide_entities_by_page(self, context: MigrationContext[FilterT]) -> None:
        with self._tracer.span(
            "legacysync.engine.divide_entities_by_page",
            {
                ATTR_MIGRATION_ID: context.migration_id,
                ATTR_ESTIMATED_COUNT: context.estimated_count,
                ATTR_PAGE_SIZE: self._config.page_size,
            },
        ):
            page_keys = await self.calculate_page_key_ranges(context)
            logger.info("Get ids parallelism is %d with ranges of %s", len(page_keys), page_keys)

            for page_key in page_keys:
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_BY_PAGE,
                    context.with_body(
                        MigrationPage(
                            filter=context.body,
                            page_key=page_key,
                            page_size=self._config.page_size,
                        )
                    ),
                )
            await self.start_status_check(context)

    async def migrate_entities_for_page(self, context: MigrationContext[MigrationPage[FilterT, Any]]) -> None:
        if await self._history.is_cancelling(context.migration_id):
            return

        page = context.body
        page_key = page.page_key
        with self._tracer.span(
            "legacysync.engine.migrate_entities_for_page",
            {ATTR_MIGRATION_ID: context.migration_id, ATTR_PAGE_SIZE: page.page_size},
        ):
            source_ids = [
                source_id
                for source_id in await self._domain.source.get_ids_from_id(  # type: ignore[attr-defined]
                    page_key.last_id, page.filter, page.page_size
                )
                if self._domain.id_in_range(source_id, page_key.end_id)
            ]
            if not source_ids:
                logger.info(
                    "No more ids to migrate after %s up to %s", page_key.last_id, page_key.end_id
                )
                return

            await self._queue.send_message(
                MigrationMessageType.MIGRATE_BY_PAGE,
                context.with_body(
                    MigrationPage(
                        filter=page.filter,
                        page_key=ByLastId(last_id=source_ids[-1], end_id=page_key.end_id),
                        page_size=page.page_size,
                    )
                ),
            )
            for source_id in source_ids:
                await self._queue.send_message(
                    MigrationMessageType.MIGRATE_ENTITY, context.with_body(source_id)
                )


__all__ = ["MigrationService", "ByLastIdMigrationService"]
