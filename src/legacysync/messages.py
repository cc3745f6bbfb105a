"""
Queue message model for the migration engine.

Every message on a migration queue is a ``MigrationMessage`` envelope: a
message type tag plus a ``MigrationContext`` carrying the run lineage
(domain, migration id, estimate, properties) and a body whose shape depends
on the tag:

    MIGRATE_ENTITIES        -> the domain filter
    MIGRATE_BY_PAGE         -> MigrationPage[filter, page key]
    MIGRATE_ENTITY          -> one source identifier
    MIGRATE_STATUS_CHECK    -> MigrationStatusCheck
    CANCEL_MIGRATION        -> MigrationStatusCheck
    RETRY_MIGRATION_MAPPING -> the domain mapping

The envelope is decoded first with the body left as plain JSON data; the
migration service owning the domain then validates the body into its typed
variant (see ``MigrationService.parse_context``).

Example:
    >>> context = MigrationContext(
    ...     domain_type="ALERTS",
    ...     migration_id="2026-10-19T12:30:05",
    ...     estimated_count=2,
    ...     body=MigrationStatusCheck(),
    ... )
    >>> raw = MigrationMessage(type=MigrationMessageType.MIGRATE_STATUS_CHECK, context=context).to_json()
    >>> MigrationMessage.from_json(raw).context.body
    {'check_count': 0}
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from legacysync.exceptions import MessageDecodeError

BodyT = TypeVar("BodyT")
FilterT = TypeVar("FilterT")
IdT = TypeVar("IdT")
PageKeyT = TypeVar("PageKeyT")


class MigrationMessageType(Enum):
    """Tag identifying which stage of the state machine a message drives."""

    MIGRATE_ENTITIES = "MIGRATE_ENTITIES"
    """Page Divider: split the estimated count into pages."""

    MIGRATE_BY_PAGE = "MIGRATE_BY_PAGE"
    """Page Processor: list one page of ids and fan out entity messages."""

    MIGRATE_ENTITY = "MIGRATE_ENTITY"
    """Entity Migrator: migrate a single record."""

    MIGRATE_STATUS_CHECK = "MIGRATE_STATUS_CHECK"
    """Status Checker: poll for completion."""

    CANCEL_MIGRATION = "CANCEL_MIGRATION"
    """Cancellation Checker: purge and poll for drain."""

    RETRY_MIGRATION_MAPPING = "RETRY_MIGRATION_MAPPING"
    """Create a mapping whose first attempt failed after the target record was created."""

    @property
    def is_fan_out(self) -> bool:
        """
        True for messages that carry migration work.

        Status and cancellation checks are control messages: they are not
        counted when judging whether a run has drained, and a purge leaves
        them alone.
        """
        return self not in (
            MigrationMessageType.MIGRATE_STATUS_CHECK,
            MigrationMessageType.CANCEL_MIGRATION,
        )


class ByPageNumber(BaseModel):
    """Page key addressing a page by its 0-based number."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["by_page_number"] = "by_page_number"
    page_number: int = Field(..., ge=0)


class ByLastId(BaseModel, Generic[IdT]):
    """
    Page key addressing a range of ids.

    The page holds ids strictly after ``last_id`` (from the start when None)
    and no later than ``end_id`` (to the end when None).
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["by_last_id"] = "by_last_id"
    last_id: IdT | None = None
    end_id: IdT | None = None


class MigrationPage(BaseModel, Generic[FilterT, PageKeyT]):
    """Page descriptor: which slice of the filtered source ids to list."""

    model_config = ConfigDict(frozen=True)

    filter: FilterT
    page_key: PageKeyT
    page_size: int = Field(..., ge=1)


class MigrationStatusCheck(BaseModel):
    """
    Counter of consecutive "queue looks empty" observations.

    Lives only inside successive status-check messages. Each iteration sends
    a new copy, so a duplicated message simply re-evaluates the queue.
    """

    model_config = ConfigDict(frozen=True)

    check_count: int = Field(default=0, ge=0)

    def increment(self) -> MigrationStatusCheck:
        return self.model_copy(update={"check_count": self.check_count + 1})

    def has_checked_enough(self, required_count: int) -> bool:
        return self.check_count >= required_count


class MigrationContext(BaseModel, Generic[BodyT]):
    """
    Run lineage carried unchanged on every message descending from a run.

    Attributes:
        domain_type: Domain tag used to route the message to its service
        migration_id: The run identifier, the sole correlation key
        estimated_count: Total record count read when the run started
        properties: Extra domain-specific context set at start
        body: Stage-specific payload
    """

    model_config = ConfigDict(frozen=True)

    domain_type: str
    migration_id: str
    estimated_count: int = 0
    properties: dict[str, Any] = Field(default_factory=dict)
    body: BodyT

    def with_body(self, body: Any) -> MigrationContext[Any]:
        """Create a descendant context that keeps this lineage and carries a new body."""
        return MigrationContext(
            domain_type=self.domain_type,
            migration_id=self.migration_id,
            estimated_count=self.estimated_count,
            properties=dict(self.properties),
            body=body,
        )


class MigrationMessage(BaseModel):
    """Envelope written to and read from the migration queue."""

    model_config = ConfigDict(frozen=True)

    type: MigrationMessageType
    context: MigrationContext

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> MigrationMessage:
        """
        Decode an envelope, leaving the body as plain JSON data.

        Raises:
            MessageDecodeError: If the envelope is malformed
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MessageDecodeError("unknown", str(e)) from e


__all__ = [
    "MigrationMessageType",
    "ByPageNumber",
    "ByLastId",
    "MigrationPage",
    "MigrationStatusCheck",
    "MigrationContext",
    "MigrationMessage",
]
