"""
Data models for the migration engine.

Models in this module:

Enums:
    - MigrationStatus: Lifecycle status of a migration run
    - MappingKind: How a source/target mapping came to exist

Configuration:
    - MigrationConfig: Paging and completion-check tuning for one domain

Core Models:
    - MigrationHistory: Durable record of one migration run
    - HistoryFilter: Criteria for searching migration history
    - MigrationMapping: Default source/target mapping record
    - IdPage: One page of source identifiers plus the total matching count

Helpers:
    - generate_migration_id: Timestamp-derived run identifier
    - duration_minutes: Minutes elapsed since a run started
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

IdT = TypeVar("IdT")


class MigrationStatus(Enum):
    """
    Lifecycle status of a migration run.

    State machine transitions:
        STARTED -> COMPLETED
        STARTED -> CANCELLED_REQUESTED -> CANCELLED
        STARTED -> CANCELLED

    COMPLETED and CANCELLED are terminal: a finalised row is never
    mutated again.
    """

    STARTED = "STARTED"
    CANCELLED_REQUESTED = "CANCELLED_REQUESTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"

    @property
    def is_terminal(self) -> bool:
        """True for COMPLETED and CANCELLED."""
        return self in (MigrationStatus.COMPLETED, MigrationStatus.CANCELLED)

    @property
    def is_active(self) -> bool:
        """True while the run still has work (or a drain) in progress."""
        return not self.is_terminal


class MappingKind(Enum):
    """How a mapping between a source and target record was created."""

    MIGRATED = "MIGRATED"
    """Created by a migration run."""

    TARGET_CREATED = "TARGET_CREATED"
    """Created by the target system itself (e.g. synchronisation back to source)."""


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for one domain's migration engine.

    Attributes:
        page_size: Identifiers listed per Page Processor message (default 1000).
        complete_check_delay_seconds: Delay before the first status check
            after page division (default 10).
        complete_check_count: Consecutive "queue empty" observations needed
            before a run is finalised (default 9).
        complete_check_retry_seconds: Delay between consecutive empty
            observations (default 1).
        complete_check_scheduled_retry_seconds: Delay after a non-empty
            observation. Defaults to complete_check_delay_seconds.
        cancel_purge_frequency_seconds: Interval between repeated purges
            after a cancel request (default 1.0).
        cancel_purge_total_seconds: How long to keep purging after a cancel
            request before the first cancellation check (default 10.0).
            Zero sends the cancellation check straight away.
        enable_tracing: Emit OpenTelemetry spans (default True).

    Example:
        >>> config = MigrationConfig(page_size=500, complete_check_count=5)
        >>> config.complete_check_scheduled_retry_seconds
        10
    """

    page_size: int = 1000
    complete_check_delay_seconds: int = 10
    complete_check_count: int = 9
    complete_check_retry_seconds: int = 1
    complete_check_scheduled_retry_seconds: int | None = None
    cancel_purge_frequency_seconds: float = 1.0
    cancel_purge_total_seconds: float = 10.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")

        if self.complete_check_count < 1:
            raise ValueError(
                f"complete_check_count must be >= 1, got {self.complete_check_count}"
            )

        if self.complete_check_delay_seconds < 0:
            raise ValueError(
                "complete_check_delay_seconds must be >= 0, "
                f"got {self.complete_check_delay_seconds}"
            )

        if self.complete_check_retry_seconds < 0:
            raise ValueError(
                "complete_check_retry_seconds must be >= 0, "
                f"got {self.complete_check_retry_seconds}"
            )

        if self.complete_check_scheduled_retry_seconds is None:
            # frozen dataclass: bypass __setattr__ to fill in the derived default
            object.__setattr__(
                self,
                "complete_check_scheduled_retry_seconds",
                self.complete_check_delay_seconds,
            )
        elif self.complete_check_scheduled_retry_seconds < 0:
            raise ValueError(
                "complete_check_scheduled_retry_seconds must be >= 0, "
                f"got {self.complete_check_scheduled_retry_seconds}"
            )

        if self.cancel_purge_frequency_seconds <= 0:
            raise ValueError(
                "cancel_purge_frequency_seconds must be > 0, "
                f"got {self.cancel_purge_frequency_seconds}"
            )

        if self.cancel_purge_total_seconds < 0:
            raise ValueError(
                "cancel_purge_total_seconds must be >= 0, "
                f"got {self.cancel_purge_total_seconds}"
            )


@dataclass
class MigrationHistory:
    """
    Durable record of one migration run.

    Attributes:
        migration_id: Run identifier (key)
        domain_type: Domain this run migrates (e.g. "ALERTS")
        status: Current lifecycle status
        when_started: When the run was started
        when_ended: When the run was finalised (None while active)
        estimated_record_count: Total record count at start
        records_migrated: Mappings labelled with this run at finalisation
        records_failed: Dead-letter depth at finalisation
        filter: The domain filter the run was started with, as JSON text
    """

    migration_id: str
    domain_type: str
    status: MigrationStatus = MigrationStatus.STARTED
    when_started: datetime = field(default_factory=datetime.now)
    when_ended: datetime | None = None
    estimated_record_count: int = 0
    records_migrated: int = 0
    records_failed: int = 0
    filter: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "migration_id": self.migration_id,
            "domain_type": self.domain_type,
            "status": self.status.value,
            "when_started": self.when_started.isoformat(),
            "when_ended": self.when_ended.isoformat() if self.when_ended else None,
            "estimated_record_count": self.estimated_record_count,
            "records_migrated": self.records_migrated,
            "records_failed": self.records_failed,
            "filter": self.filter,
        }


@dataclass(frozen=True)
class HistoryFilter:
    """
    Criteria for searching migration history.

    All criteria are optional and combined with AND.

    Attributes:
        domain_types: Only runs for these domains
        from_date_time: Only runs started at or after this time
        to_date_time: Only runs started at or before this time
        include_only_failures: Only runs with records_failed > 0
        filter_contains: Only runs whose stored filter contains this text
    """

    domain_types: tuple[str, ...] = ()
    from_date_time: datetime | None = None
    to_date_time: datetime | None = None
    include_only_failures: bool = False
    filter_contains: str | None = None

    def matches(self, history: MigrationHistory) -> bool:
        """Check whether a history row satisfies every criterion."""
        if self.domain_types and history.domain_type not in self.domain_types:
            return False
        if self.from_date_time and history.when_started < self.from_date_time:
            return False
        if self.to_date_time and history.when_started > self.to_date_time:
            return False
        if self.include_only_failures and history.records_failed <= 0:
            return False
        if self.filter_contains and self.filter_contains not in (history.filter or ""):
            return False
        return True


class MigrationMapping(BaseModel):
    """
    Default mapping record between a source identifier and a target identifier.

    Domains with compound identifiers can supply their own mapping model;
    this one covers the common single-id case.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str
    target_id: str
    mapping_type: MappingKind = MappingKind.MIGRATED
    label: str | None = Field(default=None, description="Migration id that created the mapping")
    when_created: datetime | None = None


@dataclass(frozen=True)
class IdPage(Generic[IdT]):
    """
    One page of source identifiers.

    Attributes:
        items: Identifiers on this page
        total_count: Total identifiers matching the filter across all pages
    """

    items: list[IdT]
    total_count: int


def generate_migration_id(now: datetime | None = None) -> str:
    """
    Generate a run identifier from the current local time.

    The identifier is the ISO timestamp truncated to the second, so it
    doubles as the run's start time.

    Example:
        >>> generate_migration_id(datetime(2026, 10, 19, 12, 30, 5, 999))
        '2026-10-19T12:30:05'
    """
    return (now or datetime.now()).replace(microsecond=0).isoformat()


def duration_minutes(migration_id: str, now: datetime | None = None) -> int:
    """Whole minutes elapsed since the run identified by migration_id started."""
    started = datetime.fromisoformat(migration_id)
    return int(((now or datetime.now()) - started).total_seconds() // 60)


__all__ = [
    "MigrationStatus",
    "MappingKind",
    "MigrationConfig",
    "MigrationHistory",
    "HistoryFilter",
    "MigrationMapping",
    "IdPage",
    "generate_migration_id",
    "duration_minutes",
]
