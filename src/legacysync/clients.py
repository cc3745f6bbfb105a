"""
Client contracts and the domain adapter.

The migration engine is domain-agnostic. Everything it needs to know about
one record type is supplied through a ``MigrationDomain``, which bundles:

- a ``SourceClient`` that lists and fetches records from the legacy system
- a ``TargetClient`` that creates records in the new service
- a ``MappingClient`` for the external source/target mapping store
- the domain types used to decode queue payloads
- the domain transformation from a source record to a target record

Example:
    >>> class AlertsDomain(MigrationDomain[AlertsFilter, int, Alert, NewAlert, MigrationMapping]):
    ...     domain_type = "ALERTS"
    ...     telemetry_name = "alerts"
    ...     filter_type = AlertsFilter
    ...     id_type = int
    ...
    ...     def transform(self, record: Alert, context: MigrationContext[Any]) -> NewAlert:
    ...         return NewAlert(code=record.alert_code, created=record.created_at)
    >>>
    >>> domain = AlertsDomain(source=alerts_api, target=alerts_service, mappings=mapping_api)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel

from legacysync.messages import MigrationContext
from legacysync.models import IdPage, MappingKind, MigrationMapping

FilterT = TypeVar("FilterT")
IdT = TypeVar("IdT")
RecordT = TypeVar("RecordT")
TargetRecordT = TypeVar("TargetRecordT")
MappingT = TypeVar("MappingT")


@runtime_checkable
class SourceClient(Protocol[FilterT, IdT, RecordT]):
    """Read access to the legacy source-of-truth system."""

    async def get_ids(self, migration_filter: FilterT, page_number: int, page_size: int) -> IdPage[IdT]:
        """
        List one page of identifiers matching the filter.

        Args:
            migration_filter: Domain filter
            page_number: 0-based page number
            page_size: Identifiers per page

        Returns:
            The page of ids and the total number matching the filter
        """
        ...

    async def get_record(self, source_id: IdT) -> RecordT | None:
        """Fetch one record's full detail, or None if it no longer exists."""
        ...


@runtime_checkable
class ByLastIdSourceClient(SourceClient[FilterT, IdT, RecordT], Protocol[FilterT, IdT, RecordT]):
    """Source client that can also list ids in key order after a given id."""

    async def get_ids_from_id(
        self,
        last_id: IdT | None,
        migration_filter: FilterT,
        page_size: int,
    ) -> list[IdT]:
        """List up to page_size ids strictly after last_id (from the start when None), in order."""
        ...


@runtime_checkable
class TargetClient(Protocol[TargetRecordT]):
    """Write access to the target service."""

    async def create(self, record: TargetRecordT) -> str | None:
        """
        Create (or upsert) one record on the target.

        Returns:
            The target identifier, or None if the target rejected the record

        Raises:
            TargetConflictError: If the target already holds this logical
                record under a different identity
        """
        ...


@runtime_checkable
class MappingClient(Protocol[IdT, MappingT]):
    """The external mapping store, used as the idempotency oracle."""

    async def get_by_source_id(self, source_id: IdT) -> MappingT | None:
        """Look up the mapping for a source id. Absence is not an error."""
        ...

    async def create_mapping(self, mapping: MappingT) -> MappingT:
        """
        Create a mapping.

        Raises:
            DuplicateMappingError: If the store already maps either side
        """
        ...

    async def count_by_migration_id(self, migration_id: str) -> int:
        """Count mappings labelled with a migration id."""
        ...

    async def delete_by_target_id(self, target_id: str) -> None:
        """Delete the mapping for a target id."""
        ...


class MigrationDomain(ABC, Generic[FilterT, IdT, RecordT, TargetRecordT, MappingT]):
    """
    Adapter describing one record type to the generic migration engine.

    Subclasses set the class attributes and implement ``transform``. The
    hooks with default implementations cover single-id records mapped with
    ``MigrationMapping``; override them for compound identifiers or custom
    mapping models.

    Class Attributes:
        domain_type: Domain tag carried on every message (also the queue id)
        telemetry_name: Prefix for telemetry event names
        filter_type: Type the filter is decoded into
        id_type: Type source identifiers are decoded into
        mapping_type: Type mappings are decoded into
    """

    domain_type: ClassVar[str]
    telemetry_name: ClassVar[str]
    filter_type: ClassVar[Any]
    id_type: ClassVar[Any]
    mapping_type: ClassVar[Any] = MigrationMapping

    def __init__(
        self,
        source: SourceClient[FilterT, IdT, RecordT],
        target: TargetClient[TargetRecordT],
        mappings: MappingClient[IdT, MappingT],
    ) -> None:
        self.source = source
        self.target = target
        self.mappings = mappings

    @abstractmethod
    def transform(self, record: RecordT, context: MigrationContext[Any]) -> TargetRecordT:
        """Convert a source record into the target representation."""
        ...

    def build_mapping(self, source_id: IdT, target_id: str, migration_id: str) -> MappingT:
        """Build the MIGRATED mapping recorded after a successful target create."""
        return MigrationMapping(  # type: ignore[return-value]
            source_id=str(source_id),
            target_id=target_id,
            mapping_type=MappingKind.MIGRATED,
            label=migration_id,
        )

    def source_id_properties(self, source_id: IdT) -> dict[str, str]:
        """Telemetry properties identifying a source record."""
        return {"sourceId": str(source_id)}

    def mapping_properties(self, mapping: Any, prefix: str) -> dict[str, str]:
        """Telemetry properties for one side of a duplicate conflict."""
        if isinstance(mapping, BaseModel):
            values = mapping.model_dump(mode="json")
        elif isinstance(mapping, dict):
            values = mapping
        else:
            return {prefix: str(mapping)}
        return {
            prefix + "".join(part[:1].upper() + part[1:] for part in key.split("_")): str(value)
            for key, value in values.items()
        }

    def filter_properties(self, migration_filter: FilterT) -> dict[str, str]:
        """Telemetry properties describing the filter a run was started with."""
        if isinstance(migration_filter, BaseModel):
            return {
                key: str(value)
                for key, value in migration_filter.model_dump(mode="json").items()
                if value is not None
            }
        return {"filter": str(migration_filter)}

    async def context_properties(self, migration_filter: FilterT) -> dict[str, Any]:
        """Extra properties attached to the run context at start."""
        return {}

    def id_in_range(self, source_id: IdT, end_id: IdT | None) -> bool:
        """True if source_id falls on or before end_id (used by by-last-id paging)."""
        return end_id is None or source_id <= end_id  # type: ignore[operator]


__all__ = [
    "SourceClient",
    "ByLastIdSourceClient",
    "TargetClient",
    "MappingClient",
    "MigrationDomain",
]
