"""Library exceptions for the legacysync package."""

from typing import Any


class LegacySyncError(Exception):
    """Base exception for legacysync library."""

    pass


class DuplicateMappingError(LegacySyncError):
    """
    Raised by a mapping client when a mapping would break the source/target bijection.

    The mapping store rejects the new mapping and reports both the mapping
    that was attempted and the one it already holds.

    Attributes:
        duplicate: The mapping that was rejected
        existing: The mapping already held by the store
    """

    def __init__(self, duplicate: Any, existing: Any) -> None:
        self.duplicate = duplicate
        self.existing = existing
        super().__init__(f"Duplicate mapping {duplicate!r} conflicts with existing {existing!r}")


class TargetConflictError(LegacySyncError):
    """
    Raised by a target client when the record already exists under another identity.

    Attributes:
        duplicate: Identity of the record that was being created
        existing: Identity the target already holds for it
    """

    def __init__(self, duplicate: Any, existing: Any) -> None:
        self.duplicate = duplicate
        self.existing = existing
        super().__init__(f"Target already holds {existing!r} for {duplicate!r}")


class MigrationNotFoundError(LegacySyncError):
    """Raised when a migration history row cannot be found."""

    def __init__(self, migration_id: str) -> None:
        self.migration_id = migration_id
        super().__init__(f"Migration not found: {migration_id}")


class MigrationAlreadyInProgressError(LegacySyncError):
    """Raised when a migration is started while another of the same type is active."""

    def __init__(self, domain_type: str, migration_id: str | None = None) -> None:
        self.domain_type = domain_type
        self.migration_id = migration_id
        running = f" ({migration_id})" if migration_id else ""
        super().__init__(f"Migration already in progress for {domain_type}{running}")


class MigrationStateError(LegacySyncError):
    """Raised when an operation is not valid for the migration's current status."""

    def __init__(self, migration_id: str, status: str, message: str) -> None:
        self.migration_id = migration_id
        self.status = status
        super().__init__(f"Migration {migration_id} is {status}: {message}")


class MessageDecodeError(LegacySyncError):
    """Raised when a queue message cannot be decoded into its typed payload."""

    def __init__(self, message_type: str, reason: str) -> None:
        self.message_type = message_type
        self.reason = reason
        super().__init__(f"Unable to decode {message_type} message: {reason}")


class UnknownDomainError(LegacySyncError):
    """Raised when a message arrives for a domain with no registered migration service."""

    def __init__(self, domain_type: str) -> None:
        self.domain_type = domain_type
        super().__init__(f"No migration service registered for domain: {domain_type}")


__all__ = [
    "LegacySyncError",
    "DuplicateMappingError",
    "TargetConflictError",
    "MigrationNotFoundError",
    "MigrationAlreadyInProgressError",
    "MigrationStateError",
    "MessageDecodeError",
    "UnknownDomainError",
]
