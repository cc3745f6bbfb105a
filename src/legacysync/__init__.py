"""
legacysync - Queue-driven bulk migration from a legacy system of record.

This library provides:
- A generic migration engine (record count, paged fan-out, idempotent
  per-record migration, debounced completion and cancellation)
- Migration queues with delays and dead-lettering (in-memory and Redis)
- Migration history with in-memory, SQLite and PostgreSQL backends
- A concurrent message listener dispatching to per-domain engines
- Telemetry events and OpenTelemetry tracing
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("legacysync-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from legacysync.clients import (
    ByLastIdSourceClient,
    MappingClient,
    MigrationDomain,
    SourceClient,
    TargetClient,
)
from legacysync.engine import ByLastIdMigrationService, MigrationService
from legacysync.exceptions import (
    DuplicateMappingError,
    LegacySyncError,
    MessageDecodeError,
    MigrationAlreadyInProgressError,
    MigrationNotFoundError,
    MigrationStateError,
    TargetConflictError,
    UnknownDomainError,
)
from legacysync.history import (
    InMemoryMigrationHistoryRepository,
    MigrationHistoryRepository,
    MigrationHistoryService,
    PostgreSQLMigrationHistoryRepository,
    SQLiteMigrationHistoryRepository,
)
from legacysync.listener import ListenerConfig, MigrationMessageListener
from legacysync.messages import (
    ByLastId,
    ByPageNumber,
    MigrationContext,
    MigrationMessage,
    MigrationMessageType,
    MigrationPage,
    MigrationStatusCheck,
)
from legacysync.models import (
    HistoryFilter,
    IdPage,
    MappingKind,
    MigrationConfig,
    MigrationHistory,
    MigrationMapping,
    MigrationStatus,
    duration_minutes,
    generate_migration_id,
)
from legacysync.queue import (
    REDIS_AVAILABLE,
    InMemoryMigrationQueue,
    InMemoryQueueConfig,
    MigrationQueue,
    ReceivedMessage,
    RedisMigrationQueue,
    RedisMigrationQueueConfig,
    RedisNotAvailableError,
)
from legacysync.telemetry import (
    AuditClient,
    LoggingAuditClient,
    OpenTelemetryTelemetryClient,
    TelemetryClient,
)

__all__ = [
    "__version__",
    # Engine
    "MigrationService",
    "ByLastIdMigrationService",
    # Domain adapters
    "MigrationDomain",
    "SourceClient",
    "ByLastIdSourceClient",
    "TargetClient",
    "MappingClient",
    # Messages
    "MigrationMessageType",
    "MigrationMessage",
    "MigrationContext",
    "MigrationPage",
    "MigrationStatusCheck",
    "ByPageNumber",
    "ByLastId",
    # Models
    "MigrationStatus",
    "MappingKind",
    "MigrationConfig",
    "MigrationHistory",
    "HistoryFilter",
    "MigrationMapping",
    "IdPage",
    "generate_migration_id",
    "duration_minutes",
    # Queues
    "MigrationQueue",
    "ReceivedMessage",
    "InMemoryMigrationQueue",
    "InMemoryQueueConfig",
    "RedisMigrationQueue",
    "RedisMigrationQueueConfig",
    "RedisNotAvailableError",
    "REDIS_AVAILABLE",
    # History
    "MigrationHistoryRepository",
    "MigrationHistoryService",
    "InMemoryMigrationHistoryRepository",
    "SQLiteMigrationHistoryRepository",
    "PostgreSQLMigrationHistoryRepository",
    # Listener
    "MigrationMessageListener",
    "ListenerConfig",
    # Telemetry
    "TelemetryClient",
    "OpenTelemetryTelemetryClient",
    "AuditClient",
    "LoggingAuditClient",
    # Exceptions
    "LegacySyncError",
    "DuplicateMappingError",
    "TargetConflictError",
    "MigrationNotFoundError",
    "MigrationAlreadyInProgressError",
    "MigrationStateError",
    "MessageDecodeError",
    "UnknownDomainError",
]
