"""
Migration history: durable records of each migration run.

Available Repositories:
- InMemoryMigrationHistoryRepository: development and testing
- SQLiteMigrationHistoryRepository: embedded storage via aiosqlite
- PostgreSQLMigrationHistoryRepository: production storage via SQLAlchemy

Example:
    >>> from legacysync.history import InMemoryMigrationHistoryRepository, MigrationHistoryService
    >>>
    >>> history = MigrationHistoryService(InMemoryMigrationHistoryRepository())
"""

from legacysync.history.in_memory import InMemoryMigrationHistoryRepository
from legacysync.history.interface import MigrationHistoryRepository
from legacysync.history.postgresql import PostgreSQLMigrationHistoryRepository
from legacysync.history.schema import POSTGRESQL_SCHEMA, SQLITE_SCHEMA
from legacysync.history.service import MigrationHistoryService
from legacysync.history.sqlite import (
    SQLITE_AVAILABLE,
    SQLiteMigrationHistoryRepository,
    SQLiteNotAvailableError,
)

__all__ = [
    "MigrationHistoryRepository",
    "InMemoryMigrationHistoryRepository",
    "SQLiteMigrationHistoryRepository",
    "SQLiteNotAvailableError",
    "SQLITE_AVAILABLE",
    "PostgreSQLMigrationHistoryRepository",
    "MigrationHistoryService",
    "POSTGRESQL_SCHEMA",
    "SQLITE_SCHEMA",
]
