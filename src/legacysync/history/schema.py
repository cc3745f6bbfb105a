"""
DDL for the ``migration_history`` table.

Example:
    >>> async with engine.begin() as conn:
    ...     await conn.execute(text(POSTGRESQL_SCHEMA))
"""

POSTGRESQL_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_history (
    migration_id VARCHAR(64) PRIMARY KEY,
    domain_type VARCHAR(64) NOT NULL,
    status VARCHAR(32) NOT NULL,
    when_started TIMESTAMP NOT NULL,
    when_ended TIMESTAMP,
    estimated_record_count BIGINT NOT NULL DEFAULT 0,
    records_migrated BIGINT NOT NULL DEFAULT 0,
    records_failed BIGINT NOT NULL DEFAULT 0,
    filter TEXT
)
"""

POSTGRESQL_INDEX = """
CREATE INDEX IF NOT EXISTS idx_migration_history_domain_status
    ON migration_history (domain_type, status)
"""

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_history (
    migration_id TEXT PRIMARY KEY,
    domain_type TEXT NOT NULL,
    status TEXT NOT NULL,
    when_started TEXT NOT NULL,
    when_ended TEXT,
    estimated_record_count INTEGER NOT NULL DEFAULT 0,
    records_migrated INTEGER NOT NULL DEFAULT 0,
    records_failed INTEGER NOT NULL DEFAULT 0,
    filter TEXT
);

CREATE INDEX IF NOT EXISTS idx_migration_history_domain_status
    ON migration_history (domain_type, status);
"""

HISTORY_COLUMNS = (
    "migration_id, domain_type, status, when_started, when_ended, "
    "estimated_record_count, records_migrated, records_failed, filter"
)

__all__ = ["POSTGRESQL_SCHEMA", "POSTGRESQL_INDEX", "SQLITE_SCHEMA", "HISTORY_COLUMNS"]
