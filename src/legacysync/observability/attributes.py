"""
Standard span and metric attributes for legacysync.

Attribute constants shared by the engine, queues and repositories so spans
carry consistent keys. Messaging and database keys follow OpenTelemetry
semantic conventions.

Example:
    >>> from legacysync.observability.attributes import ATTR_MIGRATION_ID
    >>>
    >>> with tracer.span(
    ...     "legacysync.migration.migrate_entity",
    ...     {ATTR_MIGRATION_ID: context.migration_id},
    ... ):
    ...     pass
"""

# =============================================================================
# Migration Attributes
# =============================================================================

ATTR_MIGRATION_ID = "legacysync.migration.id"
"""Run identifier (string)."""

ATTR_DOMAIN_TYPE = "legacysync.migration.domain_type"
"""Domain tag of the run, e.g. 'ALERTS' (string)."""

ATTR_ESTIMATED_COUNT = "legacysync.migration.estimated_count"
"""Total record count read at the start of the run (integer)."""

ATTR_MIGRATION_STATUS = "legacysync.migration.status"
"""History status of the run (string)."""

ATTR_PAGE_SIZE = "legacysync.migration.page_size"
"""Identifiers per page (integer)."""

ATTR_PAGE_COUNT = "legacysync.migration.page_count"
"""Number of pages produced by division (integer)."""

ATTR_SOURCE_ID = "legacysync.migration.source_id"
"""Source record identifier (string)."""

ATTR_TARGET_ID = "legacysync.migration.target_id"
"""Target record identifier (string)."""

ATTR_CHECK_COUNT = "legacysync.migration.check_count"
"""Consecutive empty-queue observations carried by a status check (integer)."""

ATTR_ENTITY_OUTCOME = "legacysync.migration.entity_outcome"
"""Outcome of migrating one record: migrated, skipped, duplicate, ... (string)."""

ATTR_RECORDS_MIGRATED = "legacysync.migration.records_migrated"
"""Records migrated at finalisation (integer)."""

ATTR_RECORDS_FAILED = "legacysync.migration.records_failed"
"""Records failed at finalisation (integer)."""

# =============================================================================
# Messaging Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_MESSAGING_SYSTEM = "messaging.system"
"""Messaging backend, e.g. 'redis' or 'memory' (string)."""

ATTR_MESSAGING_DESTINATION = "messaging.destination"
"""Queue name (string)."""

ATTR_MESSAGING_OPERATION = "messaging.operation"
"""Messaging operation: send, receive, purge (string)."""

ATTR_MESSAGE_TYPE = "legacysync.message.type"
"""Migration message type tag (string)."""

ATTR_MESSAGE_ID = "legacysync.message.id"
"""Queue message identifier (string)."""

ATTR_MESSAGE_DELAY = "legacysync.message.delay_seconds"
"""Delivery delay requested on send (number)."""

ATTR_RECEIVE_COUNT = "legacysync.message.receive_count"
"""How many times a message has been received (integer)."""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system, e.g. 'postgresql' or 'sqlite' (string)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "legacysync.error.type"
"""Exception class name (string)."""


__all__ = [
    "ATTR_MIGRATION_ID",
    "ATTR_DOMAIN_TYPE",
    "ATTR_ESTIMATED_COUNT",
    "ATTR_MIGRATION_STATUS",
    "ATTR_PAGE_SIZE",
    "ATTR_PAGE_COUNT",
    "ATTR_SOURCE_ID",
    "ATTR_TARGET_ID",
    "ATTR_CHECK_COUNT",
    "ATTR_ENTITY_OUTCOME",
    "ATTR_RECORDS_MIGRATED",
    "ATTR_RECORDS_FAILED",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGE_TYPE",
    "ATTR_MESSAGE_ID",
    "ATTR_MESSAGE_DELAY",
    "ATTR_RECEIVE_COUNT",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_TYPE",
]
