"""
Observability utilities for legacysync.

Composition-based tracing plus the standard attribute keys used by every
component.

Example:
    >>> from legacysync.observability import create_tracer
    >>>
    >>> class MyRepository:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
"""

from legacysync.observability.attributes import (
    ATTR_CHECK_COUNT,
    ATTR_DB_SYSTEM,
    ATTR_DOMAIN_TYPE,
    ATTR_ENTITY_OUTCOME,
    ATTR_ERROR_TYPE,
    ATTR_ESTIMATED_COUNT,
    ATTR_MESSAGE_DELAY,
    ATTR_MESSAGE_ID,
    ATTR_MESSAGE_TYPE,
    ATTR_MESSAGING_DESTINATION,
    ATTR_MESSAGING_OPERATION,
    ATTR_MESSAGING_SYSTEM,
    ATTR_MIGRATION_ID,
    ATTR_MIGRATION_STATUS,
    ATTR_PAGE_COUNT,
    ATTR_PAGE_SIZE,
    ATTR_RECEIVE_COUNT,
    ATTR_RECORDS_FAILED,
    ATTR_RECORDS_MIGRATED,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
)
from legacysync.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    SpanKindEnum,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
    # Attributes
    "ATTR_CHECK_COUNT",
    "ATTR_DB_SYSTEM",
    "ATTR_DOMAIN_TYPE",
    "ATTR_ENTITY_OUTCOME",
    "ATTR_ERROR_TYPE",
    "ATTR_ESTIMATED_COUNT",
    "ATTR_MESSAGE_DELAY",
    "ATTR_MESSAGE_ID",
    "ATTR_MESSAGE_TYPE",
    "ATTR_MESSAGING_DESTINATION",
    "ATTR_MESSAGING_OPERATION",
    "ATTR_MESSAGING_SYSTEM",
    "ATTR_MIGRATION_ID",
    "ATTR_MIGRATION_STATUS",
    "ATTR_PAGE_COUNT",
    "ATTR_PAGE_SIZE",
    "ATTR_RECEIVE_COUNT",
    "ATTR_RECORDS_FAILED",
    "ATTR_RECORDS_MIGRATED",
    "ATTR_SOURCE_ID",
    "ATTR_TARGET_ID",
]
