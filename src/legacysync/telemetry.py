"""
Telemetry signals for migration runs.

Migration outcomes are reported as named events with string properties
(``alerts-migration-entity-migrated``, ``alerts-migration-completed``, ...).
Operators search for these to follow a run and to find duplicates.

The default ``OpenTelemetryTelemetryClient`` logs each event, attaches it to
the current span and counts it on the ``legacysync.telemetry.events`` counter.

Operator actions (starting a run, requesting a cancel) also go to an
``AuditClient``; ``LoggingAuditClient`` writes them to the
``legacysync.audit`` logger.

Example:
    >>> telemetry = OpenTelemetryTelemetryClient()
    >>> telemetry.track_event(
    ...     "alerts-migration-started",
    ...     {"migrationId": "2026-10-19T12:30:05", "estimatedCount": "2"},
    ... )
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from opentelemetry import metrics, trace

logger = logging.getLogger(__name__)

TELEMETRY_EVENTS_COUNTER = "legacysync.telemetry.events"

AUDIT_MIGRATION_STARTED = "MIGRATION_STARTED"
AUDIT_MIGRATION_CANCEL_REQUESTED = "MIGRATION_CANCEL_REQUESTED"

audit_logger = logging.getLogger("legacysync.audit")


@runtime_checkable
class TelemetryClient(Protocol):
    """Protocol for sinks of named telemetry events."""

    def track_event(self, name: str, properties: dict[str, Any] | None = None) -> None:
        """
        Record a named event.

        Args:
            name: Event name, e.g. "alerts-migration-completed"
            properties: Event properties; values are converted to strings
        """
        ...


class OpenTelemetryTelemetryClient:
    """
    Telemetry client backed by logging and OpenTelemetry.

    Each event is:
    - logged at INFO with the properties in ``extra``
    - added as a span event on the current span (if one is recording)
    - counted on the ``legacysync.telemetry.events`` counter, labelled by name
    """

    def __init__(self, meter_name: str = "legacysync") -> None:
        self._meter = metrics.get_meter(meter_name, version="1.0.0")
        self._counter = self._meter.create_counter(
            name=TELEMETRY_EVENTS_COUNTER,
            unit="events",
            description="Migration telemetry events by name",
        )

    def track_event(self, name: str, properties: dict[str, Any] | None = None) -> None:
        attributes = {key: str(value) for key, value in (properties or {}).items()}

        logger.info(
            f"Telemetry event {name}",
            extra={"telemetry_event": name, "telemetry_properties": attributes},
        )

        span = trace.get_current_span()
        if span.is_recording():
            span.add_event(name, attributes=attributes)

        self._counter.add(1, {"telemetry.event": name})


@runtime_checkable
class AuditClient(Protocol):
    """Protocol for the audit trail of operator actions on migration runs."""

    async def send_audit_event(self, what: str, details: dict[str, Any]) -> None:
        """
        Record that an operator action happened.

        Args:
            what: Action name, e.g. "MIGRATION_STARTED"
            details: Migration type, id and filter the action applied to
        """
        ...


class LoggingAuditClient:
    """Audit client writing each action to the ``legacysync.audit`` logger."""

    async def send_audit_event(self, what: str, details: dict[str, Any]) -> None:
        audit_logger.info(
            f"Audit {what}",
            extra={"audit_what": what, "audit_details": details},
        )


__all__ = [
    "TelemetryClient",
    "OpenTelemetryTelemetryClient",
    "TELEMETRY_EVENTS_COUNTER",
    "AuditClient",
    "LoggingAuditClient",
    "AUDIT_MIGRATION_STARTED",
    "AUDIT_MIGRATION_CANCEL_REQUESTED",
]
