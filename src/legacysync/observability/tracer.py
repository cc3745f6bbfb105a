"""
Tracers injected into queues, history repositories, engines and the listener.

Each component is built with a ``Tracer`` (or builds one with
``create_tracer(__name__, enable_tracing)``) and wraps its operations in
spans named ``legacysync.<component>.<operation>``. Disabling tracing swaps
in ``NullTracer``; tests pass a ``MockTracer`` and assert on what it saw.

Spans from ``NullTracer`` and ``MockTracer`` are ``None``, so callers guard
``span.set_attribute`` with ``if span is not None``.

Example:
    >>> class HistoryRepository:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def get(self, migration_id: str) -> MigrationHistory | None:
    ...         with self._tracer.span("legacysync.history.get", {ATTR_MIGRATION_ID: migration_id}):
    ...             return await self._load(migration_id)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from opentelemetry import trace
from opentelemetry.trace import SpanKind

if TYPE_CHECKING:
    from opentelemetry.trace import Span, TracerProvider


class SpanKindEnum(Enum):
    """
    Span kinds used by legacysync components.

    PRODUCER is used when a message is sent to a migration queue, CONSUMER
    when the listener handles one, CLIENT for history store calls and
    INTERNAL for engine stages.
    """

    INTERNAL = "internal"
    PRODUCER = "producer"
    CONSUMER = "consumer"
    CLIENT = "client"

    def to_otel(self) -> SpanKind:
        return SpanKind[self.name]


@runtime_checkable
class Tracer(Protocol):
    """Creates spans around component operations."""

    @property
    def enabled(self) -> bool:
        """Whether spans are real OpenTelemetry spans."""
        ...

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open an INTERNAL span."""
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span of the given kind."""
        ...


class NullTracer:
    """Tracer used when tracing is disabled. Every span is None."""

    @property
    def enabled(self) -> bool:
        return False

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        yield None


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans go to the globally configured tracer provider unless one is
    given. Without an SDK installed the API hands out non-recording spans.

    Args:
        tracer_name: Instrumentation scope, usually the module's __name__
        tracer_provider: Provider to use instead of the global one
    """

    def __init__(self, tracer_name: str, tracer_provider: TracerProvider | None = None) -> None:
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)

    @property
    def enabled(self) -> bool:
        return True

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span]:
        return self._tracer.start_as_current_span(
            name,
            kind=kind.to_otel(),
            attributes=attributes or {},
        )


class MockTracer:
    """
    Tracer that records ``(name, attributes)`` for every span opened.

    ``kinds`` holds the span kind of each recorded span, in the same order.

    Example:
        >>> tracer = MockTracer()
        >>> queue = InMemoryMigrationQueue(tracer=tracer)
        >>> await queue.send_message(MigrationMessageType.MIGRATE_ENTITY, context)
        >>> tracer.span_names
        ['legacysync.queue.send']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []
        self.kinds: list[SpanKindEnum] = []

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()
        self.kinds.clear()

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        self.spans.append((name, attributes))
        self.kinds.append(kind)
        yield None


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """Return an OpenTelemetryTracer, or a NullTracer when tracing is disabled."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
]
