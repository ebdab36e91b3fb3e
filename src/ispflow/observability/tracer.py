"""
Span factories handed to workflows, the dispatcher and the currency service.

Nothing in ispflow imports OpenTelemetry directly. A component takes a
``Tracer`` (or builds one with ``create_tracer``) and opens spans through it;
with tracing off, or without the ``telemetry`` extra installed, it gets a
``NullTracer`` and every span is free.

    >>> class RenewalJob:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def run(self, domain_id: int) -> None:
    ...         with self._tracer.span("ispflow.renewal.run", {"ispflow.domain.id": domain_id}):
    ...             ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ispflow.observability.tracing import OTEL_AVAILABLE

if TYPE_CHECKING:
    from opentelemetry.trace import Span

SpanAttributes = Mapping[str, Any]


@runtime_checkable
class Tracer(Protocol):
    """What components need from a tracer: a span context manager and a flag."""

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span named ``name`` (``ispflow.<component>.<operation>``).

        The context manager yields the live span, or None when nothing records.
        """
        ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Used when tracing is off; spans cost one generator frame."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Opens spans on the global OpenTelemetry tracer provider.

    Raises:
        ImportError: From the constructor when ``opentelemetry`` is missing
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=_drop_unset(attributes))

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Keeps every span it is asked for, in order, for assertions in tests.

        >>> tracer = MockTracer()
        >>> with tracer.span("ispflow.dispatcher.cycle", {"ispflow.outbox.batch_size": 10}):
        ...     pass
        >>> tracer.span_names
        ['ispflow.dispatcher.cycle']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any]]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: SpanAttributes | None = None,
    ) -> Iterator[None]:
        self.spans.append((name, dict(attributes or {})))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def attributes_for(self, name: str) -> dict[str, Any]:
        """Attributes of the first span called ``name``."""
        for span_name, attributes in self.spans:
            if span_name == name:
                return attributes
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()


def _drop_unset(attributes: SpanAttributes | None) -> dict[str, Any]:
    # None is not a valid OpenTelemetry attribute value.
    return {key: value for key, value in (attributes or {}).items() if value is not None}


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """``OpenTelemetryTracer`` when asked for and importable, else ``NullTracer``."""
    if not (enable_tracing and OTEL_AVAILABLE):
        return NullTracer()
    return OpenTelemetryTracer(name)


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanAttributes",
    "create_tracer",
]
