"""
Observability utilities for ispflow.

Tracing helpers and standard attribute definitions. OpenTelemetry is an
optional dependency; everything here works without it installed.
"""

from ispflow.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_BATCH_SIZE,
    ATTR_CORRELATION_ID,
    ATTR_CURRENCY_BASE,
    ATTR_CURRENCY_TARGET,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_COUNT,
    ATTR_LOCK_KEY,
    ATTR_OUTBOX_ID,
    ATTR_RETRY_COUNT,
    ATTR_TRANSITION,
    ATTR_WORKFLOW_NAME,
    ATTR_WORKFLOW_SUCCESS,
)
from ispflow.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from ispflow.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENT_COUNT",
    "ATTR_CORRELATION_ID",
    "ATTR_OUTBOX_ID",
    "ATTR_RETRY_COUNT",
    "ATTR_HANDLER_COUNT",
    "ATTR_BATCH_SIZE",
    "ATTR_ERROR_TYPE",
    "ATTR_WORKFLOW_NAME",
    "ATTR_WORKFLOW_SUCCESS",
    "ATTR_TRANSITION",
    "ATTR_CURRENCY_BASE",
    "ATTR_CURRENCY_TARGET",
    "ATTR_DB_SYSTEM",
    "ATTR_LOCK_KEY",
]
