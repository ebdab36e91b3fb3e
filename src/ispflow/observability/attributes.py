"""
Standard span attributes for ispflow.

Constants used across components for consistent span attributes. They follow
OpenTelemetry semantic conventions where one exists.
"""

# =============================================================================
# Aggregate Attributes
# =============================================================================

ATTR_AGGREGATE_ID = "ispflow.aggregate.id"
"""Identifier of the aggregate instance (integer)."""

ATTR_AGGREGATE_TYPE = "ispflow.aggregate.type"
"""Type name of the aggregate ('Domain', 'Order', 'Invoice')."""

# =============================================================================
# Event Attributes
# =============================================================================

ATTR_EVENT_ID = "ispflow.event.id"
"""Unique identifier for the event (UUID string)."""

ATTR_EVENT_TYPE = "ispflow.event.type"
"""Type name of the event (e.g., 'DomainRegistered')."""

ATTR_EVENT_COUNT = "ispflow.event.count"
"""Number of events in an operation (integer)."""

ATTR_CORRELATION_ID = "ispflow.correlation.id"
"""Correlation id grouping one business transaction (string)."""

# =============================================================================
# Outbox / Dispatch Attributes
# =============================================================================

ATTR_OUTBOX_ID = "ispflow.outbox.id"
"""Outbox record sequence id (integer)."""

ATTR_RETRY_COUNT = "ispflow.retry.count"
"""Number of failed dispatch attempts so far (integer)."""

ATTR_HANDLER_COUNT = "ispflow.handler.count"
"""Number of handlers resolved for an event (integer)."""

ATTR_BATCH_SIZE = "ispflow.batch.size"
"""Number of records fetched in one dispatch cycle (integer)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations."""

# =============================================================================
# Workflow Attributes
# =============================================================================

ATTR_WORKFLOW_NAME = "ispflow.workflow.name"
"""Name of the workflow orchestrator ('DomainRegistration', ...)."""

ATTR_WORKFLOW_SUCCESS = "ispflow.workflow.success"
"""Whether the workflow step succeeded (boolean)."""

ATTR_TRANSITION = "ispflow.transition"
"""Lifecycle transition name (string)."""

# =============================================================================
# Currency Attributes
# =============================================================================

ATTR_CURRENCY_BASE = "ispflow.currency.base"
"""Base currency code (string)."""

ATTR_CURRENCY_TARGET = "ispflow.currency.target"
"""Target currency code (string)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system ('postgresql', 'sqlite', 'memory')."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "ispflow.lock.key"
"""Key of the per-aggregate lock (string)."""


__all__ = [
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
