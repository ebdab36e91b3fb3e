"""
Event model for ispflow.

Exports the event base class, the type registry and the lifecycle event
catalog.
"""

from ispflow.events.base import DomainEvent, new_correlation_id
from ispflow.events.catalog import (
    DomainExpired,
    DomainRegistered,
    DomainRenewed,
    DomainSuspended,
    InvoiceGenerated,
    InvoicePaid,
    OrderActivated,
    OrderCancelled,
    OrderCreated,
    OrderSuspended,
    WorkflowFailed,
)
from ispflow.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    get_event_class,
    register_event,
)

__all__ = [
    "DomainEvent",
    "new_correlation_id",
    "EventRegistry",
    "EventTypeNotFoundError",
    "DuplicateEventTypeError",
    "default_registry",
    "get_event_class",
    "register_event",
    "OrderCreated",
    "OrderActivated",
    "OrderSuspended",
    "OrderCancelled",
    "DomainRegistered",
    "DomainRenewed",
    "DomainExpired",
    "DomainSuspended",
    "InvoiceGenerated",
    "InvoicePaid",
    "WorkflowFailed",
]
