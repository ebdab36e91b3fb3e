"""
Lifecycle events raised by the workflow orchestrators.

Every class here is registered in the default event registry so outbox
records can be deserialized back into typed events.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from ispflow.events.base import DomainEvent
from ispflow.events.registry import register_event

# =============================================================================
# Order events
# =============================================================================


@register_event
class OrderCreated(DomainEvent):
    aggregate_type: str = "Order"

    order_number: str
    customer_id: int
    service_id: int
    total_amount: Decimal


@register_event
class OrderActivated(DomainEvent):
    aggregate_type: str = "Order"

    order_number: str
    customer_id: int


@register_event
class OrderSuspended(DomainEvent):
    """An order was suspended; ``reason`` is surfaced for manual intervention."""

    aggregate_type: str = "Order"

    order_number: str
    customer_id: int
    reason: str = Field(..., min_length=1)


@register_event
class OrderCancelled(DomainEvent):
    aggregate_type: str = "Order"

    order_number: str
    customer_id: int
    reason: str | None = None


# =============================================================================
# Domain events
# =============================================================================


@register_event
class DomainRegistered(DomainEvent):
    aggregate_type: str = "Domain"

    domain_name: str
    customer_id: int
    registrar_id: int
    order_id: int
    expiration_date: datetime


@register_event
class DomainRenewed(DomainEvent):
    aggregate_type: str = "Domain"

    domain_name: str
    customer_id: int
    previous_expiration_date: datetime
    new_expiration_date: datetime
    invoice_id: int | None = None
    transaction_id: str | None = None


@register_event
class DomainExpired(DomainEvent):
    aggregate_type: str = "Domain"

    domain_name: str
    customer_id: int
    expiration_date: datetime


@register_event
class DomainSuspended(DomainEvent):
    aggregate_type: str = "Domain"

    domain_name: str
    customer_id: int
    reason: str


# =============================================================================
# Invoice events
# =============================================================================


@register_event
class InvoiceGenerated(DomainEvent):
    aggregate_type: str = "Invoice"

    invoice_number: str
    customer_id: int
    total_amount: Decimal
    due_date: date
    order_id: int | None = None
    domain_id: int | None = None


@register_event
class InvoicePaid(DomainEvent):
    """An invoice was settled. Triggers provisioning of the order it bills."""

    aggregate_type: str = "Invoice"

    invoice_number: str
    customer_id: int
    total_amount: Decimal
    paid_at: datetime
    transaction_id: str | None = None
    order_id: int | None = None
    domain_id: int | None = None


# =============================================================================
# Workflow events
# =============================================================================


@register_event
class WorkflowFailed(DomainEvent):
    """
    A workflow step failed after an irreversible side effect.

    Raised for example when a renewal charge succeeded but the registrar
    refused the renewal. The aggregate type is that of the aggregate the
    workflow was acting on.
    """

    workflow: str
    step: str
    reason: str
    transaction_id: str | None = None


__all__ = [
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
