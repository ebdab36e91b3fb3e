"""
Aggregate and reference records.

Plain mutable dataclasses: repositories load them, workflows change them
through the state machines and hand them back to be saved.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from ispflow.statemachine import DomainStatus, OrderStatus


class ServiceType:
    """Well-known service type names used to pick a provisioner."""

    DOMAIN_REGISTRATION = "Domain Registration"
    HOSTING = "Hosting"
    EMAIL = "Email"


class InvoiceStatus(Enum):
    DRAFT = "Draft"
    ISSUED = "Issued"
    # Money collected, but the service it pays for has not been delivered yet.
    PAYMENT_CAPTURED = "PaymentCaptured"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


@dataclass
class Customer:
    id: int
    name: str
    email: str
    created_at: datetime
    phone: str | None = None


@dataclass
class Registrar:
    id: int
    name: str
    code: str
    is_active: bool
    created_at: datetime


@dataclass
class Service:
    id: int
    name: str
    service_type: str
    price: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime
    description: str | None = None


@dataclass
class Order:
    """
    A billable line item whose status is driven by the order state machine.

    Attributes:
        registrar_id: Registrar chosen for domain registration orders
        term_years: Registration term for domain orders
        notes: Free-text notes; holds the failure reason after a suspension
        registration_submitted_at: Set just before the registrar is asked to
            register the domain, so a retry knows the request may have landed
    """

    id: int
    order_number: str
    customer_id: int
    service_id: int
    status: OrderStatus
    total_amount: Decimal
    recurring_amount: Decimal
    created_at: datetime
    updated_at: datetime
    registrar_id: int | None = None
    term_years: int = 1
    auto_renew: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None
    next_billing_date: datetime | None = None
    notes: str | None = None
    registration_submitted_at: datetime | None = None


@dataclass
class Domain:
    """A registered domain name. Mutated only by workflow orchestrators."""

    id: int
    name: str
    customer_id: int
    registrar_id: int
    status: DomainStatus
    registration_date: datetime
    expiration_date: datetime
    created_at: datetime
    updated_at: datetime
    auto_renew: bool = False
    service_id: int | None = None
    order_id: int | None = None
    registration_price: Decimal | None = None
    renewal_price: Decimal | None = None


@dataclass
class Invoice:
    id: int
    invoice_number: str
    customer_id: int
    status: InvoiceStatus
    description: str
    currency_code: str
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    issue_date: datetime
    due_date: date
    created_at: datetime
    updated_at: datetime
    order_id: int | None = None
    domain_id: int | None = None
    paid_at: datetime | None = None
    transaction_id: str | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def is_captured(self) -> bool:
        return self.status == InvoiceStatus.PAYMENT_CAPTURED


__all__ = [
    "ServiceType",
    "InvoiceStatus",
    "Customer",
    "Registrar",
    "Service",
    "Order",
    "Domain",
    "Invoice",
]
