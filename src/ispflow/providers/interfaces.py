"""
Collaborator interfaces consumed by the workflows.

Registrar, payment, notification and provisioning integrations live outside
this package. Workflows talk to them only through these protocols, and every
call is bounded by a timeout (see ``ispflow.providers.timeouts``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ispflow.persistence.database import UnitOfWork
    from ispflow.persistence.models import Invoice, Order, Service


# =============================================================================
# Requests and results
# =============================================================================


@dataclass(frozen=True)
class AvailabilityResult:
    domain_name: str
    available: bool
    price: Decimal | None = None
    message: str | None = None


@dataclass(frozen=True)
class RegistrationRequest:
    domain_name: str
    years: int
    auto_renew: bool
    customer_id: int
    registrant_email: str | None = None


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    expiration_date: datetime | None = None
    error: str | None = None


@dataclass(frozen=True)
class RenewalRequest:
    domain_name: str
    years: int


@dataclass(frozen=True)
class RenewalResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    transaction_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ProvisioningResult:
    success: bool
    message: str | None = None


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    body_html: str
    body_text: str | None = None


@dataclass(frozen=True)
class InvoiceRequest:
    """What to bill, and for which order or domain."""

    customer_id: int
    description: str
    amount: Decimal
    due_date: date
    currency_code: str = "EUR"
    order_id: int | None = None
    domain_id: int | None = None


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class Registrar(Protocol):
    async def check_availability(self, domain_name: str) -> AvailabilityResult: ...

    async def register(self, request: RegistrationRequest) -> RegistrationResult: ...

    async def renew(self, request: RenewalRequest) -> RenewalResult: ...


@runtime_checkable
class PaymentProcessor(Protocol):
    async def charge(
        self,
        customer_id: int,
        amount: Decimal,
        currency_code: str,
        description: str,
    ) -> ChargeResult: ...

    async def has_active_payment_method(self, customer_id: int) -> bool: ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget e-mail queue. Delivery guarantees belong to the implementation."""

    async def queue_email(self, message: EmailMessage) -> None: ...


@runtime_checkable
class Provisioner(Protocol):
    """Sets up the resources behind one service type (hosting account, mailboxes)."""

    async def provision(self, order: Order, service: Service) -> ProvisioningResult: ...


@runtime_checkable
class InvoiceService(Protocol):
    """
    Creates and settles invoices inside the caller's unit of work, so the
    invoice commits or rolls back together with the aggregate change.
    """

    async def generate_invoice(self, uow: UnitOfWork, request: InvoiceRequest) -> Invoice: ...

    async def mark_paid(
        self,
        uow: UnitOfWork,
        invoice: Invoice,
        transaction_id: str | None,
        paid_at: datetime,
    ) -> bool:
        """Settle the invoice. Returns False if it was already paid."""
        ...

    async def record_capture(
        self,
        uow: UnitOfWork,
        invoice: Invoice,
        transaction_id: str | None,
        amount: Decimal,
    ) -> bool:
        """
        Record money taken for an invoice whose service is still pending.

        Returns False if a capture or payment is already recorded.
        """
        ...


__all__ = [
    "AvailabilityResult",
    "RegistrationRequest",
    "RegistrationResult",
    "RenewalRequest",
    "RenewalResult",
    "ChargeResult",
    "ProvisioningResult",
    "EmailMessage",
    "InvoiceRequest",
    "Registrar",
    "PaymentProcessor",
    "Notifier",
    "Provisioner",
    "InvoiceService",
]
