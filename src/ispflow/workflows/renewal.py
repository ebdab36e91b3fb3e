"""
Domain renewal workflow.

A domain becomes due when ``RenewalPolicy.window_days`` or fewer remain
before it expires. A due domain gets a renewal invoice. Auto-renewing domains
are then charged and renewed at the registrar; everyone else gets a reminder.
The expiration date only moves after the registrar has confirmed.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from ispflow.config import RenewalPolicy
from ispflow.events import (
    DomainExpired,
    DomainRenewed,
    InvoiceGenerated,
    InvoicePaid,
    WorkflowFailed,
    new_correlation_id,
)
from ispflow.exceptions import AggregateNotFoundError, DependencyError
from ispflow.locks import aggregate_lock_key
from ispflow.persistence.database import Database, UnitOfWork
from ispflow.persistence.models import Customer, Domain, Invoice, InvoiceStatus
from ispflow.providers import (
    EmailMessage,
    InvoiceRequest,
    Providers,
    RenewalRequest,
    call_with_timeout,
)
from ispflow.statemachine import DOMAIN_STATE_MACHINE, DomainTransition
from ispflow.workflows.base import Workflow, add_years
from ispflow.workflows.result import ErrorKind, WorkflowResult

logger = logging.getLogger(__name__)

_OPEN_INVOICE_STATUSES = (
    InvoiceStatus.DRAFT,
    InvoiceStatus.ISSUED,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.PAYMENT_CAPTURED,
)


class DomainRenewalWorkflow(Workflow):
    name = "DomainRenewal"

    def __init__(
        self,
        database: Database,
        providers: Providers,
        *,
        policy: RenewalPolicy | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(database, providers, **kwargs)
        self._policy = policy or RenewalPolicy()

    @property
    def policy(self) -> RenewalPolicy:
        return self._policy

    def days_until_expiration(self, domain: Domain) -> int:
        return (domain.expiration_date - self._clock()).days

    def is_due(self, domain: Domain) -> bool:
        return self.days_until_expiration(domain) <= self._policy.window_days

    async def execute(self, domain_id: int, *, correlation_id: str | None = None) -> WorkflowResult:
        """
        Run the renewal check for one domain.

        Not due: succeeds with ``details["due"] == False`` and changes nothing.
        Due: makes sure an open renewal invoice exists, then auto-renews or
        sends a reminder. Running it again reuses the open invoice.
        """
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            async with self._db.unit_of_work() as uow:
                domain = await uow.domains.get(domain_id)
                if domain is None:
                    raise AggregateNotFoundError("Domain", domain_id)

            days_left = self.days_until_expiration(domain)
            if days_left > self._policy.window_days:
                return WorkflowResult.succeeded(
                    correlation_id,
                    f"Domain {domain.name} is not due for renewal ({days_left} days left)",
                    domain_id,
                    due=False,
                    days_left=days_left,
                )
            if not DOMAIN_STATE_MACHINE.can_transition(domain.status, DomainTransition.RENEW):
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Domain {domain.name} is {domain.status.value} and cannot be renewed",
                    domain_id,
                )

            async with self._db.unit_of_work() as uow:
                invoice = await self._open_invoice(uow, domain, correlation_id)
                customer = await uow.customers.get(domain.customer_id)

            if domain.auto_renew:
                return await self._auto_renew(domain_id, invoice.id, correlation_id)

            await self._send_reminder(customer, domain, invoice, None)
            return WorkflowResult.succeeded(
                correlation_id,
                f"Renewal invoice {invoice.invoice_number} issued for {domain.name}; reminder sent",
                domain_id,
                due=True,
                invoice_id=invoice.id,
                renewed=False,
            )

        return await self._run(
            "execute", aggregate_lock_key("Domain", domain_id), correlation_id, domain_id, body
        )

    async def process_auto_renewal(
        self,
        domain_id: int,
        invoice_id: int | None = None,
        *,
        correlation_id: str | None = None,
    ) -> WorkflowResult:
        """
        Charge the customer and renew at the registrar.

        Without ``invoice_id`` the open renewal invoice is used, or a new one
        is generated. On any failure a reminder is sent and the domain is left
        as it was. A registrar failure after a successful charge also appends
        ``WorkflowFailed`` with the transaction id and marks the invoice
        ``PaymentCaptured``; later runs retry only the registrar call.
        """
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            if invoice_id is None:
                async with self._db.unit_of_work() as uow:
                    domain = await uow.domains.get(domain_id)
                    if domain is None:
                        raise AggregateNotFoundError("Domain", domain_id)
                    invoice = await self._open_invoice(uow, domain, correlation_id)
                return await self._auto_renew(domain_id, invoice.id, correlation_id)
            return await self._auto_renew(domain_id, invoice_id, correlation_id)

        return await self._run(
            "process_auto_renewal",
            aggregate_lock_key("Domain", domain_id),
            correlation_id,
            domain_id,
            body,
        )

    async def expire(self, domain_id: int, *, correlation_id: str | None = None) -> WorkflowResult:
        """Apply the Expire transition to a domain whose expiration date has passed."""
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            now = self._clock()
            async with self._db.unit_of_work() as uow:
                domain = await uow.domains.get(domain_id, for_update=True)
                if domain is None:
                    raise AggregateNotFoundError("Domain", domain_id)
                if domain.expiration_date > now:
                    return WorkflowResult.succeeded(
                        correlation_id,
                        f"Domain {domain.name} has not expired",
                        domain_id,
                        expired=False,
                    )

                domain.status = DOMAIN_STATE_MACHINE.transition(
                    domain.status, DomainTransition.EXPIRE
                )
                await uow.domains.save(domain)
                await uow.add_events(
                    DomainExpired(
                        aggregate_id=domain.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        domain_name=domain.name,
                        customer_id=domain.customer_id,
                        expiration_date=domain.expiration_date,
                    )
                )
            return WorkflowResult.succeeded(
                correlation_id, f"Domain {domain.name} expired", domain_id, expired=True
            )

        return await self._run(
            "expire", aggregate_lock_key("Domain", domain_id), correlation_id, domain_id, body
        )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _renewal_amount(self, domain: Domain) -> Decimal:
        price = domain.renewal_price or self._policy.default_renewal_price
        return (price * self._policy.period_years).quantize(Decimal("0.01"))

    async def _open_invoice(self, uow: UnitOfWork, domain: Domain, correlation_id: str) -> Invoice:
        for invoice in reversed(await uow.invoices.list_for_domain(domain.id)):
            if invoice.status in _OPEN_INVOICE_STATUSES:
                return invoice

        invoice = await self._providers.invoices.generate_invoice(
            uow,
            InvoiceRequest(
                customer_id=domain.customer_id,
                description=f"Domain renewal: {domain.name} ({self._policy.period_years} year(s))",
                amount=self._renewal_amount(domain),
                due_date=domain.expiration_date.date(),
                currency_code=self._config.currency_code,
                domain_id=domain.id,
            ),
        )
        await uow.add_events(
            InvoiceGenerated(
                aggregate_id=invoice.id,
                correlation_id=correlation_id,
                occurred_at=self._clock(),
                invoice_number=invoice.invoice_number,
                customer_id=invoice.customer_id,
                total_amount=invoice.total_amount,
                due_date=invoice.due_date,
                domain_id=domain.id,
            )
        )
        return invoice

    async def _auto_renew(self, domain_id: int, invoice_id: int, correlation_id: str) -> WorkflowResult:
        async with self._db.unit_of_work() as uow:
            domain = await uow.domains.get(domain_id)
            if domain is None:
                raise AggregateNotFoundError("Domain", domain_id)
            invoice = await uow.invoices.get(invoice_id)
            if invoice is None:
                raise AggregateNotFoundError("Invoice", invoice_id)
            customer = await uow.customers.get(domain.customer_id)

        if invoice.domain_id != domain_id:
            return WorkflowResult.failed(
                correlation_id,
                ErrorKind.VALIDATION,
                f"Invoice {invoice.invoice_number} does not belong to domain {domain.name}",
                domain_id,
            )
        if invoice.is_paid:
            return WorkflowResult.succeeded(
                correlation_id,
                f"Invoice {invoice.invoice_number} is already paid",
                domain_id,
                invoice_id=invoice.id,
                renewed=False,
            )
        if not DOMAIN_STATE_MACHINE.can_transition(domain.status, DomainTransition.RENEW):
            return WorkflowResult.failed(
                correlation_id,
                ErrorKind.VALIDATION,
                f"Domain {domain.name} is {domain.status.value} and cannot be renewed",
                domain_id,
            )

        timeout = self._config.external_call_timeout
        if invoice.is_captured:
            logger.info(
                "Invoice %s already captured (transaction %s); retrying registrar renewal only",
                invoice.invoice_number,
                invoice.transaction_id,
                extra={"domain_id": domain_id, "correlation_id": correlation_id},
            )
            transaction_id = invoice.transaction_id
        else:
            charged = await self._charge(customer, domain, invoice, correlation_id)
            if isinstance(charged, WorkflowResult):
                return charged
            transaction_id = charged

        try:
            renewal = await call_with_timeout(
                "registrar.renew",
                self._providers.registrar.renew(
                    RenewalRequest(domain_name=domain.name, years=self._policy.period_years)
                ),
                timeout,
            )
        except Exception as e:
            logger.warning(
                "Registrar renewal for %s raised: %s",
                domain.name,
                e,
                exc_info=True,
                extra={"domain_id": domain_id, "correlation_id": correlation_id},
            )
            registrar_error = str(e) or type(e).__name__
        else:
            if renewal.success:
                return await self._complete_renewal(
                    domain_id, invoice_id, transaction_id, correlation_id
                )
            registrar_error = renewal.error or "registrar rejected the renewal"

        reason = f"Registrar renewal failed after payment: {registrar_error}"
        async with self._db.unit_of_work() as uow:
            locked = await uow.invoices.get(invoice_id, for_update=True)
            if locked is None:
                raise AggregateNotFoundError("Invoice", invoice_id)
            await self._providers.invoices.record_capture(
                uow, locked, transaction_id, invoice.amount_due
            )
            await uow.add_events(
                WorkflowFailed(
                    aggregate_id=domain.id,
                    aggregate_type="Domain",
                    correlation_id=correlation_id,
                    occurred_at=self._clock(),
                    workflow=self.name,
                    step="registrar.renew",
                    reason=reason,
                    transaction_id=transaction_id,
                )
            )
        invoice = locked
        logger.error(
            "Customer %d was charged (transaction %s) but %s could not be renewed",
            domain.customer_id,
            transaction_id,
            domain.name,
            extra={
                "domain_id": domain_id,
                "invoice_id": invoice_id,
                "transaction_id": transaction_id,
                "correlation_id": correlation_id,
            },
        )
        return await self._renewal_failed(
            customer,
            domain,
            invoice,
            correlation_id,
            reason,
            transaction_id=transaction_id,
        )

    async def _charge(
        self,
        customer: Customer | None,
        domain: Domain,
        invoice: Invoice,
        correlation_id: str,
    ) -> str | None | WorkflowResult:
        """Take the amount due. Returns the transaction id, or the failed result."""
        timeout = self._config.external_call_timeout
        payments = self._providers.payments

        try:
            has_method = await call_with_timeout(
                "payments.has_active_payment_method",
                payments.has_active_payment_method(domain.customer_id),
                timeout,
            )
        except DependencyError as e:
            return await self._renewal_failed(customer, domain, invoice, correlation_id, str(e))
        if not has_method:
            return await self._renewal_failed(
                customer, domain, invoice, correlation_id, "No active payment method on file"
            )

        try:
            charge = await call_with_timeout(
                "payments.charge",
                payments.charge(
                    domain.customer_id,
                    invoice.amount_due,
                    invoice.currency_code,
                    invoice.description,
                ),
                timeout,
            )
        except DependencyError as e:
            return await self._renewal_failed(customer, domain, invoice, correlation_id, str(e))
        if not charge.success:
            return await self._renewal_failed(
                customer,
                domain,
                invoice,
                correlation_id,
                f"Payment failed: {charge.error or 'declined'}",
            )
        return charge.transaction_id

    async def _complete_renewal(
        self,
        domain_id: int,
        invoice_id: int,
        transaction_id: str | None,
        correlation_id: str,
    ) -> WorkflowResult:
        now = self._clock()
        async with self._db.unit_of_work() as uow:
            domain = await uow.domains.get(domain_id, for_update=True)
            invoice = await uow.invoices.get(invoice_id, for_update=True)
            if domain is None:
                raise AggregateNotFoundError("Domain", domain_id)
            if invoice is None:
                raise AggregateNotFoundError("Invoice", invoice_id)

            previous = domain.expiration_date
            domain.status = DOMAIN_STATE_MACHINE.transition(domain.status, DomainTransition.RENEW)
            domain.expiration_date = add_years(previous, self._policy.period_years)
            await uow.domains.save(domain)

            events = [
                DomainRenewed(
                    aggregate_id=domain.id,
                    correlation_id=correlation_id,
                    occurred_at=now,
                    domain_name=domain.name,
                    customer_id=domain.customer_id,
                    previous_expiration_date=previous,
                    new_expiration_date=domain.expiration_date,
                    invoice_id=invoice.id,
                    transaction_id=transaction_id,
                )
            ]
            if await self._providers.invoices.mark_paid(uow, invoice, transaction_id, now):
                events.append(
                    InvoicePaid(
                        aggregate_id=invoice.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        invoice_number=invoice.invoice_number,
                        customer_id=invoice.customer_id,
                        total_amount=invoice.total_amount,
                        paid_at=now,
                        transaction_id=transaction_id,
                        domain_id=domain.id,
                    )
                )
            await uow.add_events(*events)

        return WorkflowResult.succeeded(
            correlation_id,
            f"Domain {domain.name} renewed until {domain.expiration_date:%Y-%m-%d}",
            domain_id,
            due=True,
            invoice_id=invoice_id,
            renewed=True,
            transaction_id=transaction_id,
        )

    async def _renewal_failed(
        self,
        customer: Customer | None,
        domain: Domain,
        invoice: Invoice,
        correlation_id: str,
        reason: str,
        **details: Any,
    ) -> WorkflowResult:
        await self._send_reminder(customer, domain, invoice, reason)
        return WorkflowResult.failed(
            correlation_id,
            ErrorKind.DEPENDENCY,
            reason,
            domain.id,
            invoice_id=invoice.id,
            renewed=False,
            **details,
        )

    async def _send_reminder(
        self,
        customer: Customer | None,
        domain: Domain,
        invoice: Invoice,
        reason: str | None,
    ) -> None:
        if customer is None:
            logger.warning(
                "No customer %d for domain %s; renewal reminder not sent",
                domain.customer_id,
                domain.name,
            )
            return

        expires = f"{domain.expiration_date:%Y-%m-%d}"
        problem = f"<p>Automatic renewal did not complete: {reason}</p>" if reason else ""
        if invoice.is_captured:
            action = (
                f"Your payment for invoice {invoice.invoice_number} was received; "
                "we will retry the renewal automatically."
            )
        else:
            action = (
                f"Please pay invoice {invoice.invoice_number} "
                f"({invoice.total_amount} {invoice.currency_code}) to keep it."
            )
        message = EmailMessage(
            to=customer.email,
            subject=f"Domain Renewal Reminder - {domain.name}",
            body_html=(
                f"<p>Dear {customer.name},</p>"
                f"<p>Your domain <strong>{domain.name}</strong> expires on {expires}.</p>"
                f"{problem}"
                f"<p>{action}</p>"
            ),
            body_text=f"Your domain {domain.name} expires on {expires}. {action}",
        )
        try:
            await call_with_timeout(
                "notifier.queue_email",
                self._providers.notifier.queue_email(message),
                self._config.external_call_timeout,
            )
        except Exception:
            logger.warning(
                "Could not queue renewal reminder for %s",
                domain.name,
                exc_info=True,
                extra={"domain_id": domain.id},
            )


__all__ = ["DomainRenewalWorkflow"]
