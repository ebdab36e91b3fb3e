"""
Domain registration workflow.

Registration happens in two steps. ``execute`` takes the order: it creates a
pending order and a draft invoice. Once the invoice is paid,
``on_payment_received`` registers the name with the registrar and activates
the order. When the registrar refuses or times out, the order is suspended
with the reason so somebody can sort it out by hand. The payment is never
refunded automatically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from ispflow.events import (
    DomainRegistered,
    InvoiceGenerated,
    OrderActivated,
    OrderCreated,
    OrderSuspended,
    new_correlation_id,
)
from ispflow.exceptions import AggregateNotFoundError
from ispflow.locks import aggregate_lock_key
from ispflow.persistence.models import Order, ServiceType
from ispflow.providers import InvoiceRequest, RegistrationRequest, call_with_timeout
from ispflow.statemachine import (
    DOMAIN_STATE_MACHINE,
    ORDER_STATE_MACHINE,
    DomainStatus,
    DomainTransition,
    OrderTransition,
)
from ispflow.workflows.base import Workflow, add_years
from ispflow.workflows.result import ErrorKind, WorkflowResult

logger = logging.getLogger(__name__)

MAX_REGISTRATION_YEARS = 10


@dataclass(frozen=True)
class DomainRegistrationInput:
    customer_id: int
    domain_name: str
    registrar_id: int
    years: int = 1
    auto_renew: bool = False
    correlation_id: str | None = None


def _validate(request: DomainRegistrationInput) -> str | None:
    name = request.domain_name.strip()
    if not name or "." not in name or name.startswith(".") or name.endswith("."):
        return f"'{request.domain_name}' is not a valid domain name"
    if not 1 <= request.years <= MAX_REGISTRATION_YEARS:
        return f"Registration term must be 1-{MAX_REGISTRATION_YEARS} years, got {request.years}"
    return None


class DomainRegistrationWorkflow(Workflow):
    name = "DomainRegistration"

    async def execute(self, request: DomainRegistrationInput) -> WorkflowResult:
        """
        Take a registration order.

        Creates (or reuses) the "Domain Registration" service for the name, a
        pending order and a draft invoice, and appends ``OrderCreated`` and
        ``InvoiceGenerated``. Result details carry ``invoice_id`` and
        ``order_number``.
        """
        correlation_id = request.correlation_id or new_correlation_id()
        domain_name = request.domain_name.strip().lower()

        async def body() -> WorkflowResult:
            problem = _validate(request)
            if problem is not None:
                return WorkflowResult.failed(correlation_id, ErrorKind.VALIDATION, problem)

            async with self._db.unit_of_work() as uow:
                customer = await uow.customers.get(request.customer_id)
                registrar = await uow.registrars.get(request.registrar_id)
                existing = await uow.domains.get_by_name(domain_name)
            if customer is None:
                raise AggregateNotFoundError("Customer", request.customer_id)
            if registrar is None:
                raise AggregateNotFoundError("Registrar", request.registrar_id)
            if not registrar.is_active:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Registrar {registrar.code} is not active",
                )
            if existing is not None:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Domain {domain_name} is already registered",
                    existing.id,
                )

            price = self._config.default_domain_price
            if self._config.check_availability:
                availability = await call_with_timeout(
                    "registrar.check_availability",
                    self._providers.registrar.check_availability(domain_name),
                    self._config.external_call_timeout,
                )
                if not availability.available:
                    return WorkflowResult.failed(
                        correlation_id,
                        ErrorKind.VALIDATION,
                        f"Domain {domain_name} is not available"
                        + (f": {availability.message}" if availability.message else ""),
                    )
                if availability.price is not None:
                    price = availability.price

            now = self._clock()
            total = (price * request.years).quantize(Decimal("0.01"))
            async with self._db.unit_of_work() as uow:
                service = await uow.services.find(domain_name, ServiceType.DOMAIN_REGISTRATION)
                if service is None:
                    service = await uow.services.add(
                        domain_name,
                        ServiceType.DOMAIN_REGISTRATION,
                        price,
                        description=f"Domain registration for {domain_name}",
                    )

                order = await uow.orders.add(
                    customer.id,
                    service.id,
                    total,
                    price,
                    registrar_id=registrar.id,
                    term_years=request.years,
                    auto_renew=request.auto_renew,
                    now=now,
                )
                invoice = await self._providers.invoices.generate_invoice(
                    uow,
                    InvoiceRequest(
                        customer_id=customer.id,
                        description=f"Domain registration: {domain_name} ({request.years} year(s))",
                        amount=total,
                        due_date=(now + timedelta(days=self._config.invoice_due_days)).date(),
                        currency_code=self._config.currency_code,
                        order_id=order.id,
                    ),
                )
                await uow.add_events(
                    OrderCreated(
                        aggregate_id=order.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        order_number=order.order_number,
                        customer_id=customer.id,
                        service_id=service.id,
                        total_amount=total,
                    ),
                    InvoiceGenerated(
                        aggregate_id=invoice.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        invoice_number=invoice.invoice_number,
                        customer_id=customer.id,
                        total_amount=invoice.total_amount,
                        due_date=invoice.due_date,
                        order_id=order.id,
                    ),
                )

            return WorkflowResult.succeeded(
                correlation_id,
                f"Order {order.order_number} created for {domain_name}",
                order.id,
                invoice_id=invoice.id,
                order_number=order.order_number,
            )

        return await self._run(
            "execute",
            f"domain-name:{domain_name}",
            correlation_id,
            None,
            body,
        )

    async def on_payment_received(
        self,
        order_id: int,
        invoice_id: int,
        *,
        correlation_id: str | None = None,
    ) -> WorkflowResult:
        """
        Register the domain for a paid order.

        Idempotent: an order whose domain already exists succeeds without
        calling the registrar again. The registrar call runs outside any
        transaction and is bounded by ``external_call_timeout``; a timeout
        counts as a registration failure.
        """
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            async with self._db.unit_of_work() as uow:
                order = await uow.orders.get(order_id)
                if order is None:
                    raise AggregateNotFoundError("Order", order_id)
                domain = await uow.domains.get_by_order(order_id)
                invoice = await uow.invoices.get(invoice_id)
                service = await uow.services.get(order.service_id)
                customer = await uow.customers.get(order.customer_id)

            if domain is not None:
                return WorkflowResult.succeeded(
                    correlation_id,
                    f"Domain {domain.name} already registered for order {order.order_number}",
                    order_id,
                    domain_id=domain.id,
                )
            if not ORDER_STATE_MACHINE.can_transition(order.status, OrderTransition.ACTIVATE):
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Order {order.order_number} is {order.status.value} and cannot be activated",
                    order_id,
                )
            if invoice is None:
                raise AggregateNotFoundError("Invoice", invoice_id)
            if invoice.order_id != order_id:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Invoice {invoice.invoice_number} does not belong to order {order.order_number}",
                    order_id,
                )
            if not invoice.is_paid:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Invoice {invoice.invoice_number} has not been paid",
                    order_id,
                )
            if service is None:
                raise AggregateNotFoundError("Service", order.service_id)
            if order.registrar_id is None:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Order {order.order_number} has no registrar",
                    order_id,
                )

            if order.registration_submitted_at is not None:
                resumed = await self._resume_submitted(order, service.name, correlation_id)
                if resumed is not None:
                    return resumed
            else:
                await self._mark_submitted(order_id)

            request = RegistrationRequest(
                domain_name=service.name,
                years=order.term_years,
                auto_renew=order.auto_renew,
                customer_id=order.customer_id,
                registrant_email=customer.email if customer else None,
            )
            try:
                registration = await call_with_timeout(
                    "registrar.register",
                    self._providers.registrar.register(request),
                    self._config.external_call_timeout,
                )
            except Exception as e:
                logger.warning(
                    "Registrar call for %s raised: %s",
                    request.domain_name,
                    e,
                    exc_info=True,
                    extra={"order_id": order_id, "correlation_id": correlation_id},
                )
                failure = str(e) or type(e).__name__
            else:
                if registration.success:
                    return await self._complete_registration(
                        order_id, service.name, registration.expiration_date, correlation_id
                    )
                failure = registration.error or "registrar rejected the registration"

            return await self._suspend_order(order_id, request.domain_name, failure, correlation_id)

        return await self._run(
            "on_payment_received",
            aggregate_lock_key("Order", order_id),
            correlation_id,
            order_id,
            body,
        )

    async def _mark_submitted(self, order_id: int) -> None:
        async with self._db.unit_of_work() as uow:
            order = await uow.orders.get(order_id, for_update=True)
            if order is None:
                raise AggregateNotFoundError("Order", order_id)
            order.registration_submitted_at = self._clock()
            await uow.orders.save(order)

    async def _resume_submitted(
        self, order: Order, domain_name: str, correlation_id: str
    ) -> WorkflowResult | None:
        """
        Settle an order whose registration was sent before but never recorded.

        A name the registrar now reports as taken is assumed to be ours and
        the order is completed without registering again. Returns None when
        the name is still free and the registration should be retried.
        """
        try:
            availability = await call_with_timeout(
                "registrar.check_availability",
                self._providers.registrar.check_availability(domain_name),
                self._config.external_call_timeout,
            )
        except Exception as e:
            return WorkflowResult.failed(
                correlation_id,
                ErrorKind.INFRASTRUCTURE,
                f"Could not confirm earlier registration of {domain_name}: {e}",
                order.id,
            )

        if availability.available:
            logger.info(
                "Earlier registration of %s did not land; registering again",
                domain_name,
                extra={"order_id": order.id, "correlation_id": correlation_id},
            )
            return None

        logger.warning(
            "Registration of %s was submitted at %s but not recorded; completing it",
            domain_name,
            order.registration_submitted_at,
            extra={"order_id": order.id, "correlation_id": correlation_id},
        )
        return await self._complete_registration(order.id, domain_name, None, correlation_id)

    async def _complete_registration(
        self,
        order_id: int,
        domain_name: str,
        expiration_date: datetime | None,
        correlation_id: str,
    ) -> WorkflowResult:
        now = self._clock()
        async with self._db.unit_of_work() as uow:
            order = await uow.orders.get(order_id, for_update=True)
            if order is None:
                raise AggregateNotFoundError("Order", order_id)
            existing = await uow.domains.get_by_order(order_id)
            if existing is not None:
                return WorkflowResult.succeeded(
                    correlation_id,
                    f"Domain {existing.name} already registered for order {order.order_number}",
                    order_id,
                    domain_id=existing.id,
                )

            order_status = ORDER_STATE_MACHINE.transition(order.status, OrderTransition.ACTIVATE)
            domain_status = DOMAIN_STATE_MACHINE.transition(
                DomainStatus.PENDING_REGISTRATION, DomainTransition.REGISTER
            )
            expiration = expiration_date or add_years(now, order.term_years)

            domain = await uow.domains.add(
                domain_name,
                order.customer_id,
                order.registrar_id,
                domain_status,
                now,
                expiration,
                auto_renew=order.auto_renew,
                service_id=order.service_id,
                order_id=order.id,
                registration_price=order.recurring_amount,
                renewal_price=order.recurring_amount,
            )

            order.status = order_status
            order.start_date = now
            order.end_date = expiration
            order.next_billing_date = expiration
            await uow.orders.save(order)

            await uow.add_events(
                DomainRegistered(
                    aggregate_id=domain.id,
                    correlation_id=correlation_id,
                    occurred_at=now,
                    domain_name=domain.name,
                    customer_id=domain.customer_id,
                    registrar_id=domain.registrar_id,
                    order_id=order.id,
                    expiration_date=expiration,
                ),
                OrderActivated(
                    aggregate_id=order.id,
                    correlation_id=correlation_id,
                    occurred_at=now,
                    order_number=order.order_number,
                    customer_id=order.customer_id,
                ),
            )

        return WorkflowResult.succeeded(
            correlation_id,
            f"Domain {domain_name} registered until {expiration:%Y-%m-%d}",
            order_id,
            domain_id=domain.id,
        )

    async def _suspend_order(
        self,
        order_id: int,
        domain_name: str,
        failure: str,
        correlation_id: str,
    ) -> WorkflowResult:
        reason = f"Domain registration failed for {domain_name}: {failure}"
        now = self._clock()
        async with self._db.unit_of_work() as uow:
            order = await uow.orders.get(order_id, for_update=True)
            if order is None:
                raise AggregateNotFoundError("Order", order_id)
            # Only an order still awaiting fulfilment is compensated
            suspended = ORDER_STATE_MACHINE.can_transition(
                order.status, OrderTransition.ACTIVATE
            ) and ORDER_STATE_MACHINE.can_transition(order.status, OrderTransition.SUSPEND)
            if suspended:
                order.status = ORDER_STATE_MACHINE.transition(order.status, OrderTransition.SUSPEND)
                order.notes = reason
                await uow.orders.save(order)
                await uow.add_events(
                    OrderSuspended(
                        aggregate_id=order.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        order_number=order.order_number,
                        customer_id=order.customer_id,
                        reason=reason,
                    )
                )

        return WorkflowResult.failed(
            correlation_id,
            ErrorKind.DEPENDENCY,
            reason,
            order_id,
            suspended=suspended,
        )


__all__ = ["DomainRegistrationInput", "DomainRegistrationWorkflow"]
