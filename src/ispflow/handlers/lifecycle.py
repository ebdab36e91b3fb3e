"""
Built-in handlers that chain the lifecycle workflows through events.

``LifecycleHandlers`` turns a paid order invoice into a registration or a
provisioning run. ``NotificationHandlers`` e-mails customers about lifecycle
changes and uses the processed-event ledger so a redelivered event does not
send the same mail twice.

Both are registered with ``EventHandlerRegistry.register_object``.
"""

from __future__ import annotations

import logging

from ispflow.events import (
    DomainExpired,
    DomainRegistered,
    DomainRenewed,
    InvoicePaid,
    OrderActivated,
    OrderSuspended,
)
from ispflow.events.base import DomainEvent
from ispflow.exceptions import WorkflowError
from ispflow.handlers.decorators import handles
from ispflow.persistence.database import Database
from ispflow.persistence.models import ServiceType
from ispflow.persistence.repositories import (
    CustomerRepository,
    OrderRepository,
    ServiceRepository,
)
from ispflow.providers import EmailMessage, Notifier, call_with_timeout
from ispflow.statemachine import OrderStatus
from ispflow.workflows import (
    DomainRegistrationWorkflow,
    OrderProvisioningWorkflow,
    WorkflowResult,
)

logger = logging.getLogger(__name__)


def _raise_if_retryable(workflow: str, result: WorkflowResult) -> None:
    if result.retryable:
        raise WorkflowError(workflow, result.message, result.correlation_id)


class LifecycleHandlers:
    """
    Starts fulfilment once an order's invoice is paid.

    Domain registration orders go to ``DomainRegistrationWorkflow.on_payment_received``;
    every other order goes to ``OrderProvisioningWorkflow.provision``. Orders
    that are no longer Pending were already handled and are skipped.
    Renewal invoices carry no order and are ignored.
    """

    def __init__(
        self,
        database: Database,
        registration: DomainRegistrationWorkflow,
        provisioning: OrderProvisioningWorkflow,
    ) -> None:
        self._orders = OrderRepository(database.engine)
        self._services = ServiceRepository(database.engine)
        self._registration = registration
        self._provisioning = provisioning

    @handles(InvoicePaid)
    async def on_invoice_paid(self, event: InvoicePaid) -> None:
        if event.order_id is None:
            return

        order = await self._orders.get(event.order_id)
        if order is None:
            logger.warning(
                "Invoice %s references missing order %d",
                event.invoice_number,
                event.order_id,
                extra={"event_id": str(event.event_id), "order_id": event.order_id},
            )
            return
        if order.status is not OrderStatus.PENDING:
            logger.debug(
                "Order %s is %s; nothing to do for %s",
                order.order_number,
                order.status.value,
                event.invoice_number,
            )
            return

        service = await self._services.get(order.service_id)
        if service is not None and service.service_type == ServiceType.DOMAIN_REGISTRATION:
            result = await self._registration.on_payment_received(
                order.id,
                event.aggregate_id,
                correlation_id=event.correlation_id,
            )
            _raise_if_retryable(self._registration.name, result)
        else:
            result = await self._provisioning.provision(
                order.id,
                correlation_id=event.correlation_id,
            )
            _raise_if_retryable(self._provisioning.name, result)


class NotificationHandlers:
    """Customer e-mails for lifecycle events, sent at most once per event."""

    def __init__(
        self,
        database: Database,
        notifier: Notifier,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._customers = CustomerRepository(database.engine)
        self._ledger = database.processed_events()
        self._notifier = notifier
        self._timeout = timeout

    @handles(DomainRegistered)
    async def on_domain_registered(self, event: DomainRegistered) -> None:
        await self._notify(
            "NotificationHandlers.on_domain_registered",
            event,
            event.customer_id,
            f"Domain Registered - {event.domain_name}",
            f"Your domain {event.domain_name} is registered until "
            f"{event.expiration_date:%Y-%m-%d}.",
        )

    @handles(DomainRenewed)
    async def on_domain_renewed(self, event: DomainRenewed) -> None:
        await self._notify(
            "NotificationHandlers.on_domain_renewed",
            event,
            event.customer_id,
            f"Domain Renewed - {event.domain_name}",
            f"Your domain {event.domain_name} has been renewed until "
            f"{event.new_expiration_date:%Y-%m-%d}.",
        )

    @handles(DomainExpired)
    async def on_domain_expired(self, event: DomainExpired) -> None:
        await self._notify(
            "NotificationHandlers.on_domain_expired",
            event,
            event.customer_id,
            f"Domain Expired - {event.domain_name}",
            f"Your domain {event.domain_name} expired on {event.expiration_date:%Y-%m-%d}. "
            "Renew it soon to avoid losing it.",
        )

    @handles(OrderActivated)
    async def on_order_activated(self, event: OrderActivated) -> None:
        await self._notify(
            "NotificationHandlers.on_order_activated",
            event,
            event.customer_id,
            f"Order Activated - {event.order_number}",
            f"Your order {event.order_number} is now active.",
        )

    @handles(OrderSuspended)
    async def on_order_suspended(self, event: OrderSuspended) -> None:
        await self._notify(
            "NotificationHandlers.on_order_suspended",
            event,
            event.customer_id,
            f"Order Suspended - {event.order_number}",
            f"Your order {event.order_number} has been suspended: {event.reason}",
        )

    async def _notify(
        self,
        handler_name: str,
        event: DomainEvent,
        customer_id: int,
        subject: str,
        text: str,
    ) -> None:
        event_id = str(event.event_id)
        if await self._ledger.is_processed(handler_name, event_id):
            logger.debug("%s already handled event %s", handler_name, event_id)
            return

        customer = await self._customers.get(customer_id)
        if customer is None:
            logger.warning(
                "Customer %d not found; skipping %s",
                customer_id,
                subject,
                extra={"event_id": event_id, "handler": handler_name},
            )
            await self._ledger.mark_processed(handler_name, event_id)
            return

        await call_with_timeout(
            "notifier.queue_email",
            self._notifier.queue_email(
                EmailMessage(
                    to=customer.email,
                    subject=subject,
                    body_html=f"<p>Dear {customer.name},</p><p>{text}</p>",
                    body_text=text,
                )
            ),
            self._timeout,
        )
        await self._ledger.mark_processed(handler_name, event_id)


__all__ = ["LifecycleHandlers", "NotificationHandlers"]
