"""
Order provisioning workflow.

Runs the provisioner for the order's service type and activates the order.
Domain registration orders need no provisioning here; the registration
workflow registers the name itself.
"""

from __future__ import annotations

import logging

from ispflow.events import OrderActivated, OrderSuspended, new_correlation_id
from ispflow.exceptions import AggregateNotFoundError
from ispflow.locks import aggregate_lock_key
from ispflow.persistence.models import Order, Service, ServiceType
from ispflow.providers import call_with_timeout
from ispflow.statemachine import ORDER_STATE_MACHINE, OrderTransition
from ispflow.workflows.base import Workflow
from ispflow.workflows.result import ErrorKind, WorkflowResult

logger = logging.getLogger(__name__)


class OrderProvisioningWorkflow(Workflow):
    name = "OrderProvisioning"

    async def provision(self, order_id: int, *, correlation_id: str | None = None) -> WorkflowResult:
        """
        Provision and activate an order.

        The order must be able to take the Activate transition. Provisioner
        failures suspend the order and append ``OrderSuspended``. Unknown
        service types only log a warning, unless
        ``WorkflowConfig.strict_service_types`` is set.
        """
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            async with self._db.unit_of_work() as uow:
                order = await uow.orders.get(order_id)
                if order is None:
                    raise AggregateNotFoundError("Order", order_id)
                service = await uow.services.get(order.service_id)
                if service is None:
                    raise AggregateNotFoundError("Service", order.service_id)

            if not ORDER_STATE_MACHINE.can_transition(order.status, OrderTransition.ACTIVATE):
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"Order {order.order_number} is {order.status.value} and cannot be activated",
                    order_id,
                )

            known = (
                service.service_type == ServiceType.DOMAIN_REGISTRATION
                or service.service_type in self._providers.provisioners
            )
            if not known and self._config.strict_service_types:
                return WorkflowResult.failed(
                    correlation_id,
                    ErrorKind.VALIDATION,
                    f"No provisioner for service type '{service.service_type}'",
                    order_id,
                )

            failure = await self._run_provisioner(order, service)
            if failure is not None:
                return await self._suspend(order_id, failure, correlation_id)
            return await self._activate(order_id, correlation_id)

        return await self._run(
            "provision", aggregate_lock_key("Order", order_id), correlation_id, order_id, body
        )

    async def _run_provisioner(self, order: Order, service: Service) -> str | None:
        """Return None on success, otherwise the failure reason."""
        if service.service_type == ServiceType.DOMAIN_REGISTRATION:
            logger.debug(
                "Order %s is a domain registration; nothing to provision",
                order.order_number,
            )
            return None

        provisioner = self._providers.provisioners.get(service.service_type)
        if provisioner is None:
            logger.warning(
                "Unknown service type '%s' for order %s; activating without provisioning",
                service.service_type,
                order.order_number,
                extra={"order_id": order.id, "service_id": service.id},
            )
            return None

        try:
            result = await call_with_timeout(
                f"provisioner.{service.service_type}",
                provisioner.provision(order, service),
                self._config.external_call_timeout,
            )
        except Exception as e:
            logger.warning(
                "Provisioning %s for order %s raised: %s",
                service.service_type,
                order.order_number,
                e,
                exc_info=True,
                extra={"order_id": order.id},
            )
            return str(e) or type(e).__name__
        if not result.success:
            return result.message or "provisioning failed"
        return None

    async def _activate(self, order_id: int, correlation_id: str) -> WorkflowResult:
        now = self._clock()
        async with self._db.unit_of_work() as uow:
            order = await uow.orders.get(order_id, for_update=True)
            if order is None:
                raise AggregateNotFoundError("Order", order_id)
            order.status = ORDER_STATE_MACHINE.transition(order.status, OrderTransition.ACTIVATE)
            order.start_date = order.start_date or now
            await uow.orders.save(order)
            await uow.add_events(
                OrderActivated(
                    aggregate_id=order.id,
                    correlation_id=correlation_id,
                    occurred_at=now,
                    order_number=order.order_number,
                    customer_id=order.customer_id,
                )
            )
        return WorkflowResult.succeeded(
            correlation_id, f"Order {order.order_number} activated", order_id
        )

    async def _suspend(self, order_id: int, failure: str, correlation_id: str) -> WorkflowResult:
        now = self._clock()
        async with self._db.unit_of_work() as uow:
            order = await uow.orders.get(order_id, for_update=True)
            if order is None:
                raise AggregateNotFoundError("Order", order_id)
            reason = f"Provisioning failed: {failure}"
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
            correlation_id, ErrorKind.DEPENDENCY, reason, order_id, suspended=True
        )


__all__ = ["OrderProvisioningWorkflow"]
