"""
Sandbox collaborators.

In-process stand-ins for the registrar, payment gateway, mail queue and
provisioners. They succeed by default, can be told to fail or stall, and
record every call so tests and local runs can inspect what happened.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from itertools import count

from ispflow.persistence.models import Order, Service
from ispflow.providers.interfaces import (
    AvailabilityResult,
    ChargeResult,
    EmailMessage,
    ProvisioningResult,
    RegistrationRequest,
    RegistrationResult,
    RenewalRequest,
    RenewalResult,
)

logger = logging.getLogger(__name__)


class SandboxRegistrar:
    """
    Registrar that accepts every request unless told otherwise.

    Attributes:
        registration_error: When set, ``register`` fails with this message
        renewal_error: When set, ``renew`` fails with this message
        unavailable: Domain names reported as taken; successful registrations
            are added to it
        delay: Seconds every call sleeps first (to exercise timeouts)
    """

    def __init__(
        self,
        *,
        registration_error: str | None = None,
        renewal_error: str | None = None,
        unavailable: set[str] | None = None,
        price: Decimal | None = None,
        delay: float = 0.0,
    ) -> None:
        self.registration_error = registration_error
        self.renewal_error = renewal_error
        self.unavailable = set(unavailable or ())
        self.price = price
        self.delay = delay
        self.registrations: list[RegistrationRequest] = []
        self.renewals: list[RenewalRequest] = []

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    async def check_availability(self, domain_name: str) -> AvailabilityResult:
        await self._pause()
        available = domain_name.lower() not in self.unavailable
        return AvailabilityResult(
            domain_name=domain_name,
            available=available,
            price=self.price if available else None,
            message=None if available else "Domain is already registered",
        )

    async def register(self, request: RegistrationRequest) -> RegistrationResult:
        await self._pause()
        self.registrations.append(request)
        if self.registration_error is not None:
            logger.info("Sandbox registrar rejecting %s", request.domain_name)
            return RegistrationResult(success=False, error=self.registration_error)
        self.unavailable.add(request.domain_name.lower())
        expiration = datetime.now(UTC) + timedelta(days=365 * request.years)
        return RegistrationResult(success=True, expiration_date=expiration)

    async def renew(self, request: RenewalRequest) -> RenewalResult:
        await self._pause()
        self.renewals.append(request)
        if self.renewal_error is not None:
            return RenewalResult(success=False, error=self.renewal_error)
        return RenewalResult(success=True)


class SandboxPaymentProcessor:
    """
    Payment gateway that approves charges for customers with a payment method.

    Args:
        customers_with_payment_method: Customer ids that have a stored method;
            None means every customer has one
        decline_reason: When set, every charge is declined with this reason
    """

    def __init__(
        self,
        *,
        customers_with_payment_method: set[int] | None = None,
        decline_reason: str | None = None,
        delay: float = 0.0,
    ) -> None:
        self.customers_with_payment_method = customers_with_payment_method
        self.decline_reason = decline_reason
        self.delay = delay
        self.charges: list[tuple[int, Decimal, str]] = []
        self._sequence = count(1)

    async def has_active_payment_method(self, customer_id: int) -> bool:
        if self.customers_with_payment_method is None:
            return True
        return customer_id in self.customers_with_payment_method

    async def charge(
        self,
        customer_id: int,
        amount: Decimal,
        currency_code: str,
        description: str,
    ) -> ChargeResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.decline_reason is not None:
            return ChargeResult(success=False, error=self.decline_reason)
        self.charges.append((customer_id, amount, currency_code))
        return ChargeResult(success=True, transaction_id=f"sandbox-txn-{next(self._sequence):06d}")


class SandboxNotifier:
    """Collects queued e-mails in ``sent``."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def queue_email(self, message: EmailMessage) -> None:
        logger.debug("Queued e-mail to %s: %s", message.to, message.subject)
        self.sent.append(message)

    def subjects(self) -> list[str]:
        return [message.subject for message in self.sent]


class SandboxProvisioner:
    """Provisioner for one service type; fails when ``error`` is set."""

    def __init__(self, service_type: str, *, error: str | None = None) -> None:
        self.service_type = service_type
        self.error = error
        self.provisioned: list[int] = []

    async def provision(self, order: Order, service: Service) -> ProvisioningResult:
        if self.error is not None:
            return ProvisioningResult(success=False, message=self.error)
        self.provisioned.append(order.id)
        logger.info(
            "Sandbox provisioned %s for order %s",
            self.service_type,
            order.order_number,
        )
        return ProvisioningResult(success=True, message=f"{self.service_type} ready")


__all__ = [
    "SandboxRegistrar",
    "SandboxPaymentProcessor",
    "SandboxNotifier",
    "SandboxProvisioner",
]
