"""
External collaborators: interfaces, sandbox implementations and the factory
that selects them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ispflow.config import Settings
from ispflow.exceptions import ConfigurationError
from ispflow.persistence.models import ServiceType
from ispflow.providers.interfaces import (
    AvailabilityResult,
    ChargeResult,
    EmailMessage,
    InvoiceRequest,
    InvoiceService,
    Notifier,
    PaymentProcessor,
    Provisioner,
    ProvisioningResult,
    Registrar,
    RegistrationRequest,
    RegistrationResult,
    RenewalRequest,
    RenewalResult,
)
from ispflow.providers.invoicing import LedgerInvoiceService
from ispflow.providers.sandbox import (
    SandboxNotifier,
    SandboxPaymentProcessor,
    SandboxProvisioner,
    SandboxRegistrar,
)
from ispflow.providers.timeouts import call_with_timeout


@dataclass
class Providers:
    """The collaborator set handed to the workflows."""

    registrar: Registrar
    payments: PaymentProcessor
    notifier: Notifier
    invoices: InvoiceService
    provisioners: dict[str, Provisioner] = field(default_factory=dict)


def create_providers(settings: Settings | None = None) -> Providers:
    """
    Build the collaborators named by ``settings.provider_mode``.

    Only the "sandbox" mode ships with this package; deployments with real
    integrations construct ``Providers`` themselves.

    Raises:
        ConfigurationError: For an unknown provider mode
    """
    mode = (settings or Settings()).provider_mode.lower()
    if mode != "sandbox":
        raise ConfigurationError(
            f"Unknown provider mode {mode!r}; build Providers explicitly for real integrations"
        )
    return Providers(
        registrar=SandboxRegistrar(),
        payments=SandboxPaymentProcessor(),
        notifier=SandboxNotifier(),
        invoices=LedgerInvoiceService(),
        provisioners={
            ServiceType.HOSTING: SandboxProvisioner(ServiceType.HOSTING),
            ServiceType.EMAIL: SandboxProvisioner(ServiceType.EMAIL),
        },
    )


__all__ = [
    "AvailabilityResult",
    "ChargeResult",
    "EmailMessage",
    "InvoiceRequest",
    "InvoiceService",
    "Notifier",
    "PaymentProcessor",
    "Provisioner",
    "ProvisioningResult",
    "Registrar",
    "RegistrationRequest",
    "RegistrationResult",
    "RenewalRequest",
    "RenewalResult",
    "LedgerInvoiceService",
    "SandboxNotifier",
    "SandboxPaymentProcessor",
    "SandboxProvisioner",
    "SandboxRegistrar",
    "Providers",
    "create_providers",
    "call_with_timeout",
]
