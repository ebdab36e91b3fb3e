"""
Workflow orchestrators.

Each entry point combines state machine checks, aggregate changes, invoice
generation and outbox events into one at-least-once-safe operation and
returns a ``WorkflowResult`` instead of raising.
"""

from ispflow.workflows.base import Workflow, add_years, utc_now
from ispflow.workflows.expiration import DomainExpirationMonitor, ExpirationReport
from ispflow.workflows.invoicing import InvoicePaymentWorkflow
from ispflow.workflows.provisioning import OrderProvisioningWorkflow
from ispflow.workflows.registration import DomainRegistrationInput, DomainRegistrationWorkflow
from ispflow.workflows.renewal import DomainRenewalWorkflow
from ispflow.workflows.result import ErrorKind, WorkflowResult

__all__ = [
    "Workflow",
    "WorkflowResult",
    "ErrorKind",
    "add_years",
    "utc_now",
    "DomainRegistrationInput",
    "DomainRegistrationWorkflow",
    "DomainRenewalWorkflow",
    "OrderProvisioningWorkflow",
    "InvoicePaymentWorkflow",
    "DomainExpirationMonitor",
    "ExpirationReport",
]
