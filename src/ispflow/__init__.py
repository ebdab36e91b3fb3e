"""
ispflow - Lifecycle core for domain names and service orders.

This library provides:
- Domain events with Pydantic models and a type registry
- Table-driven state machines for domains and orders
- Transactional outbox with a concurrent, per-aggregate ordered dispatcher
- Workflow orchestrators for registration, renewal, provisioning and payment
- Exchange rate resolution with markup and conversion
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ispflow")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from ispflow.config import (
    DispatcherConfig,
    ExpirationMonitorConfig,
    RateSweepConfig,
    RenewalPolicy,
    Settings,
    WorkflowConfig,
)
from ispflow.currency import ConversionResult, CurrencyService, ExchangeRate, ResolvedRate
from ispflow.events import (
    DomainEvent,
    EventRegistry,
    default_registry,
    register_event,
)
from ispflow.exceptions import (
    AggregateNotFoundError,
    ConfigurationError,
    DependencyError,
    DependencyTimeoutError,
    ExchangeRateNotFoundError,
    InvalidTransitionError,
    IspFlowError,
    LockAcquisitionError,
    OutboxAppendError,
    OutboxError,
    TransitionTableError,
    WorkflowError,
)
from ispflow.handlers import EventHandlerRegistry, handles
from ispflow.outbox import (
    InMemoryOutboxStore,
    OutboxDispatcher,
    OutboxRecord,
    OutboxStore,
    SQLAlchemyOutboxStore,
)
from ispflow.persistence.database import Database, UnitOfWork
from ispflow.runtime import LifecycleRuntime
from ispflow.statemachine import (
    DOMAIN_STATE_MACHINE,
    ORDER_STATE_MACHINE,
    DomainStatus,
    DomainTransition,
    OrderStatus,
    OrderTransition,
    StateMachine,
)
from ispflow.workflows import (
    DomainExpirationMonitor,
    DomainRegistrationInput,
    DomainRegistrationWorkflow,
    DomainRenewalWorkflow,
    ErrorKind,
    InvoicePaymentWorkflow,
    OrderProvisioningWorkflow,
    WorkflowResult,
)

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "DispatcherConfig",
    "RenewalPolicy",
    "WorkflowConfig",
    "ExpirationMonitorConfig",
    "RateSweepConfig",
    # Events
    "DomainEvent",
    "EventRegistry",
    "default_registry",
    "register_event",
    # Exceptions
    "IspFlowError",
    "InvalidTransitionError",
    "TransitionTableError",
    "AggregateNotFoundError",
    "ExchangeRateNotFoundError",
    "OutboxError",
    "OutboxAppendError",
    "DependencyError",
    "DependencyTimeoutError",
    "LockAcquisitionError",
    "ConfigurationError",
    "WorkflowError",
    # State machines
    "StateMachine",
    "DomainStatus",
    "DomainTransition",
    "DOMAIN_STATE_MACHINE",
    "OrderStatus",
    "OrderTransition",
    "ORDER_STATE_MACHINE",
    # Outbox
    "OutboxRecord",
    "OutboxStore",
    "SQLAlchemyOutboxStore",
    "InMemoryOutboxStore",
    "OutboxDispatcher",
    # Handlers
    "EventHandlerRegistry",
    "handles",
    # Persistence
    "Database",
    "UnitOfWork",
    # Workflows
    "WorkflowResult",
    "ErrorKind",
    "DomainRegistrationInput",
    "DomainRegistrationWorkflow",
    "DomainRenewalWorkflow",
    "OrderProvisioningWorkflow",
    "InvoicePaymentWorkflow",
    "DomainExpirationMonitor",
    # Currency
    "CurrencyService",
    "ExchangeRate",
    "ResolvedRate",
    "ConversionResult",
    # Runtime
    "LifecycleRuntime",
]
