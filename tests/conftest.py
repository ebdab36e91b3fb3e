"""
Shared pytest fixtures for the ispflow tests.

This module provides:
- Event fixtures (event_factory, sample_event, test_registry)
- Outbox fixtures (in_memory_store)
- SQLite fixtures (database) backed by a file under tmp_path
- Collaborator and workflow fixtures wired to the sandbox providers
- A controllable clock
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio

from ispflow.config import RenewalPolicy, WorkflowConfig
from ispflow.events import EventRegistry, default_registry
from ispflow.events.base import DomainEvent
from ispflow.locks import KeyedLockManager
from ispflow.outbox import InMemoryOutboxStore
from ispflow.persistence.database import Database
from ispflow.persistence.models import Customer, Registrar
from ispflow.providers import (
    LedgerInvoiceService,
    Providers,
    SandboxNotifier,
    SandboxPaymentProcessor,
    SandboxProvisioner,
    SandboxRegistrar,
)
from ispflow.workflows import (
    DomainRegistrationWorkflow,
    DomainRenewalWorkflow,
    InvoicePaymentWorkflow,
    OrderProvisioningWorkflow,
)
from tests.fixtures import (
    FixedClock,
    SampleEvent,
    SampleUpdated,
    create_event,
    seed_customer,
    seed_registrar,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# =============================================================================
# Event Fixtures
# =============================================================================


@pytest.fixture
def event_factory() -> Callable[..., DomainEvent]:
    """Factory for test events with sensible defaults."""
    return create_event


@pytest.fixture
def sample_event() -> SampleEvent:
    return SampleEvent(aggregate_id=1, note="hello")


@pytest.fixture
def test_registry() -> EventRegistry:
    """
    Registry holding the test events plus the lifecycle catalog.

    Kept separate from the default registry so test event types never leak
    into other tests.
    """
    registry = EventRegistry()
    for event_type in default_registry.list_types():
        registry.register(default_registry.get(event_type), event_type)
    registry.register(SampleEvent)
    registry.register(SampleUpdated)
    return registry


# =============================================================================
# Outbox Fixtures
# =============================================================================


@pytest.fixture
def in_memory_store() -> InMemoryOutboxStore:
    return InMemoryOutboxStore(enable_tracing=False)


# =============================================================================
# SQLite Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """
    Database with the full schema on a fresh SQLite file.

    A file rather than ``:memory:`` so every pooled connection sees the
    same data.
    """
    db = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'ispflow.db'}", enable_tracing=False)
    await db.create_schema()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def customer(database: Database) -> Customer:
    return await seed_customer(database)


@pytest_asyncio.fixture
async def registrar(database: Database) -> Registrar:
    return await seed_registrar(database)


# =============================================================================
# Collaborators and Workflows
# =============================================================================


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def registrar_api() -> SandboxRegistrar:
    return SandboxRegistrar()


@pytest.fixture
def payments() -> SandboxPaymentProcessor:
    return SandboxPaymentProcessor()


@pytest.fixture
def notifier() -> SandboxNotifier:
    return SandboxNotifier()


@pytest.fixture
def hosting() -> SandboxProvisioner:
    return SandboxProvisioner("Hosting")


@pytest.fixture
def providers(
    registrar_api: SandboxRegistrar,
    payments: SandboxPaymentProcessor,
    notifier: SandboxNotifier,
    hosting: SandboxProvisioner,
) -> Providers:
    return Providers(
        registrar=registrar_api,
        payments=payments,
        notifier=notifier,
        invoices=LedgerInvoiceService(),
        provisioners={"Hosting": hosting, "Email": SandboxProvisioner("Email")},
    )


@pytest.fixture
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig(external_call_timeout=1.0, lock_timeout=5.0)


@pytest.fixture
def locks() -> KeyedLockManager:
    return KeyedLockManager(enable_tracing=False)


@pytest.fixture
def workflow_kwargs(
    workflow_config: WorkflowConfig,
    locks: KeyedLockManager,
    clock: FixedClock,
) -> dict:
    return {
        "config": workflow_config,
        "locks": locks,
        "clock": clock,
        "enable_tracing": False,
    }


@pytest.fixture
def registration(
    database: Database, providers: Providers, workflow_kwargs: dict
) -> DomainRegistrationWorkflow:
    return DomainRegistrationWorkflow(database, providers, **workflow_kwargs)


@pytest.fixture
def renewal(
    database: Database, providers: Providers, workflow_kwargs: dict
) -> DomainRenewalWorkflow:
    return DomainRenewalWorkflow(database, providers, policy=RenewalPolicy(), **workflow_kwargs)


@pytest.fixture
def provisioning(
    database: Database, providers: Providers, workflow_kwargs: dict
) -> OrderProvisioningWorkflow:
    return OrderProvisioningWorkflow(database, providers, **workflow_kwargs)


@pytest.fixture
def invoice_payments(
    database: Database, providers: Providers, workflow_kwargs: dict
) -> InvoicePaymentWorkflow:
    return InvoicePaymentWorkflow(database, providers, **workflow_kwargs)
