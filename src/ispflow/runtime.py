"""
Wiring of the lifecycle core.

``LifecycleRuntime.build`` assembles the database, collaborators, workflows,
handler registry and background services from ``Settings``; ``start`` and
``stop`` manage the background loops.

Example:
    >>> runtime = LifecycleRuntime.build(Settings.from_env())
    >>> await runtime.start(create_schema=True)
    >>> result = await runtime.registration.execute(request)
    >>> await runtime.stop()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ispflow.background import BackgroundLoop
from ispflow.config import Settings
from ispflow.currency import CurrencyService, RateExpirySweeper
from ispflow.events import EventRegistry, default_registry
from ispflow.handlers import EventHandlerRegistry
from ispflow.handlers.lifecycle import LifecycleHandlers, NotificationHandlers
from ispflow.locks import KeyedLockManager
from ispflow.outbox import OutboxDispatcher, PoisonCallback
from ispflow.persistence.database import Database
from ispflow.providers import Providers, create_providers
from ispflow.workflows import (
    DomainExpirationMonitor,
    DomainRegistrationWorkflow,
    DomainRenewalWorkflow,
    InvoicePaymentWorkflow,
    OrderProvisioningWorkflow,
)

logger = logging.getLogger(__name__)


class LifecycleRuntime:
    """All components of one running instance, built once and shared."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        providers: Providers,
        *,
        clock: Callable[[], datetime] | None = None,
        event_registry: EventRegistry | None = None,
        on_poison: PoisonCallback | None = None,
    ) -> None:
        self.settings = settings
        self.database = database
        self.providers = providers
        self.locks = KeyedLockManager(enable_tracing=settings.enable_tracing)

        common = {
            "config": settings.workflow,
            "locks": self.locks,
            "clock": clock,
            "enable_tracing": settings.enable_tracing,
        }
        self.registration = DomainRegistrationWorkflow(database, providers, **common)
        self.renewal = DomainRenewalWorkflow(
            database, providers, policy=settings.renewal, **common
        )
        self.provisioning = OrderProvisioningWorkflow(database, providers, **common)
        self.payments = InvoicePaymentWorkflow(database, providers, **common)
        self.currency = CurrencyService(
            database.engine, clock=clock, enable_tracing=settings.enable_tracing
        )

        self.handlers = EventHandlerRegistry()
        self.handlers.register_object(
            LifecycleHandlers(database, self.registration, self.provisioning)
        )
        self.handlers.register_object(
            NotificationHandlers(
                database,
                providers.notifier,
                timeout=settings.workflow.external_call_timeout,
            )
        )

        self.dispatcher = OutboxDispatcher(
            database.outbox_store(),
            self.handlers,
            event_registry or default_registry,
            settings.dispatcher,
            on_poison=on_poison,
            enable_tracing=settings.enable_tracing,
        )
        self.expiration_monitor = DomainExpirationMonitor(
            database, self.renewal, settings.expiration, clock=clock
        )
        self.rate_sweeper = RateExpirySweeper(self.currency, settings.rate_sweep)

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        *,
        database: Database | None = None,
        providers: Providers | None = None,
        clock: Callable[[], datetime] | None = None,
        on_poison: PoisonCallback | None = None,
    ) -> LifecycleRuntime:
        """
        Build a runtime, creating the database handle and collaborators that
        were not passed in.

        Raises:
            ConfigurationError: For an unknown provider mode
        """
        settings = settings or Settings()
        database = database or Database.from_url(
            settings.database_url, enable_tracing=settings.enable_tracing
        )
        providers = providers or create_providers(settings)
        return cls(settings, database, providers, clock=clock, on_poison=on_poison)

    @property
    def services(self) -> list[BackgroundLoop]:
        loops: list[BackgroundLoop] = [self.dispatcher]
        if self.settings.expiration.enabled:
            loops.append(self.expiration_monitor)
        if self.settings.rate_sweep.enabled:
            loops.append(self.rate_sweeper)
        return loops

    async def start(self, *, create_schema: bool = False) -> None:
        """Start the background loops, optionally creating missing tables first."""
        if create_schema:
            await self.database.create_schema()
        for service in self.services:
            service.start()
        logger.info(
            "Lifecycle runtime started",
            extra={"services": [service.name for service in self.services]},
        )

    async def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the background loops, each draining its in-flight cycle for up to
        ``timeout`` seconds, then release the database engine.
        """
        for service in reversed(self.services):
            await service.stop(timeout=timeout)
        await self.database.dispose()
        logger.info("Lifecycle runtime stopped")

    def notify_dispatcher(self) -> None:
        """Wake the dispatcher so freshly committed events go out without waiting."""
        self.dispatcher.notify()


__all__ = ["LifecycleRuntime"]
