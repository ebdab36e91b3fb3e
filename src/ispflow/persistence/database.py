"""
Database handle and unit of work.

A unit of work is one transaction on one connection. Every repository and
the outbox store it exposes are bound to that connection, so an aggregate
change and the events it raises commit or roll back together.

Example:
    >>> db = Database.from_url("sqlite+aiosqlite:///ispflow.db")
    >>> async with db.unit_of_work() as uow:
    ...     order = await uow.orders.get(order_id, for_update=True)
    ...     ...
    ...     await uow.orders.save(order)
    ...     await uow.add_events(OrderActivated(...))
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ispflow.events.base import DomainEvent
from ispflow.observability import Tracer, create_tracer
from ispflow.outbox.store import SQLAlchemyOutboxStore
from ispflow.persistence.repositories import (
    CustomerRepository,
    DomainRepository,
    InvoiceRepository,
    OrderRepository,
    ProcessedEventRepository,
    RegistrarRepository,
    ServiceRepository,
)
from ispflow.persistence.schema import create_schema

logger = logging.getLogger(__name__)


class UnitOfWork:
    """Repositories and outbox bound to one open transaction."""

    def __init__(self, connection: AsyncConnection, tracer: Tracer | None = None) -> None:
        self.connection = connection
        self.customers = CustomerRepository(connection)
        self.registrars = RegistrarRepository(connection)
        self.services = ServiceRepository(connection)
        self.orders = OrderRepository(connection)
        self.domains = DomainRepository(connection)
        self.invoices = InvoiceRepository(connection)
        self.outbox = SQLAlchemyOutboxStore(connection, tracer=tracer)
        self.appended: list[int] = []

    async def add_events(self, *events: DomainEvent) -> list[int]:
        """
        Append events to the outbox inside this transaction.

        Raises:
            OutboxAppendError: Propagates so the whole unit of work rolls back
        """
        ids = await self.outbox.append(list(events))
        self.appended.extend(ids)
        return ids


class Database:
    """Owns the async engine and hands out units of work."""

    def __init__(
        self,
        engine: AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._engine = engine
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        enable_tracing: bool = True,
        **engine_kwargs: Any,
    ) -> Database:
        return cls(create_async_engine(url, **engine_kwargs), enable_tracing=enable_tracing)

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        """
        Open a transaction; commit on normal exit, roll back on exception.
        """
        async with self._engine.begin() as conn:
            uow = UnitOfWork(conn, tracer=self._tracer)
            yield uow
        if uow.appended:
            logger.debug(
                "Committed unit of work with %d outbox record(s)",
                len(uow.appended),
                extra={"outbox_ids": uow.appended},
            )

    def outbox_store(self) -> SQLAlchemyOutboxStore:
        """Outbox store for the dispatcher side; each call commits on its own."""
        return SQLAlchemyOutboxStore(self._engine, tracer=self._tracer)

    def processed_events(self) -> ProcessedEventRepository:
        return ProcessedEventRepository(self._engine)

    async def create_schema(self) -> None:
        await create_schema(self._engine)

    async def dispose(self) -> None:
        await self._engine.dispose()


__all__ = ["Database", "UnitOfWork"]
