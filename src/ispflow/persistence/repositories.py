"""
Repositories for the lifecycle aggregates and their reference data.

Every repository takes ``AsyncConnection | AsyncEngine``. Inside a unit of
work they are bound to the unit's connection so all writes share one
transaction; ``get(..., for_update=True)`` takes a row lock on databases that
support it (PostgreSQL) to serialize concurrent workflows on one aggregate.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ispflow.persistence._connection import execute_with_connection
from ispflow.persistence.models import (
    Customer,
    Domain,
    Invoice,
    InvoiceStatus,
    Order,
    Registrar,
    Service,
)
from ispflow.persistence.schema import (
    customers,
    domains,
    invoices,
    orders,
    processed_events,
    registrars,
    services,
)
from ispflow.statemachine import DomainStatus, OrderStatus


def _now() -> datetime:
    return datetime.now(UTC)


class _Repository:
    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self.conn = conn

    async def _insert(self, table: Any, values: dict[str, Any]) -> int:
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(insert(table).values(**values))
            return int(result.inserted_primary_key[0])

    async def _fetch_one(self, query: Any) -> dict[str, Any] | None:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(query)
            row = result.mappings().first()
        return dict(row) if row is not None else None

    async def _fetch_all(self, query: Any) -> list[dict[str, Any]]:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(query)
            return [dict(row) for row in result.mappings().all()]

    async def _update(self, table: Any, row_id: int, values: dict[str, Any]) -> int:
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(update(table).where(table.c.id == row_id).values(**values))
            return result.rowcount


class CustomerRepository(_Repository):
    async def add(self, name: str, email: str, phone: str | None = None) -> Customer:
        created_at = _now()
        customer_id = await self._insert(
            customers,
            {"name": name, "email": email, "phone": phone, "created_at": created_at},
        )
        return Customer(
            id=customer_id, name=name, email=email, phone=phone, created_at=created_at
        )

    async def get(self, customer_id: int) -> Customer | None:
        row = await self._fetch_one(select(customers).where(customers.c.id == customer_id))
        return Customer(**row) if row else None


class RegistrarRepository(_Repository):
    async def add(self, name: str, code: str, is_active: bool = True) -> Registrar:
        created_at = _now()
        registrar_id = await self._insert(
            registrars,
            {"name": name, "code": code, "is_active": is_active, "created_at": created_at},
        )
        return Registrar(
            id=registrar_id, name=name, code=code, is_active=is_active, created_at=created_at
        )

    async def get(self, registrar_id: int) -> Registrar | None:
        row = await self._fetch_one(select(registrars).where(registrars.c.id == registrar_id))
        return Registrar(**row) if row else None


class ServiceRepository(_Repository):
    async def add(
        self,
        name: str,
        service_type: str,
        price: Decimal,
        description: str | None = None,
    ) -> Service:
        now = _now()
        service_id = await self._insert(
            services,
            {
                "name": name,
                "service_type": service_type,
                "description": description,
                "price": price,
                "is_active": True,
                "created_at": now,
                "updated_at": now,
            },
        )
        return Service(
            id=service_id,
            name=name,
            service_type=service_type,
            description=description,
            price=price,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    async def get(self, service_id: int) -> Service | None:
        row = await self._fetch_one(select(services).where(services.c.id == service_id))
        return Service(**row) if row else None

    async def find(self, name: str, service_type: str) -> Service | None:
        """Find an active service by name and type."""
        row = await self._fetch_one(
            select(services)
            .where(
                services.c.name == name,
                services.c.service_type == service_type,
                services.c.is_active.is_(True),
            )
            .order_by(services.c.id)
            .limit(1)
        )
        return Service(**row) if row else None


def _order_from_row(row: dict[str, Any]) -> Order:
    row["status"] = OrderStatus(row["status"])
    return Order(**row)


class OrderRepository(_Repository):
    async def add(
        self,
        customer_id: int,
        service_id: int,
        total_amount: Decimal,
        recurring_amount: Decimal,
        *,
        status: OrderStatus = OrderStatus.PENDING,
        registrar_id: int | None = None,
        term_years: int = 1,
        auto_renew: bool = False,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        next_billing_date: datetime | None = None,
        now: datetime | None = None,
    ) -> Order:
        now = now or _now()
        order_number = await self._next_number(now.year)
        values = {
            "order_number": order_number,
            "customer_id": customer_id,
            "service_id": service_id,
            "registrar_id": registrar_id,
            "status": status.value,
            "total_amount": total_amount,
            "recurring_amount": recurring_amount,
            "term_years": term_years,
            "auto_renew": auto_renew,
            "start_date": start_date,
            "end_date": end_date,
            "next_billing_date": next_billing_date,
            "notes": None,
            "registration_submitted_at": None,
            "created_at": now,
            "updated_at": now,
        }
        order_id = await self._insert(orders, values)
        values["status"] = status
        return Order(id=order_id, **values)

    async def _next_number(self, year: int) -> str:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(select(func.max(orders.c.id)))
            last_id = result.scalar() or 0
        return f"ORD-{year}-{last_id + 1:05d}"

    async def get(self, order_id: int, *, for_update: bool = False) -> Order | None:
        query = select(orders).where(orders.c.id == order_id)
        if for_update:
            query = query.with_for_update()
        row = await self._fetch_one(query)
        return _order_from_row(row) if row else None

    async def save(self, order: Order) -> None:
        """Persist the mutable fields of an order."""
        order.updated_at = _now()
        await self._update(
            orders,
            order.id,
            {
                "status": order.status.value,
                "notes": order.notes,
                "registration_submitted_at": order.registration_submitted_at,
                "start_date": order.start_date,
                "end_date": order.end_date,
                "next_billing_date": order.next_billing_date,
                "auto_renew": order.auto_renew,
                "updated_at": order.updated_at,
            },
        )


def _domain_from_row(row: dict[str, Any]) -> Domain:
    row["status"] = DomainStatus(row["status"])
    return Domain(**row)


class DomainRepository(_Repository):
    async def add(
        self,
        name: str,
        customer_id: int,
        registrar_id: int,
        status: DomainStatus,
        registration_date: datetime,
        expiration_date: datetime,
        *,
        auto_renew: bool = False,
        service_id: int | None = None,
        order_id: int | None = None,
        registration_price: Decimal | None = None,
        renewal_price: Decimal | None = None,
    ) -> Domain:
        now = _now()
        values = {
            "name": name,
            "customer_id": customer_id,
            "registrar_id": registrar_id,
            "service_id": service_id,
            "order_id": order_id,
            "status": status.value,
            "registration_date": registration_date,
            "expiration_date": expiration_date,
            "auto_renew": auto_renew,
            "registration_price": registration_price,
            "renewal_price": renewal_price,
            "created_at": now,
            "updated_at": now,
        }
        domain_id = await self._insert(domains, values)
        values["status"] = status
        return Domain(id=domain_id, **values)

    async def get(self, domain_id: int, *, for_update: bool = False) -> Domain | None:
        query = select(domains).where(domains.c.id == domain_id)
        if for_update:
            query = query.with_for_update()
        row = await self._fetch_one(query)
        return _domain_from_row(row) if row else None

    async def get_by_name(self, name: str) -> Domain | None:
        row = await self._fetch_one(select(domains).where(domains.c.name == name))
        return _domain_from_row(row) if row else None

    async def get_by_order(self, order_id: int) -> Domain | None:
        row = await self._fetch_one(select(domains).where(domains.c.order_id == order_id))
        return _domain_from_row(row) if row else None

    async def list_expiring(self, before: datetime, after: datetime) -> list[Domain]:
        """Active domains expiring in the half-open range (after, before]."""
        rows = await self._fetch_all(
            select(domains)
            .where(
                domains.c.status == DomainStatus.ACTIVE.value,
                domains.c.expiration_date > after,
                domains.c.expiration_date <= before,
            )
            .order_by(domains.c.expiration_date, domains.c.id)
        )
        return [_domain_from_row(row) for row in rows]

    async def list_expired(self, now: datetime) -> list[Domain]:
        """Active domains whose expiration date has passed."""
        rows = await self._fetch_all(
            select(domains)
            .where(
                domains.c.status == DomainStatus.ACTIVE.value,
                domains.c.expiration_date <= now,
            )
            .order_by(domains.c.expiration_date, domains.c.id)
        )
        return [_domain_from_row(row) for row in rows]

    async def save(self, domain: Domain) -> None:
        domain.updated_at = _now()
        await self._update(
            domains,
            domain.id,
            {
                "status": domain.status.value,
                "expiration_date": domain.expiration_date,
                "auto_renew": domain.auto_renew,
                "renewal_price": domain.renewal_price,
                "updated_at": domain.updated_at,
            },
        )


def _invoice_from_row(row: dict[str, Any]) -> Invoice:
    row["status"] = InvoiceStatus(row["status"])
    return Invoice(**row)


class InvoiceRepository(_Repository):
    async def add(
        self,
        customer_id: int,
        description: str,
        total_amount: Decimal,
        due_date: date,
        *,
        currency_code: str = "EUR",
        status: InvoiceStatus = InvoiceStatus.DRAFT,
        order_id: int | None = None,
        domain_id: int | None = None,
        now: datetime | None = None,
    ) -> Invoice:
        now = now or _now()
        values = {
            "invoice_number": await self._next_number(now.year),
            "customer_id": customer_id,
            "order_id": order_id,
            "domain_id": domain_id,
            "status": status.value,
            "description": description,
            "currency_code": currency_code,
            "total_amount": total_amount,
            "amount_paid": Decimal("0"),
            "amount_due": total_amount,
            "issue_date": now,
            "due_date": due_date,
            "paid_at": None,
            "transaction_id": None,
            "created_at": now,
            "updated_at": now,
        }
        invoice_id = await self._insert(invoices, values)
        values["status"] = status
        return Invoice(id=invoice_id, **values)

    async def _next_number(self, year: int) -> str:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(select(func.max(invoices.c.id)))
            last_id = result.scalar() or 0
        return f"INV-{year}-{last_id + 1:05d}"

    async def get(self, invoice_id: int, *, for_update: bool = False) -> Invoice | None:
        query = select(invoices).where(invoices.c.id == invoice_id)
        if for_update:
            query = query.with_for_update()
        row = await self._fetch_one(query)
        return _invoice_from_row(row) if row else None

    async def list_for_order(self, order_id: int) -> list[Invoice]:
        rows = await self._fetch_all(
            select(invoices).where(invoices.c.order_id == order_id).order_by(invoices.c.id)
        )
        return [_invoice_from_row(row) for row in rows]

    async def list_for_domain(self, domain_id: int) -> list[Invoice]:
        rows = await self._fetch_all(
            select(invoices).where(invoices.c.domain_id == domain_id).order_by(invoices.c.id)
        )
        return [_invoice_from_row(row) for row in rows]

    async def save(self, invoice: Invoice) -> None:
        invoice.updated_at = _now()
        await self._update(
            invoices,
            invoice.id,
            {
                "status": invoice.status.value,
                "amount_paid": invoice.amount_paid,
                "amount_due": invoice.amount_due,
                "paid_at": invoice.paid_at,
                "transaction_id": invoice.transaction_id,
                "updated_at": invoice.updated_at,
            },
        )


class ProcessedEventRepository(_Repository):
    """
    Ledger of (handler, event) pairs that have already produced their effect.

    Lets handlers with external side effects skip redelivered events.
    """

    async def is_processed(self, handler_name: str, event_id: str) -> bool:
        row = await self._fetch_one(
            select(processed_events.c.event_id).where(
                processed_events.c.handler_name == handler_name,
                processed_events.c.event_id == event_id,
            )
        )
        return row is not None

    async def mark_processed(self, handler_name: str, event_id: str) -> bool:
        """
        Record that a handler processed an event.

        Returns:
            True if newly recorded, False if the pair was already present
        """
        try:
            async with execute_with_connection(self.conn, transactional=True) as conn:
                await conn.execute(
                    insert(processed_events).values(
                        handler_name=handler_name,
                        event_id=event_id,
                        processed_at=_now(),
                    )
                )
        except IntegrityError:
            return False
        return True


__all__ = [
    "CustomerRepository",
    "RegistrarRepository",
    "ServiceRepository",
    "OrderRepository",
    "DomainRepository",
    "InvoiceRepository",
    "ProcessedEventRepository",
]
