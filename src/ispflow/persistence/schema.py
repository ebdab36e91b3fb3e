"""
Table definitions for the lifecycle core.

PostgreSQL is the production target; SQLite (via aiosqlite) is used in tests
and for local development. Column types that differ between the two are
wrapped in ``TypeDecorator`` subclasses so repositories never branch on the
dialect.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.types import TypeDecorator, TypeEngine


class UTCDateTime(TypeDecorator[datetime]):
    """Stores naive UTC timestamps and returns timezone-aware ones."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime {value!r} cannot be stored; use UTC-aware values")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return value.replace(tzinfo=UTC)


class Money(TypeDecorator[Decimal]):
    """
    Exact decimal column.

    NUMERIC on PostgreSQL. SQLite has no exact decimal storage, so the value
    is kept as its string form there.
    """

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(18, 6, asdecimal=True))

    def process_bind_param(self, value: Decimal | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> Decimal | None:
        if value is None:
            return None
        return Decimal(str(value))


metadata = MetaData()


customers = Table(
    "customers",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False),
    Column("email", String(320), nullable=False),
    Column("phone", String(50)),
    Column("created_at", UTCDateTime, nullable=False),
)

registrars = Table(
    "registrars",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False),
    Column("code", String(50), nullable=False, unique=True),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False),
)

services = Table(
    "services",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("service_type", String(100), nullable=False),
    Column("description", Text),
    Column("price", Money, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("order_number", String(50), nullable=False, unique=True),
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=False),
    Column("service_id", Integer, ForeignKey("services.id"), nullable=False),
    Column("registrar_id", Integer, ForeignKey("registrars.id")),
    Column("status", String(30), nullable=False),
    Column("total_amount", Money, nullable=False),
    Column("recurring_amount", Money, nullable=False),
    Column("term_years", Integer, nullable=False, default=1),
    Column("auto_renew", Boolean, nullable=False, default=False),
    Column("start_date", UTCDateTime),
    Column("end_date", UTCDateTime),
    Column("next_billing_date", UTCDateTime),
    Column("notes", Text),
    Column("registration_submitted_at", UTCDateTime),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

domains = Table(
    "domains",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=False),
    Column("registrar_id", Integer, ForeignKey("registrars.id"), nullable=False),
    Column("service_id", Integer, ForeignKey("services.id")),
    Column("order_id", Integer, ForeignKey("orders.id")),
    Column("status", String(30), nullable=False),
    Column("registration_date", UTCDateTime, nullable=False),
    Column("expiration_date", UTCDateTime, nullable=False),
    Column("auto_renew", Boolean, nullable=False, default=False),
    Column("registration_price", Money),
    Column("renewal_price", Money),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

invoices = Table(
    "invoices",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("invoice_number", String(50), nullable=False, unique=True),
    Column("customer_id", Integer, ForeignKey("customers.id"), nullable=False),
    Column("order_id", Integer, ForeignKey("orders.id")),
    Column("domain_id", Integer, ForeignKey("domains.id")),
    Column("status", String(30), nullable=False),
    Column("description", String(500), nullable=False),
    Column("currency_code", String(3), nullable=False),
    Column("total_amount", Money, nullable=False),
    Column("amount_paid", Money, nullable=False),
    Column("amount_due", Money, nullable=False),
    Column("issue_date", UTCDateTime, nullable=False),
    Column("due_date", Date, nullable=False),
    Column("paid_at", UTCDateTime),
    Column("transaction_id", String(100)),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
)

# Integer id is the insertion sequence used for oldest-first dispatch.
outbox_events = Table(
    "outbox_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_id", String(36), nullable=False, unique=True),
    Column("event_type", String(255), nullable=False),
    Column("aggregate_type", String(100), nullable=False),
    Column("aggregate_id", Integer, nullable=False),
    Column("correlation_id", String(100), nullable=False),
    Column("event_data", Text, nullable=False),
    Column("occurred_at", UTCDateTime, nullable=False),
    Column("created_at", UTCDateTime, nullable=False),
    Column("processed_at", UTCDateTime),
    Column("retry_count", Integer, nullable=False, default=0),
    Column("last_error", Text),
    Index("ix_outbox_events_pending", "processed_at", "id"),
    Index("ix_outbox_events_aggregate", "aggregate_type", "aggregate_id"),
)

exchange_rates = Table(
    "exchange_rates",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("base_currency", String(3), nullable=False),
    Column("target_currency", String(3), nullable=False),
    Column("rate", Money, nullable=False),
    Column("markup", Money, nullable=False),
    Column("effective_date", UTCDateTime, nullable=False),
    Column("expiry_date", UTCDateTime),
    Column("source", String(50), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
    Index("ix_exchange_rates_pair", "base_currency", "target_currency", "is_active"),
)

# Ledger used by notification handlers to de-duplicate redelivered events.
processed_events = Table(
    "processed_events",
    metadata,
    Column("handler_name", String(255), primary_key=True),
    Column("event_id", String(36), primary_key=True),
    Column("processed_at", UTCDateTime, nullable=False),
)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that don't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


__all__ = [
    "UTCDateTime",
    "Money",
    "metadata",
    "customers",
    "registrars",
    "services",
    "orders",
    "domains",
    "invoices",
    "outbox_events",
    "exchange_rates",
    "processed_events",
    "create_schema",
    "drop_schema",
]
