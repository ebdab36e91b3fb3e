"""
Persistence layer: table metadata, aggregate records, repositories and the
unit of work.

``Database`` and ``UnitOfWork`` live in ``ispflow.persistence.database``; they
depend on the outbox store, which itself builds on this package.
"""

from ispflow.persistence.models import (
    Customer,
    Domain,
    Invoice,
    InvoiceStatus,
    Order,
    Registrar,
    Service,
    ServiceType,
)
from ispflow.persistence.repositories import (
    CustomerRepository,
    DomainRepository,
    InvoiceRepository,
    OrderRepository,
    ProcessedEventRepository,
    RegistrarRepository,
    ServiceRepository,
)
from ispflow.persistence.schema import create_schema, drop_schema, metadata

__all__ = [
    "Customer",
    "Domain",
    "Invoice",
    "InvoiceStatus",
    "Order",
    "Registrar",
    "Service",
    "ServiceType",
    "CustomerRepository",
    "DomainRepository",
    "InvoiceRepository",
    "OrderRepository",
    "ProcessedEventRepository",
    "RegistrarRepository",
    "ServiceRepository",
    "create_schema",
    "drop_schema",
    "metadata",
]
