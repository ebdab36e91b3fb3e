"""Invoice service backed by the ``invoices`` table."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from ispflow.persistence.database import UnitOfWork
from ispflow.persistence.models import Invoice, InvoiceStatus
from ispflow.providers.interfaces import InvoiceRequest

logger = logging.getLogger(__name__)


class LedgerInvoiceService:
    """
    Writes invoices through the unit of work's invoice repository.

    New invoices start as drafts with the full amount due.
    """

    async def generate_invoice(self, uow: UnitOfWork, request: InvoiceRequest) -> Invoice:
        if request.amount < 0:
            raise ValueError(f"Invoice amount must not be negative, got {request.amount}")

        invoice = await uow.invoices.add(
            customer_id=request.customer_id,
            description=request.description,
            total_amount=request.amount,
            due_date=request.due_date,
            currency_code=request.currency_code,
            order_id=request.order_id,
            domain_id=request.domain_id,
        )
        logger.info(
            "Generated invoice %s for customer %d: %s %s",
            invoice.invoice_number,
            invoice.customer_id,
            invoice.total_amount,
            invoice.currency_code,
            extra={
                "invoice_id": invoice.id,
                "order_id": invoice.order_id,
                "domain_id": invoice.domain_id,
            },
        )
        return invoice

    async def mark_paid(
        self,
        uow: UnitOfWork,
        invoice: Invoice,
        transaction_id: str | None,
        paid_at: datetime,
    ) -> bool:
        if invoice.status == InvoiceStatus.PAID:
            return False
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValueError(f"Invoice {invoice.invoice_number} is cancelled and cannot be paid")

        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = paid_at
        invoice.transaction_id = transaction_id or invoice.transaction_id
        invoice.amount_paid = invoice.total_amount
        invoice.amount_due = Decimal("0")
        await uow.invoices.save(invoice)
        return True

    async def record_capture(
        self,
        uow: UnitOfWork,
        invoice: Invoice,
        transaction_id: str | None,
        amount: Decimal,
    ) -> bool:
        if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.PAYMENT_CAPTURED):
            return False
        if invoice.status == InvoiceStatus.CANCELLED:
            raise ValueError(f"Invoice {invoice.invoice_number} is cancelled")

        invoice.status = InvoiceStatus.PAYMENT_CAPTURED
        invoice.transaction_id = transaction_id
        invoice.amount_paid = amount
        invoice.amount_due = invoice.total_amount - amount
        await uow.invoices.save(invoice)
        logger.warning(
            "Invoice %s captured %s %s (transaction %s); delivery pending",
            invoice.invoice_number,
            amount,
            invoice.currency_code,
            transaction_id,
            extra={"invoice_id": invoice.id, "transaction_id": transaction_id},
        )
        return True


__all__ = ["LedgerInvoiceService"]
