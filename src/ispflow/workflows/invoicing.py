"""Recording invoice payments, the start of the invoice-paid chain."""

from __future__ import annotations

from datetime import datetime

from ispflow.events import InvoicePaid, new_correlation_id
from ispflow.exceptions import AggregateNotFoundError
from ispflow.locks import aggregate_lock_key
from ispflow.workflows.base import Workflow
from ispflow.workflows.result import WorkflowResult


class InvoicePaymentWorkflow(Workflow):
    name = "InvoicePayment"

    async def record_payment(
        self,
        invoice_id: int,
        transaction_id: str | None = None,
        *,
        paid_at: datetime | None = None,
        correlation_id: str | None = None,
    ) -> WorkflowResult:
        """
        Mark an invoice paid and append ``InvoicePaid``.

        Paying an already paid invoice succeeds without appending anything.
        Cancelled invoices are rejected.
        """
        correlation_id = correlation_id or new_correlation_id()

        async def body() -> WorkflowResult:
            now = paid_at or self._clock()
            async with self._db.unit_of_work() as uow:
                invoice = await uow.invoices.get(invoice_id, for_update=True)
                if invoice is None:
                    raise AggregateNotFoundError("Invoice", invoice_id)
                if not await self._providers.invoices.mark_paid(uow, invoice, transaction_id, now):
                    return WorkflowResult.succeeded(
                        correlation_id,
                        f"Invoice {invoice.invoice_number} was already paid",
                        invoice_id,
                        already_paid=True,
                    )
                await uow.add_events(
                    InvoicePaid(
                        aggregate_id=invoice.id,
                        correlation_id=correlation_id,
                        occurred_at=now,
                        invoice_number=invoice.invoice_number,
                        customer_id=invoice.customer_id,
                        total_amount=invoice.total_amount,
                        paid_at=now,
                        transaction_id=transaction_id,
                        order_id=invoice.order_id,
                        domain_id=invoice.domain_id,
                    )
                )
            return WorkflowResult.succeeded(
                correlation_id,
                f"Invoice {invoice.invoice_number} paid",
                invoice_id,
                already_paid=False,
            )

        return await self._run(
            "record_payment",
            aggregate_lock_key("Invoice", invoice_id),
            correlation_id,
            invoice_id,
            body,
        )


__all__ = ["InvoicePaymentWorkflow"]
