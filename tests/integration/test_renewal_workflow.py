"""
Integration tests for DomainRenewalWorkflow on SQLite.

Tests cover:
- The renewal window
- Auto-renewal (charge, registrar, expiration date, invoice)
- Reminders and invoice reuse for manual renewal
- Failure handling before and after the charge
- Expiry
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from ispflow.persistence.database import Database
from ispflow.persistence.models import Customer, InvoiceStatus, Registrar
from ispflow.providers import SandboxNotifier, SandboxPaymentProcessor, SandboxRegistrar
from ispflow.serialization import json_loads
from ispflow.statemachine import DomainStatus
from ispflow.workflows import DomainRenewalWorkflow, ErrorKind
from tests.fixtures import FixedClock, pending_event_types, seed_domain

pytestmark = [pytest.mark.sqlite]


class TestWindow:
    @pytest.mark.asyncio
    async def test_not_due_changes_nothing(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=45), auto_renew=True
        )

        result = await renewal.execute(domain.id)

        assert result.success
        assert result.details["due"] is False
        assert result.details["days_left"] == 45
        async with database.unit_of_work() as uow:
            assert await uow.invoices.list_for_domain(domain.id) == []
        assert await pending_event_types(database) == []

    @pytest.mark.asyncio
    async def test_unknown_domain(self, renewal: DomainRenewalWorkflow) -> None:
        result = await renewal.execute(404)

        assert result.error_kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_cancelled_domain_rejected(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database,
            customer,
            registrar,
            clock() + timedelta(days=10),
            status=DomainStatus.CANCELLED,
        )

        result = await renewal.execute(domain.id)

        assert result.error_kind is ErrorKind.VALIDATION
        assert "cannot be renewed" in result.message


class TestAutoRenewal:
    @pytest.mark.asyncio
    async def test_renews_for_one_year(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        registrar_api: SandboxRegistrar,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        expires = clock() + timedelta(days=10)
        domain = await seed_domain(database, customer, registrar, expires, auto_renew=True)

        result = await renewal.execute(domain.id, correlation_id="renew-1")

        assert result.success, result.message
        assert result.details["renewed"] is True
        assert result.details["transaction_id"] == "sandbox-txn-000001"
        assert payments.charges == [(customer.id, Decimal("12.99"), "EUR")]
        assert [r.domain_name for r in registrar_api.renewals] == ["example.com"]

        async with database.unit_of_work() as uow:
            renewed = await uow.domains.get(domain.id)
            invoice = await uow.invoices.get(result.details["invoice_id"])
        assert renewed is not None and invoice is not None
        assert renewed.status is DomainStatus.ACTIVE
        assert expires == datetime(2026, 3, 11, 12, 0, tzinfo=expires.tzinfo)
        assert renewed.expiration_date == datetime(2027, 3, 11, 12, 0, tzinfo=expires.tzinfo)
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.transaction_id == "sandbox-txn-000001"
        assert invoice.amount_due == Decimal("0")
        assert invoice.domain_id == domain.id

        records = await database.outbox_store().fetch_pending()
        assert [r.event_type for r in records] == ["InvoiceGenerated", "DomainRenewed", "InvoicePaid"]
        assert {r.correlation_id for r in records} == {"renew-1"}
        renewed_event = json_loads(records[1].event_data)
        assert renewed_event["transaction_id"] == "sandbox-txn-000001"

    @pytest.mark.asyncio
    async def test_falls_back_to_default_price(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database,
            customer,
            registrar,
            clock() + timedelta(days=5),
            auto_renew=True,
            renewal_price=None,
        )

        await renewal.execute(domain.id)

        assert payments.charges[0][1] == renewal.policy.default_renewal_price

    @pytest.mark.asyncio
    async def test_without_payment_method(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        registrar_api: SandboxRegistrar,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        payments.customers_with_payment_method = set()
        expires = clock() + timedelta(days=10)
        domain = await seed_domain(database, customer, registrar, expires, auto_renew=True)

        result = await renewal.execute(domain.id)

        assert result.error_kind is ErrorKind.DEPENDENCY
        assert result.message == "No active payment method on file"
        assert payments.charges == []
        assert registrar_api.renewals == []
        assert notifier.subjects() == ["Domain Renewal Reminder - example.com"]
        async with database.unit_of_work() as uow:
            unchanged = await uow.domains.get(domain.id)
        assert unchanged is not None
        assert unchanged.expiration_date == expires

    @pytest.mark.asyncio
    async def test_declined_charge(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        registrar_api: SandboxRegistrar,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        payments.decline_reason = "card expired"
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=10), auto_renew=True
        )

        result = await renewal.execute(domain.id)

        assert result.error_kind is ErrorKind.DEPENDENCY
        assert result.message == "Payment failed: card expired"
        assert registrar_api.renewals == []
        assert "card expired" in notifier.sent[0].body_html
        assert await pending_event_types(database) == ["InvoiceGenerated"]

    @pytest.mark.asyncio
    async def test_registrar_failure_after_charge(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        registrar_api: SandboxRegistrar,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        """The charge is kept, recorded on the invoice and on a WorkflowFailed event."""
        registrar_api.renewal_error = "registry offline"
        expires = clock() + timedelta(days=10)
        domain = await seed_domain(database, customer, registrar, expires, auto_renew=True)

        result = await renewal.execute(domain.id)

        assert result.error_kind is ErrorKind.DEPENDENCY
        assert result.details["transaction_id"] == "sandbox-txn-000001"
        assert "registry offline" in result.message
        assert len(payments.charges) == 1

        async with database.unit_of_work() as uow:
            unchanged = await uow.domains.get(domain.id)
            [invoice] = await uow.invoices.list_for_domain(domain.id)
        assert unchanged is not None
        assert unchanged.expiration_date == expires
        assert invoice.status is InvoiceStatus.PAYMENT_CAPTURED
        assert invoice.transaction_id == "sandbox-txn-000001"
        assert invoice.amount_paid == invoice.total_amount
        assert invoice.amount_due == Decimal("0")

        records = await database.outbox_store().fetch_pending()
        assert [r.event_type for r in records] == ["InvoiceGenerated", "WorkflowFailed"]
        failed = json_loads(records[1].event_data)
        assert failed["transaction_id"] == "sandbox-txn-000001"
        assert failed["step"] == "registrar.renew"
        assert records[1].aggregate_type == "Domain"

    @pytest.mark.asyncio
    async def test_retry_after_registrar_failure_does_not_charge_again(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        registrar_api: SandboxRegistrar,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        registrar_api.renewal_error = "registry offline"
        expires = clock() + timedelta(days=10)
        domain = await seed_domain(database, customer, registrar, expires, auto_renew=True)

        await renewal.execute(domain.id)
        clock.advance(hours=1)
        second = await renewal.execute(domain.id)

        assert second.error_kind is ErrorKind.DEPENDENCY
        assert second.details["transaction_id"] == "sandbox-txn-000001"
        assert len(payments.charges) == 1
        assert len(registrar_api.renewals) == 2

        registrar_api.renewal_error = None
        clock.advance(hours=1)
        third = await renewal.execute(domain.id)

        assert third.success, third.message
        assert third.details["renewed"] is True
        assert third.details["transaction_id"] == "sandbox-txn-000001"
        assert len(payments.charges) == 1

        async with database.unit_of_work() as uow:
            renewed = await uow.domains.get(domain.id)
            [invoice] = await uow.invoices.list_for_domain(domain.id)
        assert renewed is not None
        assert renewed.expiration_date == expires.replace(year=expires.year + 1)
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.transaction_id == "sandbox-txn-000001"

    @pytest.mark.asyncio
    async def test_captured_invoice_reminder_does_not_ask_for_payment(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        registrar_api: SandboxRegistrar,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        registrar_api.renewal_error = "registry offline"
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=10), auto_renew=True
        )

        await renewal.execute(domain.id)

        [message] = notifier.sent
        assert "was received" in message.body_html
        assert "Please pay" not in message.body_html

    @pytest.mark.asyncio
    async def test_process_without_invoice_generates_one(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=60), auto_renew=True
        )

        result = await renewal.process_auto_renewal(domain.id)

        assert result.success, result.message
        assert result.details["renewed"] is True

    @pytest.mark.asyncio
    async def test_paid_invoice_is_not_charged_again(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=10), auto_renew=True
        )
        first = await renewal.execute(domain.id)

        again = await renewal.process_auto_renewal(domain.id, first.details["invoice_id"])

        assert again.success
        assert again.details["renewed"] is False
        assert len(payments.charges) == 1

    @pytest.mark.asyncio
    async def test_invoice_of_other_domain_rejected(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        expires = clock() + timedelta(days=10)
        first = await seed_domain(database, customer, registrar, expires, name="one.com")
        second = await seed_domain(database, customer, registrar, expires, name="two.com")
        reminder = await renewal.execute(first.id)

        result = await renewal.process_auto_renewal(second.id, reminder.details["invoice_id"])

        assert result.error_kind is ErrorKind.VALIDATION
        assert "does not belong" in result.message


class TestReminder:
    @pytest.mark.asyncio
    async def test_manual_renewal_gets_invoice_and_reminder(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        payments: SandboxPaymentProcessor,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(database, customer, registrar, clock() + timedelta(days=20))

        result = await renewal.execute(domain.id)

        assert result.success
        assert result.details["renewed"] is False
        assert payments.charges == []
        [message] = notifier.sent
        assert message.to == customer.email
        assert message.subject == "Domain Renewal Reminder - example.com"
        async with database.unit_of_work() as uow:
            [invoice] = await uow.invoices.list_for_domain(domain.id)
        assert invoice.id == result.details["invoice_id"]
        assert invoice.total_amount == Decimal("12.99")
        assert invoice.due_date == domain.expiration_date.date()

    @pytest.mark.asyncio
    async def test_rerun_reuses_open_invoice(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(database, customer, registrar, clock() + timedelta(days=20))

        first = await renewal.execute(domain.id)
        clock.advance(days=1)
        second = await renewal.execute(domain.id)

        assert second.details["invoice_id"] == first.details["invoice_id"]
        assert len(notifier.sent) == 2
        assert await pending_event_types(database) == ["InvoiceGenerated"]


class TestExpire:
    @pytest.mark.asyncio
    async def test_expires_past_domain(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(database, customer, registrar, clock() - timedelta(days=1))

        result = await renewal.expire(domain.id)

        assert result.success
        assert result.details["expired"] is True
        async with database.unit_of_work() as uow:
            expired = await uow.domains.get(domain.id)
        assert expired is not None
        assert expired.status is DomainStatus.EXPIRED
        assert await pending_event_types(database) == ["DomainExpired"]

    @pytest.mark.asyncio
    async def test_future_domain_untouched(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(database, customer, registrar, clock() + timedelta(days=1))

        result = await renewal.expire(domain.id)

        assert result.success
        assert result.details["expired"] is False
        assert await pending_event_types(database) == []

    @pytest.mark.asyncio
    async def test_cancelled_domain_cannot_expire(
        self,
        database: Database,
        renewal: DomainRenewalWorkflow,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domain = await seed_domain(
            database,
            customer,
            registrar,
            clock() - timedelta(days=1),
            status=DomainStatus.CANCELLED,
        )

        result = await renewal.expire(domain.id)

        assert result.error_kind is ErrorKind.VALIDATION
