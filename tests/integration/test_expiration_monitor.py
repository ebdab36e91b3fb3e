"""Integration tests for DomainExpirationMonitor on SQLite."""

import asyncio
from datetime import timedelta

import pytest

from ispflow.config import ExpirationMonitorConfig
from ispflow.persistence.database import Database
from ispflow.persistence.models import Customer, Domain, Registrar
from ispflow.providers import SandboxNotifier, SandboxRegistrar
from ispflow.statemachine import DomainStatus
from ispflow.workflows import DomainExpirationMonitor, DomainRenewalWorkflow
from tests.fixtures import FixedClock, seed_domain

pytestmark = [pytest.mark.sqlite]


@pytest.fixture
def monitor(
    database: Database, renewal: DomainRenewalWorkflow, clock: FixedClock
) -> DomainExpirationMonitor:
    return DomainExpirationMonitor(
        database, renewal, ExpirationMonitorConfig(interval=0.05), clock=clock
    )


async def seed_portfolio(
    database: Database, customer: Customer, registrar: Registrar, clock: FixedClock
) -> dict[str, Domain]:
    now = clock()
    return {
        "auto": await seed_domain(
            database,
            customer,
            registrar,
            now + timedelta(days=10),
            name="auto.com",
            auto_renew=True,
        ),
        "manual": await seed_domain(
            database, customer, registrar, now + timedelta(days=20), name="manual.com"
        ),
        "later": await seed_domain(
            database, customer, registrar, now + timedelta(days=60), name="later.com"
        ),
        "lapsed": await seed_domain(
            database, customer, registrar, now - timedelta(days=1), name="lapsed.com"
        ),
    }


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_renews_reminds_and_expires(
        self,
        database: Database,
        monitor: DomainExpirationMonitor,
        registrar_api: SandboxRegistrar,
        notifier: SandboxNotifier,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        domains = await seed_portfolio(database, customer, registrar, clock)

        report = await monitor.run_once()

        assert report.checked == 3
        assert report.renewed == 1
        assert report.reminded == 1
        assert report.expired == 1
        assert report.failed == []
        assert monitor.last_report is report
        assert [r.domain_name for r in registrar_api.renewals] == ["auto.com"]
        assert notifier.subjects() == ["Domain Renewal Reminder - manual.com"]

        async with database.unit_of_work() as uow:
            lapsed = await uow.domains.get(domains["lapsed"].id)
            later = await uow.domains.get(domains["later"].id)
            later_invoices = await uow.invoices.list_for_domain(domains["later"].id)
        assert lapsed is not None and later is not None
        assert lapsed.status is DomainStatus.EXPIRED
        assert later.status is DomainStatus.ACTIVE
        assert later_invoices == []

    @pytest.mark.asyncio
    async def test_rerun_only_reminds_again(
        self,
        database: Database,
        monitor: DomainExpirationMonitor,
        registrar_api: SandboxRegistrar,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        """Renewed and expired domains drop out; the unpaid one is reminded again."""
        await seed_portfolio(database, customer, registrar, clock)
        await monitor.run_once()

        report = await monitor.run_once()

        assert report.checked == 1
        assert report.reminded == 1
        assert report.renewed == 0
        assert report.expired == 0
        assert len(registrar_api.renewals) == 1

    @pytest.mark.asyncio
    async def test_failures_are_reported(
        self,
        database: Database,
        monitor: DomainExpirationMonitor,
        registrar_api: SandboxRegistrar,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        registrar_api.renewal_error = "registry offline"
        domain = await seed_domain(
            database, customer, registrar, clock() + timedelta(days=3), auto_renew=True
        )

        report = await monitor.run_once()

        assert report.failed == [domain.id]
        assert report.renewed == 0

    @pytest.mark.asyncio
    async def test_window_boundary(
        self,
        database: Database,
        monitor: DomainExpirationMonitor,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        now = clock()
        await seed_domain(
            database, customer, registrar, now + timedelta(days=30), name="edge.com"
        )
        await seed_domain(
            database, customer, registrar, now + timedelta(days=31), name="outside.com"
        )

        report = await monitor.run_once()

        assert report.checked == 1
        assert report.reminded == 1


class TestBackground:
    @pytest.mark.asyncio
    async def test_start_and_stop(
        self,
        database: Database,
        monitor: DomainExpirationMonitor,
        customer: Customer,
        registrar: Registrar,
        clock: FixedClock,
    ) -> None:
        await seed_domain(database, customer, registrar, clock() - timedelta(days=1))

        monitor.start()
        try:
            for _ in range(100):
                if monitor.last_report is not None:
                    break
                await asyncio.sleep(0.01)
        finally:
            await monitor.stop(timeout=5.0)

        assert not monitor.is_running
        assert monitor.last_report is not None
        assert monitor.last_report.expired == 1
