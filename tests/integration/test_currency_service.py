"""
Integration tests for CurrencyService on SQLite.

Tests cover:
- Identity conversion and conversion with markup
- Picking the applicable rate among several
- Rate maintenance (update, delete, listing)
- Expiry sweeping
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from ispflow.config import RateSweepConfig
from ispflow.currency import CurrencyService, RateExpirySweeper, RateSource
from ispflow.exceptions import ExchangeRateNotFoundError
from ispflow.persistence.database import Database
from tests.fixtures import FixedClock

pytestmark = [pytest.mark.sqlite]


@pytest.fixture
def currency(database: Database, clock: FixedClock) -> CurrencyService:
    return CurrencyService(database.engine, clock=clock, enable_tracing=False)


class TestConvert:
    @pytest.mark.asyncio
    async def test_same_currency_is_identity(self, currency: CurrencyService) -> None:
        result = await currency.convert(Decimal("42.50"), "eur", "EUR")

        assert result.converted_amount == Decimal("42.50")
        assert result.exchange_rate == Decimal("1")
        assert result.rate_id is None

    @pytest.mark.asyncio
    async def test_applies_markup(self, currency: CurrencyService, clock: FixedClock) -> None:
        rate = await currency.create_rate(
            "EUR",
            "USD",
            Decimal("0.95"),
            markup=Decimal("5"),
            effective_date=clock() - timedelta(days=1),
        )

        result = await currency.convert(Decimal("100"), "EUR", "USD")

        assert result.converted_amount == Decimal("99.75")
        assert result.exchange_rate == Decimal("0.9975")
        assert result.rate_id == rate.id
        assert result.converted_at == clock()

    @pytest.mark.asyncio
    async def test_rounds_to_target_minor_units(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        await currency.create_rate(
            "EUR", "JPY", Decimal("161.237"), effective_date=clock() - timedelta(hours=1)
        )

        result = await currency.convert(Decimal("10.01"), "EUR", "JPY")

        assert result.converted_amount == Decimal("1614")

    @pytest.mark.asyncio
    async def test_missing_rate(self, currency: CurrencyService) -> None:
        with pytest.raises(ExchangeRateNotFoundError) as exc_info:
            await currency.convert(Decimal("1"), "EUR", "GBP")

        assert exc_info.value.base_currency == "EUR"
        assert exc_info.value.target_currency == "GBP"

    @pytest.mark.asyncio
    async def test_reverse_pair_is_not_inferred(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        await currency.create_rate(
            "EUR", "USD", Decimal("1.08"), effective_date=clock() - timedelta(days=1)
        )

        with pytest.raises(ExchangeRateNotFoundError):
            await currency.get_rate("USD", "EUR")


class TestRateSelection:
    @pytest.mark.asyncio
    async def test_newest_effective_date_wins(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        now = clock()
        await currency.create_rate("EUR", "USD", Decimal("1.05"), effective_date=now - timedelta(days=10))
        newest = await currency.create_rate(
            "EUR", "USD", Decimal("1.08"), effective_date=now - timedelta(days=1)
        )
        await currency.create_rate("EUR", "USD", Decimal("1.06"), effective_date=now - timedelta(days=5))

        resolved = await currency.get_rate("EUR", "USD")

        assert resolved.rate_id == newest.id
        assert resolved.rate == Decimal("1.08")

    @pytest.mark.asyncio
    async def test_highest_id_breaks_ties(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        effective = clock() - timedelta(days=1)
        await currency.create_rate("EUR", "USD", Decimal("1.05"), effective_date=effective)
        later = await currency.create_rate("EUR", "USD", Decimal("1.07"), effective_date=effective)

        resolved = await currency.get_rate("EUR", "USD")

        assert resolved.rate_id == later.id

    @pytest.mark.asyncio
    async def test_ignores_future_expired_and_inactive(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        now = clock()
        usable = await currency.create_rate(
            "EUR", "USD", Decimal("1.01"), effective_date=now - timedelta(days=30)
        )
        await currency.create_rate(
            "EUR", "USD", Decimal("1.02"), effective_date=now + timedelta(days=1)
        )
        await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.03"),
            effective_date=now - timedelta(days=2),
            expiry_date=now,
        )
        await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.04"),
            effective_date=now - timedelta(days=1),
            is_active=False,
        )

        resolved = await currency.get_rate("EUR", "USD")

        assert resolved.rate_id == usable.id

    @pytest.mark.asyncio
    async def test_resolves_at_given_instant(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        now = clock()
        old = await currency.create_rate(
            "EUR", "USD", Decimal("1.01"), effective_date=now - timedelta(days=30)
        )
        await currency.create_rate("EUR", "USD", Decimal("1.09"), effective_date=now - timedelta(days=1))

        resolved = await currency.get_rate("EUR", "USD", at=now - timedelta(days=7))

        assert resolved.rate_id == old.id


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_create_validates_input(self, currency: CurrencyService) -> None:
        with pytest.raises(ValueError):
            await currency.create_rate("EUR", "EUR", Decimal("1"))
        with pytest.raises(ValueError):
            await currency.create_rate("EUR", "USD", Decimal("0"))
        with pytest.raises(ValueError):
            await currency.create_rate("EUR", "USD", Decimal("1.1"), markup=Decimal("-1"))
        with pytest.raises(ValueError):
            await currency.create_rate("EURO", "USD", Decimal("1.1"))

    @pytest.mark.asyncio
    async def test_expiry_must_follow_effective_date(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        with pytest.raises(ValueError):
            await currency.create_rate(
                "EUR", "USD", Decimal("1.1"), effective_date=clock(), expiry_date=clock()
            )

    @pytest.mark.asyncio
    async def test_create_normalizes_codes(self, currency: CurrencyService) -> None:
        rate = await currency.create_rate("eur", " usd", Decimal("1.1"), source=RateSource.ECB)

        assert (rate.base_currency, rate.target_currency) == ("EUR", "USD")
        assert rate.source == "ECB"

    @pytest.mark.asyncio
    async def test_update_rate(self, currency: CurrencyService, clock: FixedClock) -> None:
        rate = await currency.create_rate(
            "EUR", "USD", Decimal("1.1"), effective_date=clock() - timedelta(days=1)
        )

        updated = await currency.update_rate(rate.id, markup=Decimal("2.5"))

        assert updated is not None
        assert updated.rate == Decimal("1.1")
        assert updated.markup == Decimal("2.5")
        resolved = await currency.get_rate("EUR", "USD")
        assert resolved.effective_rate == Decimal("1.127500")

    @pytest.mark.asyncio
    async def test_update_validates(self, currency: CurrencyService) -> None:
        rate = await currency.create_rate("EUR", "USD", Decimal("1.1"))

        with pytest.raises(ValueError):
            await currency.update_rate(rate.id, rate=Decimal("-1"))

    @pytest.mark.asyncio
    async def test_update_missing_rate(self, currency: CurrencyService) -> None:
        assert await currency.update_rate(404, rate=Decimal("1.2")) is None

    @pytest.mark.asyncio
    async def test_update_can_clear_expiry(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        rate = await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.1"),
            effective_date=clock() - timedelta(days=2),
            expiry_date=clock() - timedelta(days=1),
        )

        updated = await currency.update_rate(rate.id, clear_expiry=True)

        assert updated is not None
        assert updated.expiry_date is None
        resolved = await currency.get_rate("EUR", "USD")
        assert resolved.rate_id == rate.id

    @pytest.mark.asyncio
    async def test_update_rejects_expiry_before_effective_date(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        rate = await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.1"),
            effective_date=clock(),
            expiry_date=clock() + timedelta(days=10),
        )

        with pytest.raises(ValueError):
            await currency.update_rate(rate.id, expiry_date=clock() - timedelta(days=1))
        with pytest.raises(ValueError):
            await currency.update_rate(rate.id, effective_date=clock() + timedelta(days=10))
        with pytest.raises(ValueError):
            await currency.update_rate(
                rate.id, expiry_date=clock() + timedelta(days=5), clear_expiry=True
            )

        unchanged = await currency.update_rate(rate.id)
        assert unchanged is not None
        assert unchanged.effective_date == clock()
        assert unchanged.expiry_date == clock() + timedelta(days=10)

    @pytest.mark.asyncio
    async def test_delete_rate(self, currency: CurrencyService) -> None:
        rate = await currency.create_rate("EUR", "USD", Decimal("1.1"))

        assert await currency.delete_rate(rate.id)
        assert not await currency.delete_rate(rate.id)
        assert await currency.list_rates_for_pair("EUR", "USD") == []

    @pytest.mark.asyncio
    async def test_list_rates_for_pair(self, currency: CurrencyService, clock: FixedClock) -> None:
        now = clock()
        old = await currency.create_rate(
            "EUR", "USD", Decimal("1.05"), effective_date=now - timedelta(days=9), is_active=False
        )
        new = await currency.create_rate(
            "EUR", "USD", Decimal("1.08"), effective_date=now - timedelta(days=1)
        )
        await currency.create_rate("EUR", "GBP", Decimal("0.85"))

        rates = await currency.list_rates_for_pair("eur", "usd")

        assert [r.id for r in rates] == [new.id, old.id]

    @pytest.mark.asyncio
    async def test_list_active_rates(self, currency: CurrencyService, clock: FixedClock) -> None:
        now = clock()
        usd = await currency.create_rate(
            "EUR", "USD", Decimal("1.08"), effective_date=now - timedelta(days=1)
        )
        gbp = await currency.create_rate(
            "EUR", "GBP", Decimal("0.85"), effective_date=now - timedelta(days=1)
        )
        await currency.create_rate("EUR", "CHF", Decimal("0.95"), is_active=False)

        rates = await currency.list_active_rates()

        assert [r.id for r in rates] == [gbp.id, usd.id]


class TestExpirySweep:
    @pytest.mark.asyncio
    async def test_deactivates_expired_once(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        now = clock()
        expired = await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.05"),
            effective_date=now - timedelta(days=10),
            expiry_date=now - timedelta(days=1),
        )
        current = await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.08"),
            effective_date=now - timedelta(days=1),
            expiry_date=now + timedelta(days=1),
        )

        assert await currency.deactivate_expired_rates() == 1
        assert await currency.deactivate_expired_rates() == 0

        rates = {r.id: r for r in await currency.list_rates_for_pair("EUR", "USD")}
        assert rates[expired.id].is_active is False
        assert rates[current.id].is_active is True

    @pytest.mark.asyncio
    async def test_sweeper_runs_in_background(
        self, currency: CurrencyService, clock: FixedClock
    ) -> None:
        now = clock()
        await currency.create_rate(
            "EUR",
            "USD",
            Decimal("1.05"),
            effective_date=now - timedelta(days=10),
            expiry_date=now - timedelta(days=1),
        )
        sweeper = RateExpirySweeper(currency, RateSweepConfig(interval=0.05))

        sweeper.start()
        try:
            for _ in range(100):
                if sweeper.deactivated_total:
                    break
                await asyncio.sleep(0.01)
        finally:
            await sweeper.stop(timeout=5.0)

        assert sweeper.deactivated_total == 1
        assert not sweeper.is_running
