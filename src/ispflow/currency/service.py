"""
Currency conversion service.

Resolves the rate for a currency pair at a point in time, applies the markup
and converts amounts.

Example:
    >>> service = CurrencyService(engine)
    >>> await service.create_rate("EUR", "USD", Decimal("0.95"), markup=Decimal("5"))
    >>> result = await service.convert(Decimal("100"), "EUR", "USD")
    >>> result.converted_amount
    Decimal('99.75')
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ispflow.currency.models import (
    ConversionResult,
    ExchangeRate,
    RateSource,
    ResolvedRate,
    apply_markup,
    normalize_currency,
    round_amount,
)
from ispflow.currency.repository import ExchangeRateRepository
from ispflow.exceptions import ExchangeRateNotFoundError
from ispflow.observability import Tracer, create_tracer
from ispflow.observability.attributes import ATTR_CURRENCY_BASE, ATTR_CURRENCY_TARGET

logger = logging.getLogger(__name__)

_ONE = Decimal("1")
_ZERO = Decimal("0")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _validate_rate(rate: Decimal, markup: Decimal) -> None:
    if rate <= 0:
        raise ValueError(f"Exchange rate must be positive, got {rate}")
    if markup < 0:
        raise ValueError(f"Markup must not be negative, got {markup}")


class CurrencyService:
    """
    Rate resolution and conversion over the ``exchange_rates`` table.

    More than one active rate may exist for a pair at once. The one that
    applies at an instant is chosen by ``ExchangeRateRepository.find_applicable``:
    the newest effective date, then the highest id.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._rates = ExchangeRateRepository(conn)
        self._clock = clock or _utc_now
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def rates(self) -> ExchangeRateRepository:
        return self._rates

    async def get_rate(
        self,
        base_currency: str,
        target_currency: str,
        at: datetime | None = None,
    ) -> ResolvedRate:
        """
        Resolve the rate for a pair.

        Identical currencies resolve to exactly 1 without a lookup and without
        markup.

        Raises:
            ExchangeRateNotFoundError: No active rate applies to the pair
        """
        base = normalize_currency(base_currency)
        target = normalize_currency(target_currency)
        if base == target:
            return ResolvedRate(
                base_currency=base,
                target_currency=target,
                rate=_ONE,
                markup=_ZERO,
                effective_rate=_ONE,
            )

        at = at or self._clock()
        with self._tracer.span(
            "ispflow.currency.get_rate",
            {ATTR_CURRENCY_BASE: base, ATTR_CURRENCY_TARGET: target},
        ):
            record = await self._rates.find_applicable(base, target, at)
        if record is None:
            logger.warning(
                "No exchange rate for %s -> %s at %s",
                base,
                target,
                at.isoformat(),
                extra={"base_currency": base, "target_currency": target},
            )
            raise ExchangeRateNotFoundError(base, target, at)

        return ResolvedRate(
            base_currency=base,
            target_currency=target,
            rate=record.rate,
            markup=record.markup,
            effective_rate=record.effective_rate,
            rate_id=record.id,
            effective_date=record.effective_date,
        )

    @staticmethod
    def effective_rate(rate: Decimal, markup: Decimal) -> Decimal:
        return apply_markup(rate, markup)

    async def convert(
        self,
        amount: Decimal,
        base_currency: str,
        target_currency: str,
        at: datetime | None = None,
    ) -> ConversionResult:
        """
        Convert ``amount`` with the effective rate, rounded to the target
        currency's minor units.

        Raises:
            ExchangeRateNotFoundError: No active rate applies to the pair
        """
        at = at or self._clock()
        resolved = await self.get_rate(base_currency, target_currency, at)
        converted = round_amount(amount * resolved.effective_rate, resolved.target_currency)
        return ConversionResult(
            original_amount=amount,
            converted_amount=converted,
            base_currency=resolved.base_currency,
            target_currency=resolved.target_currency,
            exchange_rate=resolved.effective_rate,
            rate_id=resolved.rate_id,
            converted_at=at,
        )

    async def create_rate(
        self,
        base_currency: str,
        target_currency: str,
        rate: Decimal,
        *,
        markup: Decimal = _ZERO,
        effective_date: datetime | None = None,
        expiry_date: datetime | None = None,
        source: str = RateSource.MANUAL,
        is_active: bool = True,
    ) -> ExchangeRate:
        base = normalize_currency(base_currency)
        target = normalize_currency(target_currency)
        if base == target:
            raise ValueError("Base and target currency must differ")
        _validate_rate(rate, markup)
        effective_date = effective_date or self._clock()
        if expiry_date is not None and expiry_date <= effective_date:
            raise ValueError("Expiry date must be after the effective date")

        record = await self._rates.add(
            base,
            target,
            rate,
            markup,
            effective_date,
            source,
            expiry_date=expiry_date,
            is_active=is_active,
        )
        logger.info(
            "Created exchange rate %s -> %s: %s (+%s%%)",
            base,
            target,
            rate,
            markup,
            extra={"rate_id": record.id, "source": source},
        )
        return record

    async def update_rate(
        self,
        rate_id: int,
        *,
        rate: Decimal | None = None,
        markup: Decimal | None = None,
        effective_date: datetime | None = None,
        expiry_date: datetime | None = None,
        clear_expiry: bool = False,
        source: str | None = None,
        is_active: bool | None = None,
    ) -> ExchangeRate | None:
        """
        Change the given fields. Returns None if the rate does not exist.

        Arguments left as None keep their stored value; pass
        ``clear_expiry=True`` to make the rate open-ended again.

        Raises:
            ValueError: If the resulting rate is invalid, or the expiry would
                not fall after the effective date
        """
        if clear_expiry and expiry_date is not None:
            raise ValueError("Pass either expiry_date or clear_expiry, not both")
        current = await self._rates.get(rate_id)
        if current is None:
            return None

        changes: dict[str, Any] = {
            name: value
            for name, value in (
                ("rate", rate),
                ("markup", markup),
                ("effective_date", effective_date),
                ("expiry_date", expiry_date),
                ("source", source),
                ("is_active", is_active),
            )
            if value is not None
        }
        if clear_expiry:
            changes["expiry_date"] = None
        _validate_rate(changes.get("rate", current.rate), changes.get("markup", current.markup))
        new_effective = changes.get("effective_date", current.effective_date)
        new_expiry = changes.get("expiry_date", current.expiry_date)
        if new_expiry is not None and new_expiry <= new_effective:
            raise ValueError("Expiry date must be after the effective date")
        if changes:
            await self._rates.update(rate_id, changes)
        return await self._rates.get(rate_id)

    async def delete_rate(self, rate_id: int) -> bool:
        return await self._rates.delete(rate_id)

    async def list_rates_for_pair(
        self, base_currency: str, target_currency: str
    ) -> list[ExchangeRate]:
        """All rates for the pair, active or not, newest first."""
        return await self._rates.list_for_pair(
            normalize_currency(base_currency), normalize_currency(target_currency)
        )

    async def list_active_rates(self, at: datetime | None = None) -> list[ExchangeRate]:
        return await self._rates.list_active(at or self._clock())

    async def deactivate_expired_rates(self, now: datetime | None = None) -> int:
        """
        Deactivate every active rate whose expiry date has passed.

        Safe to run repeatedly or concurrently; a second run finds nothing.
        """
        count = await self._rates.deactivate_expired(now or self._clock())
        if count:
            logger.info("Deactivated %d expired exchange rate(s)", count)
        return count


__all__ = ["CurrencyService"]
