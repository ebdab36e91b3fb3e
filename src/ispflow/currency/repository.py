"""Queries over the ``exchange_rates`` table."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ispflow.currency.models import ExchangeRate
from ispflow.persistence._connection import execute_with_connection
from ispflow.persistence.schema import exchange_rates


class ExchangeRateRepository:
    def __init__(self, conn: AsyncConnection | AsyncEngine) -> None:
        self.conn = conn

    async def add(
        self,
        base_currency: str,
        target_currency: str,
        rate: Decimal,
        markup: Decimal,
        effective_date: datetime,
        source: str,
        *,
        expiry_date: datetime | None = None,
        is_active: bool = True,
    ) -> ExchangeRate:
        now = datetime.now(UTC)
        values = {
            "base_currency": base_currency,
            "target_currency": target_currency,
            "rate": rate,
            "markup": markup,
            "effective_date": effective_date,
            "expiry_date": expiry_date,
            "source": source,
            "is_active": is_active,
            "created_at": now,
            "updated_at": now,
        }
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(insert(exchange_rates).values(**values))
            rate_id = int(result.inserted_primary_key[0])
        return ExchangeRate(id=rate_id, **values)

    async def get(self, rate_id: int) -> ExchangeRate | None:
        rows = await self._select(select(exchange_rates).where(exchange_rates.c.id == rate_id))
        return rows[0] if rows else None

    async def update(self, rate_id: int, values: dict[str, Any]) -> bool:
        values = {**values, "updated_at": datetime.now(UTC)}
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(
                update(exchange_rates).where(exchange_rates.c.id == rate_id).values(**values)
            )
            return result.rowcount > 0

    async def delete(self, rate_id: int) -> bool:
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(delete(exchange_rates).where(exchange_rates.c.id == rate_id))
            return result.rowcount > 0

    async def find_applicable(
        self,
        base_currency: str,
        target_currency: str,
        at: datetime,
    ) -> ExchangeRate | None:
        """
        The rate that applies to the pair at ``at``.

        Active, already effective and not yet expired; the newest effective
        date wins and the highest id breaks ties.
        """
        rows = await self._select(
            select(exchange_rates)
            .where(
                exchange_rates.c.base_currency == base_currency,
                exchange_rates.c.target_currency == target_currency,
                exchange_rates.c.is_active.is_(True),
                exchange_rates.c.effective_date <= at,
                or_(
                    exchange_rates.c.expiry_date.is_(None),
                    exchange_rates.c.expiry_date > at,
                ),
            )
            .order_by(exchange_rates.c.effective_date.desc(), exchange_rates.c.id.desc())
            .limit(1)
        )
        return rows[0] if rows else None

    async def list_for_pair(self, base_currency: str, target_currency: str) -> list[ExchangeRate]:
        return await self._select(
            select(exchange_rates)
            .where(
                exchange_rates.c.base_currency == base_currency,
                exchange_rates.c.target_currency == target_currency,
            )
            .order_by(exchange_rates.c.effective_date.desc(), exchange_rates.c.id.desc())
        )

    async def list_active(self, at: datetime) -> list[ExchangeRate]:
        return await self._select(
            select(exchange_rates)
            .where(
                exchange_rates.c.is_active.is_(True),
                exchange_rates.c.effective_date <= at,
                or_(
                    exchange_rates.c.expiry_date.is_(None),
                    exchange_rates.c.expiry_date > at,
                ),
            )
            .order_by(
                exchange_rates.c.base_currency,
                exchange_rates.c.target_currency,
                exchange_rates.c.effective_date.desc(),
            )
        )

    async def deactivate_expired(self, now: datetime) -> int:
        """Flip ``is_active`` off for active rates whose expiry date has passed."""
        async with execute_with_connection(self.conn, transactional=True) as conn:
            result = await conn.execute(
                update(exchange_rates)
                .where(
                    and_(
                        exchange_rates.c.is_active.is_(True),
                        exchange_rates.c.expiry_date.is_not(None),
                        exchange_rates.c.expiry_date <= now,
                    )
                )
                .values(is_active=False, updated_at=now)
            )
            return result.rowcount

    async def _select(self, query: Any) -> list[ExchangeRate]:
        async with execute_with_connection(self.conn, transactional=False) as conn:
            result = await conn.execute(query)
            return [ExchangeRate(**row) for row in result.mappings().all()]


__all__ = ["ExchangeRateRepository"]
