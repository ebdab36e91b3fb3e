"""
Exchange rate records and the markup and rounding rules.

Every amount and rate goes through ``apply_markup`` and ``round_amount`` so
quotes and invoices always agree. Both round half away from zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

RATE_PLACES = 6
DEFAULT_MINOR_UNITS = 2

# ISO 4217 exponents that differ from the default of 2
MINOR_UNITS: dict[str, int] = {
    "BIF": 0,
    "CLP": 0,
    "DJF": 0,
    "GNF": 0,
    "ISK": 0,
    "JPY": 0,
    "KMF": 0,
    "KRW": 0,
    "PYG": 0,
    "RWF": 0,
    "UGX": 0,
    "VND": 0,
    "VUV": 0,
    "XAF": 0,
    "XOF": 0,
    "XPF": 0,
    "BHD": 3,
    "IQD": 3,
    "JOD": 3,
    "KWD": 3,
    "LYD": 3,
    "OMR": 3,
    "TND": 3,
}

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


class RateSource:
    MANUAL = "Manual"
    ECB = "ECB"
    API = "Api"


def normalize_currency(code: str) -> str:
    """Upper-case a three-letter currency code, rejecting anything else."""
    normalized = code.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Invalid currency code: {code!r}")
    return normalized


def minor_units(currency: str) -> int:
    return MINOR_UNITS.get(currency.upper(), DEFAULT_MINOR_UNITS)


def apply_markup(rate: Decimal, markup: Decimal) -> Decimal:
    """``rate * (1 + markup/100)`` to six decimal places."""
    effective = rate * (_ONE + markup / _HUNDRED)
    return effective.quantize(Decimal(1).scaleb(-RATE_PLACES), rounding=ROUND_HALF_UP)


def round_amount(amount: Decimal, currency: str) -> Decimal:
    """Round to the currency's minor units."""
    return amount.quantize(Decimal(1).scaleb(-minor_units(currency)), rounding=ROUND_HALF_UP)


@dataclass
class ExchangeRate:
    """
    A stored rate for one currency pair.

    Attributes:
        rate: Market rate, one unit of base in target currency
        markup: Percentage added on top of the market rate
        effective_date: First instant the rate applies
        expiry_date: First instant the rate no longer applies (None = open-ended)
    """

    id: int
    base_currency: str
    target_currency: str
    rate: Decimal
    markup: Decimal
    effective_date: datetime
    source: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    expiry_date: datetime | None = None

    @property
    def effective_rate(self) -> Decimal:
        return apply_markup(self.rate, self.markup)

    def applies_at(self, at: datetime) -> bool:
        return (
            self.is_active
            and self.effective_date <= at
            and (self.expiry_date is None or self.expiry_date > at)
        )


@dataclass(frozen=True)
class ResolvedRate:
    """The rate used for a conversion. ``rate_id`` is None for identical currencies."""

    base_currency: str
    target_currency: str
    rate: Decimal
    markup: Decimal
    effective_rate: Decimal
    rate_id: int | None = None
    effective_date: datetime | None = None

    @property
    def is_identity(self) -> bool:
        return self.rate_id is None


@dataclass(frozen=True)
class ConversionResult:
    original_amount: Decimal
    converted_amount: Decimal
    base_currency: str
    target_currency: str
    exchange_rate: Decimal
    rate_id: int | None
    converted_at: datetime


__all__ = [
    "ExchangeRate",
    "ResolvedRate",
    "ConversionResult",
    "RateSource",
    "MINOR_UNITS",
    "apply_markup",
    "minor_units",
    "normalize_currency",
    "round_amount",
]
