"""
Exchange rates: resolution by pair and date, markup and conversion.
"""

from ispflow.currency.models import (
    MINOR_UNITS,
    ConversionResult,
    ExchangeRate,
    RateSource,
    ResolvedRate,
    apply_markup,
    minor_units,
    normalize_currency,
    round_amount,
)
from ispflow.currency.repository import ExchangeRateRepository
from ispflow.currency.service import CurrencyService
from ispflow.currency.sweeper import RateExpirySweeper

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
    "ExchangeRateRepository",
    "CurrencyService",
    "RateExpirySweeper",
]
