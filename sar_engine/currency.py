"""Conversion of booked amounts into the reporting currency.

Rates come from a versioned table loaded with the engine configuration; there
is no network lookup, so a historical case always converts the same way.
"""
from __future__ import annotations

import datetime as dt
from bisect import bisect_right
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from types import MappingProxyType
from typing import Mapping, Tuple

from .domain import CENT
from .errors import UnsupportedCurrency
from .schema import RateEntrySchema, RateTableSchema, validate_config

RateHistory = Tuple[Tuple[dt.date, Decimal], ...]


def _history(quote) -> RateHistory:
    if isinstance(quote, Decimal):
        return ((dt.date.min, quote),)
    if isinstance(quote, RateEntrySchema):
        quote = [quote]
    return tuple(sorted((entry.effective_from, entry.rate) for entry in quote))


@dataclass(frozen=True)
class RateTable:
    version: str
    reporting_currency: str
    rates: Mapping[str, RateHistory]

    @classmethod
    def from_dict(cls, data) -> "RateTable":
        """Build a table from ``{"version", "reporting_currency", "rates"}``.

        Each rate is either a bare number (effective for all dates) or a list of
        ``{"effective_from": "YYYY-MM-DD", "rate": ...}`` entries quoting units
        of reporting currency per unit of the foreign currency.
        """
        return cls.from_schema(validate_config(RateTableSchema, data, "rate_table"))

    @classmethod
    def from_schema(cls, schema: RateTableSchema) -> "RateTable":
        return cls(
            version=schema.version,
            reporting_currency=schema.reporting_currency,
            rates=MappingProxyType({currency: _history(quote) for currency, quote in schema.rates.items()}),
        )

    def supported_currencies(self):
        return frozenset(self.rates) | {self.reporting_currency}


class CurrencyNormalizer:
    def __init__(self, rate_table: RateTable):
        self.rate_table = rate_table

    @property
    def reporting_currency(self) -> str:
        return self.rate_table.reporting_currency

    def rate_for(self, currency: str, reference_date) -> Decimal:
        if currency == self.reporting_currency:
            return Decimal(1)
        history = self.rate_table.rates.get(currency)
        if history is None:
            raise UnsupportedCurrency(currency)
        if isinstance(reference_date, dt.datetime):
            reference_date = reference_date.date()
        # Latest entry effective on or before the date; the earliest one before that.
        idx = bisect_right([d for d, _ in history], reference_date)
        return history[max(idx - 1, 0)][1]

    def normalize(self, amount: Decimal, currency: str, reference_date) -> Decimal:
        if currency == self.reporting_currency:
            return amount
        rate = self.rate_for(currency, reference_date)
        return (amount * rate).quantize(CENT, rounding=ROUND_HALF_EVEN)
