# src/btcfolio/application/currency_converter.py
"""
Currency Converter - Conversion over One Consistent Rate Table

This module converts amounts between fiat currencies using the rate table the
rate cache has published. A lookup tries the direct rate, then the inverse of
the reverse rate, then a route through each pivot currency. "Unknown" is kept
distinct from 1.0: find_rate returns None and get_rate raises.

Files that USE this module:
- btcfolio.application.rate_cache (lookup_rate for non-reference currencies)
- btcfolio.application.valuation (cost and secondary-currency conversion)
- btcfolio.application.valuation_service (supported currency checks)
- btcfolio.application.scheduler (ensure_rates_loaded on start)
- tests.test_currency_converter (unit tests)

Files that this module USES:
- btcfolio.config (supported currencies)
- btcfolio.domain.errors (ConversionRateUnknown, NoDataAvailable)
- btcfolio.domain.models (RateTable, ConvertedValues)
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Tuple

from btcfolio.config import settings
from btcfolio.domain.errors import ConversionRateUnknown, NoDataAvailable
from btcfolio.domain.models import ConvertedValues, RateTable
from btcfolio.shared.validators import normalize_currency_code

if TYPE_CHECKING:
    from btcfolio.application.rate_cache import RateCache

logger = logging.getLogger(__name__)


def _leg(table: RateTable, from_currency: str, to_currency: str) -> Optional[float]:
    """Single hop: direct rate, else inverse of the reverse rate."""
    if from_currency == to_currency:
        return 1.0
    direct = table.lookup(from_currency, to_currency)
    if direct is not None:
        return direct
    reverse = table.lookup(to_currency, from_currency)
    if reverse is not None:
        return 1.0 / reverse
    return None


def lookup_rate(table: RateTable, from_currency: str, to_currency: str) -> Optional[float]:
    """
    Rate that turns one unit of from_currency into to_currency.

    Args:
        table: Rate table to read (never mixed with another table)
        from_currency: Source currency code
        to_currency: Target currency code

    Returns:
        The rate, or None when the table has no route
    """
    rate = _leg(table, from_currency, to_currency)
    if rate is not None:
        return rate

    for pivot in table.pivots:
        if pivot in (from_currency, to_currency):
            continue
        first = _leg(table, from_currency, pivot)
        if first is None:
            continue
        second = _leg(table, pivot, to_currency)
        if second is None:
            continue
        return first * second
    return None


class CurrencyConverter:
    """Pure conversion helper bound to the rate cache's current table."""

    def __init__(self, rate_cache: RateCache, supported: Optional[Iterable[str]] = None):
        """
        Args:
            rate_cache: Source of the current rate table
            supported: Supported currency codes (defaults to settings.supported_currencies)
        """
        self.rate_cache = rate_cache
        self._supported: Tuple[str, ...] = tuple(
            normalize_currency_code(code) for code in (supported or settings.supported_currencies)
        )

    @property
    def supported_currencies(self) -> Tuple[str, ...]:
        return self._supported

    def is_supported(self, currency: Optional[str]) -> bool:
        return normalize_currency_code(currency) in self._supported

    def _table(self, table: Optional[RateTable]) -> Optional[RateTable]:
        return table if table is not None else self.rate_cache.rate_table()

    def find_rate(self, from_currency: str, to_currency: str,
                  table: Optional[RateTable] = None) -> Optional[float]:
        """
        Conversion rate, or None when it is not known.

        Same currencies always give 1.0, even before any table is loaded.
        """
        from_currency = normalize_currency_code(from_currency)
        to_currency = normalize_currency_code(to_currency)
        if from_currency == to_currency:
            return 1.0
        current = self._table(table)
        if current is None:
            return None
        return lookup_rate(current, from_currency, to_currency)

    def get_rate(self, from_currency: str, to_currency: str,
                 table: Optional[RateTable] = None) -> float:
        """
        Conversion rate between two currencies.

        Raises:
            NoDataAvailable: No rate table has been loaded yet
            ConversionRateUnknown: The table has no route between the currencies
        """
        from_currency = normalize_currency_code(from_currency)
        to_currency = normalize_currency_code(to_currency)
        if from_currency == to_currency:
            return 1.0
        current = self._table(table)
        if current is None:
            raise NoDataAvailable(f"No exchange rates loaded for {from_currency}/{to_currency}")
        rate = lookup_rate(current, from_currency, to_currency)
        if rate is None:
            logger.warning("No conversion route for %s/%s in table from %s",
                           from_currency, to_currency, current.captured_at.isoformat())
            raise ConversionRateUnknown(from_currency, to_currency)
        return rate

    def convert(self, value: float, from_currency: str, to_currency: str,
                table: Optional[RateTable] = None) -> float:
        if normalize_currency_code(from_currency) == normalize_currency_code(to_currency):
            return value
        return value * self.get_rate(from_currency, to_currency, table)

    def convert_values(self, values: Mapping[str, Any], from_currency: str, to_currency: str,
                       table: Optional[RateTable] = None) -> ConvertedValues:
        """
        Convert a {price, cost, fee} bundle with a single rate.

        Args:
            values: Mapping with price and cost, fee optional
            from_currency: Currency the values are expressed in
            to_currency: Target currency

        Returns:
            ConvertedValues carrying the rate that was applied
        """
        rate = self.get_rate(from_currency, to_currency, table)
        return ConvertedValues(
            price=float(values.get("price") or 0) * rate,
            cost=float(values.get("cost") or 0) * rate,
            fee=float(values.get("fee") or 0) * rate,
            rate=rate,
        )

    def ensure_rates_loaded(self) -> None:
        """Fetch rates once if no table has ever been published."""
        if self.rate_cache.has_rates():
            return
        logger.info("No exchange rates loaded yet, fetching")
        result = self.rate_cache.refresh_rates()
        if result.table is None:
            logger.warning("Initial exchange rate fetch failed: %s",
                           "; ".join(str(e) for e in result.errors) or "refresh already running")

    def get_all_rates(self) -> Optional[RateTable]:
        return self.rate_cache.rate_table()

    def last_updated(self) -> Optional[datetime]:
        table = self.rate_cache.rate_table()
        return table.captured_at if table is not None else None
