# src/btcfolio/adapters/providers/exchangerate.py
"""
ExchangeRate-API Provider for Fiat Cross-Rates

This module implements the exchangerate-api.com client. One request is made
per pivot currency; the rows are limited to the supported currencies and
returned together as a single RateTable so every conversion uses rates from
one refresh cycle.

Files that USE this module:
- btcfolio.application.market_data (rates provider of the MarketDataSource)
- tests.test_providers (unit tests)

Files that this module USES:
- btcfolio.adapters.providers.base (HttpProvider, RatesProvider)
- btcfolio.config (settings for API configuration)
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from btcfolio.adapters.providers.base import HttpProvider, RatesProvider
from btcfolio.config import settings
from btcfolio.domain.errors import FetchMalformedResponse, NoDataAvailable
from btcfolio.domain.models import RateTable

log = logging.getLogger(__name__)


class ExchangeRateProvider(HttpProvider, RatesProvider):
    name = "exchangerate"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None, **kwargs):
        """
        Initialize exchangerate-api provider.

        Args:
            base_url: Optional custom API URL (defaults to settings.exchange_rate_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
        """
        super().__init__(timeout=timeout, **kwargs)
        self.url = base_url or settings.exchange_rate_url

    def latest_row(self, base: str, currencies: Iterable[str]) -> Dict[str, float]:
        """
        Get the latest rates for one base currency.

        Expected response: {"base": "EUR", "rates": {"USD": 1.09, "PLN": 4.31, ...}}

        Args:
            base: Base (pivot) currency
            currencies: Quote currencies to keep

        Returns:
            Mapping quote -> rate for the requested currencies that were present

        Raises:
            FetchError subclass on any failure
        """
        data = self._get_json(f"{self.url}/{base}")

        if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
            log.error("ExchangeRate-API unexpected response structure for %s: %s", base, data)
            raise FetchMalformedResponse(f"ExchangeRate-API response missing 'rates' for {base}",
                                         provider=self.name)

        rates = data["rates"]
        row: Dict[str, float] = {}
        for code in currencies:
            if code == base or code not in rates:
                continue
            try:
                value = float(rates[code])
            except (TypeError, ValueError):
                log.warning("ExchangeRate-API returned non-numeric %s/%s: %r", base, code, rates[code])
                continue
            if value > 0:
                row[code] = value

        if not row:
            raise NoDataAvailable(f"ExchangeRate-API returned no usable rates for {base}", provider=self.name)
        return row

    def fiat_rates(self, pivots: Iterable[str], currencies: Iterable[str]) -> RateTable:
        """
        Fetch one row per pivot and combine them into a RateTable.

        All pivots must succeed; a partial table is never returned.

        Returns:
            RateTable captured now
        """
        wanted = list(currencies)
        rows: Dict[str, Dict[str, float]] = {}
        for pivot in pivots:
            rows[pivot] = self.latest_row(pivot, wanted)

        log.info(
            "ExchangeRate-API rates updated: %s",
            ", ".join(f"{pivot}→{len(row)} currencies" for pivot, row in rows.items()),
        )
        return RateTable.from_rows(rows, captured_at=datetime.now(timezone.utc), provider=self.name)
