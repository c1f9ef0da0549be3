# src/btcfolio/adapters/providers/yahoo.py
"""
Yahoo Finance Chart Provider for BTC Spot Prices

This module implements the Yahoo Finance chart client used as the fallback
BTC price source. It requests the last day of BTC-<CURRENCY> candles for each
reference currency and takes the most recent non-empty close.

Files that USE this module:
- btcfolio.application.market_data (fallback price provider in the ProviderChain)
- tests.test_providers (unit tests)

Files that this module USES:
- btcfolio.adapters.providers.base (HttpProvider, PriceProvider)
- btcfolio.config (settings for API configuration)
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

from btcfolio.adapters.providers.base import HttpProvider, PriceProvider
from btcfolio.config import settings
from btcfolio.domain.errors import FetchMalformedResponse, NoDataAvailable
from btcfolio.domain.models import PriceSnapshot, SOURCE_FEED

log = logging.getLogger(__name__)

# Yahoo rejects requests without a browser-like agent
_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    ),
    "Accept": "*/*",
}


class YahooFinanceProvider(HttpProvider, PriceProvider):
    name = "yahoo"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None, **kwargs):
        """
        Initialize Yahoo Finance chart provider.

        Args:
            base_url: Optional custom chart URL (defaults to settings.yahoo_finance_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
        """
        super().__init__(timeout=timeout, **kwargs)
        self.url = base_url or settings.yahoo_finance_url

    @staticmethod
    def _latest_close(data: Any, symbol: str) -> float:
        """
        Extract the most recent non-null close from a chart response.

        Raises:
            FetchMalformedResponse: Missing chart/result/indicators fields
            NoDataAvailable: Chart has no usable close
        """
        try:
            chart = data["chart"]
            if chart.get("error"):
                description = chart["error"].get("description", "unknown error")
                raise NoDataAvailable(f"Yahoo Finance error for {symbol}: {description}", provider="yahoo")
            result = chart["result"][0]
            closes = result["indicators"]["quote"][0]["close"]
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            log.error("Yahoo Finance unexpected schema for %s: %s", symbol, e)
            raise FetchMalformedResponse(f"Yahoo Finance schema error for {symbol}: {e}",
                                         provider="yahoo") from e

        for close in reversed(closes or []):
            if close is not None and float(close) > 0:
                return float(close)
        raise NoDataAvailable(f"No valid data points for {symbol}", provider="yahoo")

    def _close_for(self, currency: str) -> float:
        symbol = f"BTC-{currency}"
        end = int(time.time())
        data = self._get_json(
            f"{self.url}/{quote(symbol)}",
            params={
                "period1": end - 24 * 60 * 60,
                "period2": end,
                "interval": "1d",
                "events": "history",
            },
            headers=_HEADERS,
        )
        return self._latest_close(data, symbol)

    def btc_prices(self, currency_a: str, currency_b: str) -> PriceSnapshot:
        """
        Get the BTC price in both reference currencies (two requests).

        Returns:
            PriceSnapshot captured now

        Raises:
            FetchError subclass if either request fails
        """
        log.info("Fetching BTC price in %s/%s from Yahoo Finance", currency_a, currency_b)
        price_a = self._close_for(currency_a)
        price_b = self._close_for(currency_b)
        log.info("Yahoo Finance BTC price: %s %s / %s %s", price_a, currency_a, price_b, currency_b)
        return PriceSnapshot(
            price_a=price_a,
            price_b=price_b,
            currency_a=currency_a,
            currency_b=currency_b,
            captured_at=datetime.now(timezone.utc),
            source=SOURCE_FEED,
            provider=self.name,
        )
