# src/btcfolio/adapters/providers/coingecko.py
"""
CoinGecko API Provider for BTC Spot Prices

This module implements the CoinGecko simple-price client used as the primary
source of the BTC price in the two reference currencies. It holds no cache of
its own; the rate cache decides when to call it.

Files that USE this module:
- btcfolio.application.market_data (primary price provider in the ProviderChain)
- tests.test_providers (unit tests)

Files that this module USES:
- btcfolio.adapters.providers.base (HttpProvider, PriceProvider)
- btcfolio.config (settings for API configuration)
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from btcfolio.adapters.providers.base import HttpProvider, PriceProvider
from btcfolio.config import settings
from btcfolio.domain.errors import FetchMalformedResponse, NoDataAvailable
from btcfolio.domain.models import PriceSnapshot, SOURCE_FEED

log = logging.getLogger(__name__)


class CoinGeckoProvider(HttpProvider, PriceProvider):
    name = "coingecko"

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[int] = None, **kwargs):
        """
        Initialize CoinGecko API provider.

        Args:
            base_url: Optional custom API URL (defaults to settings.coingecko_url)
            timeout: Optional HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
        """
        super().__init__(timeout=timeout, **kwargs)
        self.url = base_url or settings.coingecko_url

    def btc_prices(self, currency_a: str, currency_b: str) -> PriceSnapshot:
        """
        Get the BTC price in both reference currencies from one request.

        Expected response: {"bitcoin": {"eur": 58000.0, "usd": 63000.0}}

        Returns:
            PriceSnapshot captured now

        Raises:
            FetchError subclass on any failure
        """
        log.info("Fetching BTC price in %s/%s from CoinGecko", currency_a, currency_b)
        data = self._get_json(
            self.url,
            params={
                "ids": "bitcoin",
                "vs_currencies": f"{currency_a.lower()},{currency_b.lower()}",
            },
        )

        if not isinstance(data, dict) or not isinstance(data.get("bitcoin"), dict):
            log.error("CoinGecko unexpected response structure: %s", data)
            raise FetchMalformedResponse("CoinGecko response missing 'bitcoin' field", provider=self.name)

        quotes = data["bitcoin"]
        if not quotes:
            raise NoDataAvailable("CoinGecko returned no BTC quotes", provider=self.name)

        try:
            price_a = float(quotes[currency_a.lower()])
            price_b = float(quotes[currency_b.lower()])
        except (KeyError, ValueError, TypeError) as e:
            log.error("CoinGecko unexpected schema: %s", data)
            raise FetchMalformedResponse(f"CoinGecko schema error: {e}", provider=self.name) from e

        if price_a <= 0 or price_b <= 0:
            log.error("CoinGecko returned non-positive BTC price: %s / %s", price_a, price_b)
            raise NoDataAvailable("CoinGecko returned non-positive BTC price", provider=self.name)

        log.info("CoinGecko BTC price: %s %s / %s %s", price_a, currency_a, price_b, currency_b)
        return PriceSnapshot(
            price_a=price_a,
            price_b=price_b,
            currency_a=currency_a,
            currency_b=currency_b,
            captured_at=datetime.now(timezone.utc),
            source=SOURCE_FEED,
            provider=self.name,
        )
