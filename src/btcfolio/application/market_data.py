# src/btcfolio/application/market_data.py
"""
Market Data Source - Provider Chains for Prices and Rates

This module composes the upstream providers into the one market-data source
the rate cache talks to. BTC prices come from a provider chain (CoinGecko
first, Yahoo Finance as fallback); fiat rates come from the rates provider.
The source keeps no data of its own.

Files that USE this module:
- btcfolio.application.rate_cache (RateCache fetches through MarketDataSource)
- btcfolio.app (builds the default source)
- tests.test_market_data (unit tests)

Files that this module USES:
- btcfolio.adapters.providers (CoinGecko, Yahoo Finance, ExchangeRate-API clients)
- btcfolio.config (reference, pivot and supported currencies)
- btcfolio.domain.errors (FetchError hierarchy)
"""
from __future__ import annotations  # Enable postponed evaluation of annotations

import logging
from typing import Iterable, List, Optional, Sequence

from btcfolio.adapters.providers import (
    CoinGeckoProvider,
    ExchangeRateProvider,
    PriceProvider,
    RatesProvider,
    YahooFinanceProvider,
)
from btcfolio.config import settings
from btcfolio.domain.errors import FetchError, FetchRateLimited, NoDataAvailable
from btcfolio.domain.models import PriceSnapshot, RateTable

log = logging.getLogger(__name__)


class ProviderChain(PriceProvider):
    """
    Price provider that tries several providers in order.
    Tracks which provider actually served the last prices.
    """
    def __init__(self, providers: Sequence[PriceProvider]):
        """
        Args:
            providers: Providers in priority order (primary first)
        """
        if not providers:
            raise ValueError("ProviderChain needs at least one provider")
        self.providers: List[PriceProvider] = list(providers)
        self.last_used_provider: Optional[str] = None

    def btc_prices(self, currency_a: str, currency_b: str) -> PriceSnapshot:
        """
        Get BTC prices from the first provider that succeeds.

        Raises:
            FetchError: The last provider's error when every provider fails
        """
        errors: List[FetchError] = []
        for provider in self.providers:
            try:
                snapshot = provider.btc_prices(currency_a, currency_b)
                self.last_used_provider = provider.name
                return snapshot
            except FetchError as e:
                log.warning("Price provider %s failed: %s", provider.name, e)
                errors.append(e)

        log.error("All price providers failed: %s", "; ".join(str(e) for e in errors))
        last = errors[-1]
        if all(isinstance(e, FetchRateLimited) for e in errors):
            raise last
        raise NoDataAvailable(
            f"All price providers failed: {'; '.join(str(e) for e in errors)}", provider=last.provider
        ) from last

    def get_last_provider(self) -> Optional[str]:
        """Name of the provider that served the last successful fetch, or None."""
        return self.last_used_provider


class MarketDataSource:
    """
    Upstream supplier of BTC spot prices and fiat cross-rates.

    Both operations either return a complete result or raise a FetchError.
    """
    def __init__(
        self,
        price_provider: Optional[PriceProvider] = None,
        rates_provider: Optional[RatesProvider] = None,
        reference_currencies: Optional[Sequence[str]] = None,
        pivots: Optional[Iterable[str]] = None,
        currencies: Optional[Iterable[str]] = None,
    ):
        self.price_provider = price_provider or ProviderChain([CoinGeckoProvider(), YahooFinanceProvider()])
        self.rates_provider = rates_provider or ExchangeRateProvider()
        self.currency_a, self.currency_b = tuple(reference_currencies or settings.reference_currencies)
        self.pivots = tuple(pivots or settings.pivot_currencies)
        self.currencies = tuple(currencies or settings.supported_currencies)

    def fetch_prices(self) -> PriceSnapshot:
        """
        Fetch the BTC price in both reference currencies.

        Raises:
            FetchTimeout, FetchRateLimited, FetchMalformedResponse, NoDataAvailable
        """
        return self.price_provider.btc_prices(self.currency_a, self.currency_b)

    def fetch_rates(self) -> RateTable:
        """
        Fetch a complete fiat rate table (one row per pivot).

        Raises:
            FetchTimeout, FetchRateLimited, FetchMalformedResponse, NoDataAvailable
        """
        return self.rates_provider.fiat_rates(self.pivots, self.currencies)
