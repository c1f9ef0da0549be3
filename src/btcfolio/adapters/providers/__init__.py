# src/btcfolio/adapters/providers/__init__.py
"""
Provider Adapters - External API Clients

This package contains adapters for the external market-data APIs.
Price providers implement PriceProvider; rate providers implement RatesProvider.
"""

from btcfolio.adapters.providers.base import HttpProvider, PriceProvider, RatesProvider
from btcfolio.adapters.providers.coingecko import CoinGeckoProvider
from btcfolio.adapters.providers.exchangerate import ExchangeRateProvider
from btcfolio.adapters.providers.yahoo import YahooFinanceProvider

__all__ = [
    "HttpProvider",
    "PriceProvider",
    "RatesProvider",
    "CoinGeckoProvider",
    "ExchangeRateProvider",
    "YahooFinanceProvider",
]
