# src/btcfolio/application/__init__.py
"""
Application Layer - Caches, Valuation and Scheduling

This package contains the application services: the rate and summary caches,
the currency converter, the valuation facade and the refresh scheduler.
"""

from btcfolio.application.currency_converter import CurrencyConverter, lookup_rate
from btcfolio.application.health import HealthChecker, HealthStatus
from btcfolio.application.ledger import InMemoryLedger, Ledger, LedgerEvent, latest_recorded_prices
from btcfolio.application.market_data import MarketDataSource, ProviderChain
from btcfolio.application.rate_cache import CacheState, RateCache, RefreshResult
from btcfolio.application.scheduler import RefreshScheduler
from btcfolio.application.summary_cache import SummaryCache
from btcfolio.application.valuation import calculate_summary
from btcfolio.application.valuation_service import PortfolioValuationService

__all__ = [
    "CurrencyConverter",
    "lookup_rate",
    "HealthChecker",
    "HealthStatus",
    "InMemoryLedger",
    "Ledger",
    "LedgerEvent",
    "latest_recorded_prices",
    "MarketDataSource",
    "ProviderChain",
    "CacheState",
    "RateCache",
    "RefreshResult",
    "RefreshScheduler",
    "SummaryCache",
    "calculate_summary",
    "PortfolioValuationService",
]
