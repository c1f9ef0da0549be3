# src/btcfolio/domain/__init__.py
"""
Domain Layer - Pure Business Objects

This package contains domain models and business rules.
No dependencies on infrastructure or external systems.
"""

from btcfolio.domain.models import (
    CacheEntry,
    ConvertedValues,
    CurrencyPreferences,
    PortfolioSummary,
    PriceSnapshot,
    RateTable,
    Transaction,
    TransactionValues,
)
from btcfolio.domain.errors import (
    ConversionRateUnknown,
    DomainError,
    FetchError,
    FetchMalformedResponse,
    FetchRateLimited,
    FetchTimeout,
    NoDataAvailable,
)

__all__ = [
    "PriceSnapshot",
    "RateTable",
    "CacheEntry",
    "ConvertedValues",
    "CurrencyPreferences",
    "PortfolioSummary",
    "Transaction",
    "TransactionValues",
    "DomainError",
    "FetchError",
    "FetchTimeout",
    "FetchRateLimited",
    "FetchMalformedResponse",
    "NoDataAvailable",
    "ConversionRateUnknown",
]
