# src/btcfolio/domain/errors.py
"""
Domain Errors - Business Logic Exceptions

This module defines domain-specific exceptions for the price and valuation
cache. Fetch errors are recovered locally by the rate cache fallback chain;
ConversionRateUnknown is the one error meant to reach the caller.
"""
from typing import Optional


class DomainError(Exception):
    """Base exception for domain errors."""
    pass


class FetchError(DomainError):
    """Base exception for failed upstream fetches."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class FetchTimeout(FetchError):
    """Raised when an upstream request exceeds the HTTP timeout."""
    pass


class FetchRateLimited(FetchError):
    """Raised when an upstream provider (or the local limiter) refuses the request."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message, provider)
        self.retry_after = retry_after


class FetchMalformedResponse(FetchError):
    """Raised when an upstream response is not valid JSON or misses fields."""
    pass


class NoDataAvailable(FetchError):
    """Raised when the feed (or the cache) has nothing usable."""
    pass


class ConversionRateUnknown(DomainError):
    """Raised when a currency pair cannot be derived from the current rate table."""

    def __init__(self, from_currency: str, to_currency: str):
        super().__init__(f"No conversion rate available for {from_currency}/{to_currency}")
        self.from_currency = from_currency
        self.to_currency = to_currency
