# src/btcfolio/adapters/providers/base.py
"""
Base Provider Interfaces for Market Data Providers

This module defines the abstract base classes for BTC price providers and fiat
rate providers, and the shared HTTP plumbing that turns requests failures into
typed fetch errors.

Files that USE this module:
- btcfolio.adapters.providers.coingecko (CoinGeckoProvider implements PriceProvider)
- btcfolio.adapters.providers.yahoo (YahooFinanceProvider implements PriceProvider)
- btcfolio.adapters.providers.exchangerate (ExchangeRateProvider implements RatesProvider)
- btcfolio.application.market_data (composes providers)

Files that this module USES:
- btcfolio.config (settings for timeouts and throttling)
- btcfolio.domain.errors (typed fetch errors)
- btcfolio.shared.rate_limiter (outbound request budget)
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

import requests

from btcfolio.config import settings
from btcfolio.domain.errors import (
    FetchMalformedResponse,
    FetchRateLimited,
    FetchTimeout,
    NoDataAvailable,
)
from btcfolio.domain.models import PriceSnapshot, RateTable
from btcfolio.shared.rate_limiter import RateLimitConfig, RateLimiter, rate_limiter

log = logging.getLogger(__name__)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return None


class HttpProvider:
    """Shared request handling for all upstream providers."""

    name = "http"

    def __init__(self, timeout: Optional[int] = None, limiter: Optional[RateLimiter] = None,
                 limit: Optional[RateLimitConfig] = None):
        """
        Args:
            timeout: HTTP timeout in seconds (defaults to settings.http_timeout_seconds)
            limiter: Rate limiter (defaults to the process-wide limiter)
            limit: Request budget (defaults to PROVIDER_MAX_REQUESTS per PROVIDER_WINDOW_SECONDS)
        """
        self.timeout = timeout or settings.http_timeout_seconds
        self.limiter = limiter or rate_limiter
        self.limit = limit or RateLimitConfig(
            max_requests=settings.provider_max_requests,
            time_window=settings.provider_window_seconds,
        )

    def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Any:
        """
        GET a URL and decode its JSON body.

        Raises:
            FetchRateLimited: Local budget exhausted or upstream answered 429
            FetchTimeout: No response within the timeout
            NoDataAvailable: Connection failure, 5xx or other HTTP error
            FetchMalformedResponse: Body is not valid JSON
        """
        if not self.limiter.is_allowed(self.name, self.limit):
            retry_after = self.limiter.get_retry_after(self.name, self.limit)
            log.warning("%s request budget exhausted, skipping call (retry in %ss)", self.name, retry_after)
            raise FetchRateLimited(
                f"{self.name} request budget exhausted", provider=self.name, retry_after=retry_after
            )

        try:
            log.debug("Fetching %s", url)
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            log.warning("%s API timeout after %d seconds", self.name, self.timeout)
            raise FetchTimeout(f"{self.name} API timeout after {self.timeout}s", provider=self.name)
        except requests.exceptions.RequestException as e:
            log.warning("%s API request failed (network/connection error): %s", self.name, e)
            raise NoDataAvailable(f"{self.name} API request failed: {e}", provider=self.name) from e

        if resp.status_code == 429:
            retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
            if retry_after:
                self.limiter.block(self.name, retry_after)
            log.warning("%s API rate limit exceeded (retry after %ss)", self.name, retry_after)
            raise FetchRateLimited(
                f"{self.name} API rate limit exceeded", provider=self.name, retry_after=retry_after
            )

        if resp.status_code >= 500:
            log.warning("%s API returned %d (server error)", self.name, resp.status_code)
            raise NoDataAvailable(f"{self.name} API returned {resp.status_code} (server error)",
                                  provider=self.name)

        try:
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            log.error("%s API HTTP error: %s", self.name, e)
            raise NoDataAvailable(f"{self.name} API HTTP error: {e}", provider=self.name) from e

        try:
            return resp.json()
        except ValueError as e:
            log.error("%s API returned invalid JSON: %s", self.name, e)
            raise FetchMalformedResponse(f"{self.name} API returned invalid JSON: {e}",
                                         provider=self.name) from e


class PriceProvider(ABC):
    name = "price"

    @abstractmethod
    def btc_prices(self, currency_a: str, currency_b: str) -> PriceSnapshot:
        """Return the price of 1 BTC in both reference currencies."""
        raise NotImplementedError


class RatesProvider(ABC):
    name = "rates"

    @abstractmethod
    def fiat_rates(self, pivots: Iterable[str], currencies: Iterable[str]) -> RateTable:
        """Return a rate table with one full row per pivot currency."""
        raise NotImplementedError
