# src/btcfolio/shared/rate_limiter.py
"""
Rate Limiter - Outbound Request Budget per Upstream Provider

This module implements a sliding-window rate limiter that keeps outbound calls
to the free market-data APIs inside their published budgets. A provider that
answers 429 can be blocked for the Retry-After period so the next scheduled
tick does not hit it again too early.

Files that USE this module:
- btcfolio.adapters.providers.base (every provider checks the limiter before a request)

Files that this module USES:
- None (pure utility implementation)
"""
import threading
import time
from typing import Callable, Dict, Optional
from collections import defaultdict, deque
from dataclasses import dataclass


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""
    max_requests: int
    time_window: int  # in seconds


class RateLimiter:
    """Thread-safe in-memory sliding-window rate limiter."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._requests: Dict[str, deque] = defaultdict(deque)
        self._blocked: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _prune(self, identifier: str, config: RateLimitConfig, now: float) -> deque:
        cutoff = now - config.time_window
        requests = self._requests[identifier]
        while requests and requests[0] <= cutoff:
            requests.popleft()
        return requests

    def is_allowed(self, identifier: str, config: RateLimitConfig) -> bool:
        """
        Check if a request is allowed for the given identifier and record it.

        Args:
            identifier: Provider name (e.g., 'coingecko')
            config: Rate limit configuration

        Returns:
            True if request is allowed, False if rate limited
        """
        with self._lock:
            now = self._clock()

            blocked_until = self._blocked.get(identifier)
            if blocked_until is not None:
                if now < blocked_until:
                    return False
                del self._blocked[identifier]

            requests = self._prune(identifier, config, now)
            if len(requests) >= config.max_requests:
                return False

            requests.append(now)
            return True

    def block(self, identifier: str, seconds: float) -> None:
        """
        Refuse all requests for an identifier for the given number of seconds.

        Args:
            identifier: Provider name
            seconds: Block duration (e.g., from a Retry-After header)
        """
        if seconds <= 0:
            return
        with self._lock:
            until = self._clock() + seconds
            self._blocked[identifier] = max(until, self._blocked.get(identifier, 0.0))

    def get_remaining_requests(self, identifier: str, config: RateLimitConfig) -> int:
        """
        Get remaining requests available for an identifier within the time window.

        Args:
            identifier: Provider name
            config: Rate limit configuration

        Returns:
            Number of remaining requests (0 or positive)
        """
        with self._lock:
            now = self._clock()
            if identifier in self._blocked and now < self._blocked[identifier]:
                return 0
            requests = self._prune(identifier, config, now)
            return max(0, config.max_requests - len(requests))

    def get_retry_after(self, identifier: str, config: RateLimitConfig) -> Optional[float]:
        """
        Seconds until the next request for an identifier would be allowed.

        Returns:
            Seconds to wait, or None if a request is allowed right now
        """
        with self._lock:
            now = self._clock()
            blocked_until = self._blocked.get(identifier)
            if blocked_until is not None and now < blocked_until:
                return blocked_until - now
            requests = self._prune(identifier, config, now)
            if len(requests) < config.max_requests:
                return None
            return requests[0] + config.time_window - now

    def reset(self) -> None:
        with self._lock:
            self._requests.clear()
            self._blocked.clear()


# Global rate limiter instance shared by all providers
rate_limiter = RateLimiter()
