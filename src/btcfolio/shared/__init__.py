# src/btcfolio/shared/__init__.py
"""
Shared Utilities - Cross-cutting Concerns

This package contains shared utilities used across all layers:
- Validation
- Rate limiting
- Logging configuration
"""

from btcfolio.shared.validators import (
    normalize_currency_code,
    parse_currency_list,
    validate_currency_code,
    validate_http_url,
)
from btcfolio.shared.rate_limiter import RateLimitConfig, RateLimiter, rate_limiter

__all__ = [
    "validate_currency_code",
    "normalize_currency_code",
    "parse_currency_list",
    "validate_http_url",
    "RateLimitConfig",
    "RateLimiter",
    "rate_limiter",
]
