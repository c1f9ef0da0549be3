# src/btcfolio/shared/validators.py
"""
Input Validation Utilities - Configuration and Currency Validation

This module provides validation functions for configuration values and
user-supplied currency preferences, so that invalid codes or URLs are
rejected before they reach the caches or the upstream providers.

Files that USE this module:
- btcfolio.config.settings (uses validation functions in Settings field validators)
- btcfolio.application.valuation_service (validates currency preference changes)

Files that this module USES:
- None (pure utility functions)
"""
import re
from typing import Iterable, List, Optional, Union
from urllib.parse import urlparse


def validate_currency_code(code: str) -> bool:
    """
    Validate an ISO 4217 style currency code.

    Args:
        code: Currency code to validate (e.g., 'EUR')

    Returns:
        True if valid, False otherwise
    """
    if not code:
        return False
    return bool(re.match(r'^[A-Z]{3}$', code))


def normalize_currency_code(code: Optional[str]) -> str:
    """
    Normalize a currency code to upper case without surrounding whitespace.

    Args:
        code: Raw currency code (e.g., ' eur ')

    Returns:
        Normalized code (e.g., 'EUR'), or an empty string for None
    """
    if code is None:
        return ""
    return str(code).strip().upper()


def parse_currency_list(value: Union[Iterable[str], str]) -> List[str]:
    """
    Parse a comma separated list (or an iterable) of currency codes.

    Duplicates are dropped while keeping the first occurrence order.

    Args:
        value: 'EUR,USD,GBP' or ['eur', 'usd']

    Returns:
        List of normalized currency codes

    Raises:
        ValueError: If any code is not a valid currency code
    """
    if isinstance(value, str):
        raw = value.split(",")
    else:
        raw = list(value)

    codes: List[str] = []
    for item in raw:
        code = normalize_currency_code(item)
        if not code:
            continue
        if not validate_currency_code(code):
            raise ValueError(f"Invalid currency code: {item!r}")
        if code not in codes:
            codes.append(code)
    return codes


def validate_http_url(url: str) -> bool:
    """
    Validate that a string is an absolute http(s) URL.

    Args:
        url: URL to validate

    Returns:
        True if valid, False otherwise
    """
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
