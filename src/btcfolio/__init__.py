# src/btcfolio/__init__.py
"""
btcfolio - Bitcoin Portfolio Price and Valuation Cache

Keeps a multi-currency BTC price, fiat cross-rates and a derived portfolio
summary consistent and cheap to read while the upstream market-data feeds
are slow, rate-limited and unreliable.
"""

__version__ = "1.0.0"
