# src/btcfolio/adapters/__init__.py
"""
Adapters Layer - External Integrations

This package contains adapters for external systems:
- Market data API providers (CoinGecko, Yahoo Finance, ExchangeRate-API)
- Persistence (price snapshot and preferences files)
"""
