# tests/conftest.py
"""
Shared Test Fixtures - Fake Clock, Market Data and Ledger Helpers

Files that USE this module:
- pytest (loads fixtures for every test module)

Files that this module USES:
- btcfolio.application.market_data (MarketDataSource spec for mocks)
- btcfolio.domain.models (snapshots, tables and transactions for test data)
- btcfolio.shared.rate_limiter (global limiter reset between tests)
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from unittest.mock import Mock

import pytest

from btcfolio.application.market_data import MarketDataSource
from btcfolio.domain.models import (
    PriceSnapshot,
    RateTable,
    SOURCE_FEED,
    Transaction,
    TransactionValues,
)
from btcfolio.shared.rate_limiter import rate_limiter

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_snapshot(price_a: float = 50000.0, price_b: float = 55000.0,
                  captured_at: datetime = T0, provider: str = "coingecko") -> PriceSnapshot:
    return PriceSnapshot(
        price_a=price_a,
        price_b=price_b,
        currency_a="EUR",
        currency_b="USD",
        captured_at=captured_at,
        source=SOURCE_FEED,
        provider=provider,
    )


def make_table(rows: Optional[Dict[str, Dict[str, float]]] = None,
               captured_at: datetime = T0) -> RateTable:
    if rows is None:
        rows = {
            "EUR": {"USD": 1.1, "GBP": 0.85, "PLN": 4.3, "JPY": 160.0},
            "USD": {"EUR": 1 / 1.1, "GBP": 0.77, "PLN": 3.9, "JPY": 145.0},
        }
    return RateTable.from_rows(rows, captured_at=captured_at, provider="exchangerate")


def make_tx(tx_id: str, tx_type: str = "buy", amount: float = 0.1, price: float = 20000.0,
            currency: str = "EUR", date: datetime = T0,
            base: Optional[Dict[str, TransactionValues]] = None) -> Transaction:
    return Transaction(
        id=tx_id,
        type=tx_type,
        amount=amount,
        date=date,
        original_currency=currency,
        original=TransactionValues(price=price, cost=price * amount, fee=0.0),
        base=base or {},
    )


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source():
    """MarketDataSource mock quoting EUR/USD."""
    mock_source = Mock(spec=MarketDataSource)
    mock_source.currency_a = "EUR"
    mock_source.currency_b = "USD"
    mock_source.fetch_prices.return_value = make_snapshot()
    mock_source.fetch_rates.return_value = make_table()
    return mock_source
