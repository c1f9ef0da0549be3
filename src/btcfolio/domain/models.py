# src/btcfolio/domain/models.py
"""
Domain Models - Pure Business Objects

This module contains domain models representing core business concepts:
- BTC price snapshots and fiat rate tables
- Cache entries keyed by the ledger's validity key
- Ledger transactions (read-only view)
- Portfolio valuation summaries

Files that USE this module:
- btcfolio.application.* (all services use domain models)
- btcfolio.adapters.* (adapters create and use domain models)
- tests.* (tests use domain models for test data)

Files that this module USES:
- None (pure domain layer, no external dependencies)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from dataclasses import dataclass, field, replace  # Data classes and copy-with-changes
from datetime import datetime, timezone  # Date/time utilities for timestamps
from types import MappingProxyType  # Read-only view over the rate mapping
from typing import Any, Dict, Generic, Mapping, Optional, Tuple, TypeVar

T = TypeVar("T")

ValidityKey = Tuple[int, Optional[datetime]]

# Snapshot sources, best first
SOURCE_FEED = "feed"
SOURCE_DISK = "disk"
SOURCE_LEDGER = "ledger"
SOURCE_NONE = "none"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO timestamp (accepting a trailing 'Z') into an aware UTC datetime.

    Naive datetimes are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class PriceSnapshot:
    """
    Price of 1 BTC in the two reference currencies at a point in time.

    Attributes:
        price_a: BTC price in reference currency A (EUR by default)
        price_b: BTC price in reference currency B (USD by default)
        currency_a: Code of reference currency A
        currency_b: Code of reference currency B
        captured_at: When the upstream data was captured (UTC)
        source: "feed", "disk", "ledger" or "none"
        provider: Name of the provider that served the prices
    """
    price_a: float
    price_b: float
    currency_a: str
    currency_b: str
    captured_at: datetime
    source: str = SOURCE_FEED
    provider: Optional[str] = None

    @property
    def reliable(self) -> bool:
        """True when the prices came from a real feed response."""
        return self.source in (SOURCE_FEED, SOURCE_DISK)

    def price_in(self, currency: str) -> Optional[float]:
        """Price in one of the reference currencies, None for any other currency."""
        if currency == self.currency_a:
            return self.price_a
        if currency == self.currency_b:
            return self.price_b
        return None

    @classmethod
    def zero(cls, currency_a: str, currency_b: str, captured_at: datetime) -> PriceSnapshot:
        """Last-resort snapshot used when neither the feed nor the ledger has a price."""
        return cls(
            price_a=0.0,
            price_b=0.0,
            currency_a=currency_a,
            currency_b=currency_b,
            captured_at=captured_at,
            source=SOURCE_NONE,
        )

    def to_json(self) -> dict:
        return {
            "price_a": self.price_a,
            "price_b": self.price_b,
            "currency_a": self.currency_a,
            "currency_b": self.currency_b,
            "captured_at": self.captured_at.isoformat(),
            "source": self.source,
            "provider": self.provider,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> PriceSnapshot:
        captured_at = parse_timestamp(data.get("captured_at")) or datetime.now(timezone.utc)
        return cls(
            price_a=float(data["price_a"]),
            price_b=float(data["price_b"]),
            currency_a=str(data["currency_a"]),
            currency_b=str(data["currency_b"]),
            captured_at=captured_at,
            source=str(data.get("source") or SOURCE_FEED),
            provider=data.get("provider"),
        )


@dataclass(frozen=True)
class RateTable:
    """
    Fiat cross-rates captured in one refresh cycle.

    Attributes:
        rates: (base, quote) -> how many `quote` units one `base` unit buys
        captured_at: When the rates were fetched (UTC)
        pivots: Currencies for which a full row of rates was fetched
        provider: Name of the provider that served the rates
    """
    rates: Mapping[Tuple[str, str], float]
    captured_at: datetime
    pivots: Tuple[str, ...] = ()
    provider: Optional[str] = None

    @classmethod
    def from_rows(cls, rows: Mapping[str, Mapping[str, float]], captured_at: datetime,
                  provider: Optional[str] = None) -> RateTable:
        """
        Build a table from per-base rows, e.g. {"EUR": {"USD": 1.1, "PLN": 4.3}}.

        Non-positive rates are dropped.
        """
        rates: Dict[Tuple[str, str], float] = {}
        for base, row in rows.items():
            for quote, rate in row.items():
                if quote == base or rate is None:
                    continue
                value = float(rate)
                if value > 0:
                    rates[(base, quote)] = value
        return cls(
            rates=MappingProxyType(rates),
            captured_at=captured_at,
            pivots=tuple(rows.keys()),
            provider=provider,
        )

    def lookup(self, base: str, quote: str) -> Optional[float]:
        """Direct rate for base→quote, or None when the table has no such entry."""
        return self.rates.get((base, quote))

    def currencies(self) -> set:
        """Every currency that appears in the table."""
        codes = set()
        for base, quote in self.rates:
            codes.add(base)
            codes.add(quote)
        return codes

    def as_rows(self) -> Dict[str, Dict[str, float]]:
        """Rates regrouped per base currency (the shape HTTP callers expose)."""
        rows: Dict[str, Dict[str, float]] = {}
        for (base, quote), rate in self.rates.items():
            rows.setdefault(base, {})[quote] = rate
        return rows


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    A cached value tagged with the ledger state it was computed from.

    Attributes:
        value: The cached value
        computed_at: When the value was computed (UTC)
        validity_key: (ledger count, ledger latest timestamp) at compute time
        invalidated: Set by explicit invalidation; forces the next read to recompute
    """
    value: T
    computed_at: datetime
    validity_key: ValidityKey
    invalidated: bool = False

    def matches(self, validity_key: ValidityKey) -> bool:
        """True when the entry is a cache hit for the given ledger state."""
        return not self.invalidated and self.validity_key == validity_key

    def mark_invalidated(self) -> CacheEntry[T]:
        return replace(self, invalidated=True)


@dataclass(frozen=True)
class TransactionValues:
    """Price, cost and fee of a transaction expressed in one currency."""
    price: float = 0.0
    cost: float = 0.0
    fee: float = 0.0
    rate: float = 1.0

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> TransactionValues:
        data = data or {}
        return cls(
            price=float(data.get("price") or 0),
            cost=float(data.get("cost") or 0),
            fee=float(data.get("fee") or 0),
            rate=float(data.get("rate") or 1.0),
        )


@dataclass(frozen=True)
class ConvertedValues:
    """Result of converting a {price, cost, fee} bundle with a single rate."""
    price: float
    cost: float
    fee: float
    rate: float


@dataclass(frozen=True)
class Transaction:
    """
    Ledger transaction, as far as valuation needs it.

    Attributes:
        id: Ledger identifier
        type: "buy" or "sell"
        amount: BTC amount
        date: Execution time (UTC)
        original_currency: Currency the transaction was entered in
        original: Values in the original currency
        base: Values recorded at entry time per currency code (e.g. EUR, USD)
    """
    id: str
    type: str
    amount: float
    date: datetime
    original_currency: str = "EUR"
    original: TransactionValues = field(default_factory=TransactionValues)
    base: Mapping[str, TransactionValues] = field(default_factory=dict)

    @property
    def is_buy(self) -> bool:
        return self.type == "buy"

    @property
    def is_sell(self) -> bool:
        return self.type == "sell"

    def values_in(self, currency: str) -> Optional[TransactionValues]:
        """
        Values recorded for `currency`, or None when nothing was recorded.

        The original currency always has values. Base entries with a zero cost
        count as not recorded.
        """
        values = self.base.get(currency)
        if values is not None and values.cost:
            return values
        if currency == self.original_currency:
            return self.original
        return None

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> Transaction:
        """
        Build a transaction from the ledger's JSON shape.

        Accepts both the nested form ({"original": {...}, "base": {"eur": {...}}})
        and the flat legacy form ({"price": ..., "cost": ..., "currency": ...}).
        """
        original_raw = data.get("original") or {}
        original_currency = str(
            original_raw.get("currency") or data.get("currency") or "EUR"
        ).upper()
        original = TransactionValues(
            price=float(original_raw.get("price") or data.get("price") or 0),
            cost=float(original_raw.get("cost") or data.get("cost") or 0),
            fee=float(original_raw.get("fee") or data.get("fee") or 0),
        )
        base = {
            str(code).upper(): TransactionValues.from_json(values)
            for code, values in (data.get("base") or {}).items()
        }
        return cls(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or "buy").lower(),
            amount=float(data.get("amount") or 0),
            date=parse_timestamp(data.get("date")) or datetime.now(timezone.utc),
            original_currency=original_currency,
            original=original,
            base=base,
        )


@dataclass(frozen=True)
class CurrencyPreferences:
    """User-selected currencies for valuation."""
    main_currency: str
    secondary_currency: str


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Derived portfolio valuation in the main and secondary currencies.

    Never persisted as authoritative state; always reconstructable from the
    ledger and the current rate cache.
    """
    total_btc_held: float
    total_cost_main: float
    total_cost_secondary: float
    current_value_main: float
    current_value_secondary: float
    pnl_main: float
    pnl_secondary: float
    pnl_percentage_main: float
    pnl_percentage_secondary: float
    average_price_main: float
    average_price_secondary: float
    source_price_timestamp: Optional[datetime]
    main_currency: str = "EUR"
    secondary_currency: str = "USD"
    has_transactions: bool = False
    current_price_main: float = 0.0
    current_price_secondary: float = 0.0
    secondary_rate: Optional[float] = None
    reliable: bool = False
    computed_at: Optional[datetime] = None

    @classmethod
    def empty(cls, main_currency: str = "EUR", secondary_currency: str = "USD",
              computed_at: Optional[datetime] = None) -> PortfolioSummary:
        """Zeroed summary served when a valuation cannot be computed."""
        return cls(
            total_btc_held=0.0,
            total_cost_main=0.0,
            total_cost_secondary=0.0,
            current_value_main=0.0,
            current_value_secondary=0.0,
            pnl_main=0.0,
            pnl_secondary=0.0,
            pnl_percentage_main=0.0,
            pnl_percentage_secondary=0.0,
            average_price_main=0.0,
            average_price_secondary=0.0,
            source_price_timestamp=None,
            main_currency=main_currency,
            secondary_currency=secondary_currency,
            has_transactions=False,
            reliable=False,
            computed_at=computed_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Render the summary in the JSON shape served to clients.

        Per-currency figures are nested maps keyed by lower-case currency code.
        """
        main = self.main_currency.lower()
        secondary = self.secondary_currency.lower()

        def pair(main_value: float, secondary_value: float) -> Dict[str, float]:
            # main wins when both currencies are the same
            return {secondary: secondary_value, main: main_value}

        return {
            "hasTransactions": self.has_transactions,
            "totalBTC": self.total_btc_held,
            "mainCurrency": self.main_currency,
            "secondaryCurrency": self.secondary_currency,
            "secondaryRate": self.secondary_rate,
            "currentPrice": pair(self.current_price_main, self.current_price_secondary),
            "totalCost": pair(self.total_cost_main, self.total_cost_secondary),
            "currentValue": pair(self.current_value_main, self.current_value_secondary),
            "pnl": pair(self.pnl_main, self.pnl_secondary),
            "pnlPercentage": pair(self.pnl_percentage_main, self.pnl_percentage_secondary),
            "averagePrice": pair(self.average_price_main, self.average_price_secondary),
            "reliable": self.reliable,
            "timestamp": self.source_price_timestamp.isoformat() if self.source_price_timestamp else None,
            "computedAt": self.computed_at.isoformat() if self.computed_at else None,
        }
