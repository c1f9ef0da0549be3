# src/btcfolio/application/rate_cache.py
"""
Rate Cache - Latest BTC Price and Fiat Rate Table

This module keeps the most recent BTC price snapshot and fiat rate table in
memory so reads never wait on the network. Prices and rates are refreshed
independently by the scheduler; each half only replaces its own data on
success, and both are published together as one immutable state object so a
reader always sees a single (snapshot, table) pair.

When no price has ever been fetched the cache falls back to the last price
recorded in the ledger, then to zero. The ledger-derived snapshot is built
when the ledger or the rate table changes, never on a read. The last fetched
snapshot is written to disk so a restart starts from a real price.

Files that USE this module:
- btcfolio.application.currency_converter (reads the current table, refreshes rates)
- btcfolio.application.valuation (current price and rate table)
- btcfolio.application.valuation_service (get_current_price)
- btcfolio.application.scheduler (refresh jobs)
- btcfolio.application.health (freshness checks)
- tests.test_rate_cache (unit tests)

Files that this module USES:
- btcfolio.application.market_data (MarketDataSource for upstream fetches)
- btcfolio.application.currency_converter (lookup_rate)
- btcfolio.adapters.persistence.file_store (cold-start snapshot on disk)
- btcfolio.domain.models (PriceSnapshot, RateTable)
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Mapping, Optional, Tuple

from btcfolio.adapters.persistence.file_store import load_snapshot, save_snapshot
from btcfolio.application.currency_converter import lookup_rate
from btcfolio.application.market_data import MarketDataSource
from btcfolio.domain.errors import ConversionRateUnknown, FetchError
from btcfolio.domain.models import PriceSnapshot, RateTable, SOURCE_LEDGER

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheState:
    """Published cache state; replaced as a whole, never mutated."""
    snapshot: Optional[PriceSnapshot] = None
    table: Optional[RateTable] = None
    price_refreshed_at: Optional[datetime] = None
    rates_refreshed_at: Optional[datetime] = None
    # ledger-derived (or zero) snapshot served while no price was fetched
    fallback: Optional[PriceSnapshot] = None


@dataclass(frozen=True)
class RefreshResult:
    """Outcome of one refresh: what was published and what failed."""
    snapshot: Optional[PriceSnapshot] = None
    table: Optional[RateTable] = None
    errors: Tuple[FetchError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def merge(self, other: RefreshResult) -> RefreshResult:
        return RefreshResult(
            snapshot=self.snapshot or other.snapshot,
            table=self.table or other.table,
            errors=self.errors + other.errors,
        )


class RateCache:
    """In-memory BTC price and fiat rate cache with a fallback chain."""

    def __init__(
        self,
        source: MarketDataSource,
        ledger_prices: Optional[Callable[[], Mapping[str, float]]] = None,
        cache_file: Optional[Path] = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize the cache and load the cold-start snapshot if one exists.

        Args:
            source: Upstream market data
            ledger_prices: Returns the BTC prices recorded on the latest ledger
                transaction, used while no snapshot exists
            cache_file: Snapshot file (None disables persistence)
            clock: Returns the current UTC time
        """
        self.source = source
        self.ledger_prices = ledger_prices
        self.cache_file = cache_file
        self._clock = clock
        self._state = CacheState()
        self._state_lock = threading.Lock()
        self._price_refresh_lock = threading.Lock()
        self._rates_refresh_lock = threading.Lock()

        if cache_file is not None:
            snapshot = load_snapshot(cache_file)
            if snapshot is not None:
                self._state = CacheState(snapshot=snapshot, price_refreshed_at=snapshot.captured_at)
                logger.info("Loaded cached BTC price from %s (captured %s): %s %s / %s %s",
                            cache_file, snapshot.captured_at.isoformat(),
                            snapshot.price_a, snapshot.currency_a, snapshot.price_b, snapshot.currency_b)
        self.rebuild_fallback()

    # --- reads ---

    def current_state(self) -> CacheState:
        """The published state; callers use it to read price and rates from one cycle."""
        return self._state

    def rate_table(self) -> Optional[RateTable]:
        return self._state.table

    def has_rates(self) -> bool:
        return self._state.table is not None

    def current_snapshot(self, state: Optional[CacheState] = None) -> PriceSnapshot:
        """
        Current price snapshot, following the fallback chain when none was fetched.

        Returns:
            The fetched (or disk) snapshot, else a ledger-derived one, else zeros
        """
        state = state or self._state
        if state.snapshot is not None:
            return state.snapshot
        if state.fallback is not None:
            return state.fallback
        return PriceSnapshot.zero(self.source.currency_a, self.source.currency_b, self._clock())

    def _build_fallback(self, table: Optional[RateTable]) -> PriceSnapshot:
        currency_a, currency_b = self.source.currency_a, self.source.currency_b
        now = self._clock()

        prices = {}
        if self.ledger_prices is not None:
            try:
                prices = dict(self.ledger_prices())
            except Exception as e:
                logger.error("Unable to read ledger prices for fallback: %s", e)

        price_a = self._recorded_price(prices, currency_a, table)
        price_b = self._recorded_price(prices, currency_b, table)
        if not price_a and not price_b:
            return PriceSnapshot.zero(currency_a, currency_b, now)
        # a side the ledger cannot provide stays at zero
        return PriceSnapshot(
            price_a=price_a or 0.0,
            price_b=price_b or 0.0,
            currency_a=currency_a,
            currency_b=currency_b,
            captured_at=now,
            source=SOURCE_LEDGER,
        )

    def rebuild_fallback(self) -> None:
        """
        Recompute the ledger-derived snapshot and publish it.

        Reads never touch the ledger; this runs on construction, after rate
        refreshes, failed price refreshes, clears and ledger changes. Nothing is
        rebuilt once a real snapshot exists.
        """
        state = self._state
        if state.snapshot is not None:
            return
        fallback = self._build_fallback(state.table)
        with self._state_lock:
            if self._state.snapshot is None:
                self._state = replace(self._state, fallback=fallback)
        logger.debug("Fallback BTC price rebuilt from %s: %s %s / %s %s", fallback.source,
                     fallback.price_a, fallback.currency_a, fallback.price_b, fallback.currency_b)

    def on_ledger_changed(self, event=None) -> None:
        """Ledger subscription callback: the latest recorded price may have changed."""
        self.rebuild_fallback()

    @staticmethod
    def _recorded_price(prices: Mapping[str, float], currency: str,
                        table: Optional[RateTable]) -> Optional[float]:
        if prices.get(currency):
            return prices[currency]
        if table is None:
            return None
        for code, price in prices.items():
            rate = lookup_rate(table, code, currency)
            if rate is not None:
                return price * rate
        return None

    def get_current_price(self, currency: str, state: Optional[CacheState] = None) -> float:
        """
        Price of 1 BTC in the given currency, without network I/O.

        Args:
            currency: Currency code
            state: State to read (defaults to the published state)

        Returns:
            The price; 0.0 when the currency needs conversion and no rates are loaded

        Raises:
            ConversionRateUnknown: The rate table has no route to the currency
        """
        state = state or self._state
        snapshot = self.current_snapshot(state)

        price = snapshot.price_in(currency)
        if price is not None:
            return price

        if state.table is None:
            logger.warning("No exchange rates loaded, BTC price in %s unavailable", currency)
            return 0.0

        priced = [(reference, reference_price)
                  for reference, reference_price in ((snapshot.currency_a, snapshot.price_a),
                                                     (snapshot.currency_b, snapshot.price_b))
                  if reference_price > 0]
        if not priced:
            return 0.0
        for reference, reference_price in priced:
            rate = lookup_rate(state.table, reference, currency)
            if rate is not None:
                return reference_price * rate
        raise ConversionRateUnknown(priced[0][0], currency)

    def get_age(self) -> Optional[timedelta]:
        """Time since the last successful price refresh, None if none ever succeeded."""
        refreshed_at = self._state.price_refreshed_at
        if refreshed_at is None:
            return None
        return self._clock() - refreshed_at

    def get_rates_age(self) -> Optional[timedelta]:
        refreshed_at = self._state.rates_refreshed_at
        if refreshed_at is None:
            return None
        return self._clock() - refreshed_at

    # --- writes ---

    def _publish(self, **changes) -> None:
        with self._state_lock:
            self._state = replace(self._state, **changes)

    def refresh_prices(self) -> RefreshResult:
        """
        Fetch a new price snapshot and publish it on success.

        A failure keeps the previous snapshot untouched.
        """
        if not self._price_refresh_lock.acquire(blocking=False):
            logger.info("Price refresh already running, skipping")
            return RefreshResult()
        try:
            try:
                snapshot = self.source.fetch_prices()
            except FetchError as e:
                previous = self._state.snapshot
                logger.warning("BTC price refresh failed (%s); keeping %s", e,
                               f"price from {previous.captured_at.isoformat()}" if previous else "fallback")
                if previous is None:
                    self.rebuild_fallback()
                return RefreshResult(errors=(e,))

            self._publish(snapshot=snapshot, price_refreshed_at=self._clock())
            logger.info("BTC price updated from %s: %s %s / %s %s", snapshot.provider,
                        snapshot.price_a, snapshot.currency_a, snapshot.price_b, snapshot.currency_b)
            self._persist(snapshot)
            return RefreshResult(snapshot=snapshot)
        finally:
            self._price_refresh_lock.release()

    def refresh_rates(self) -> RefreshResult:
        """
        Fetch a new rate table and publish it on success.

        A failure keeps the previous table untouched.
        """
        if not self._rates_refresh_lock.acquire(blocking=False):
            logger.info("Rates refresh already running, skipping")
            return RefreshResult()
        try:
            try:
                table = self.source.fetch_rates()
            except FetchError as e:
                logger.warning("Exchange rate refresh failed (%s); keeping %s", e,
                               "previous table" if self.has_rates() else "no table")
                return RefreshResult(errors=(e,))

            self._publish(table=table, rates_refreshed_at=self._clock())
            logger.info("Exchange rates updated from %s: %d pairs", table.provider, len(table.rates))
            # a new table may convert a ledger price the fallback could not
            self.rebuild_fallback()
            return RefreshResult(table=table)
        finally:
            self._rates_refresh_lock.release()

    def refresh(self) -> RefreshResult:
        """Refresh prices and rates; each half is applied only on its own success."""
        return self.refresh_prices().merge(self.refresh_rates())

    def clear(self) -> None:
        """Drop the cached price and rates; reads fall back until the next refresh."""
        with self._state_lock:
            self._state = CacheState()
        logger.info("Rate cache cleared")
        self.rebuild_fallback()

    def _persist(self, snapshot: PriceSnapshot) -> None:
        if self.cache_file is None:
            return
        try:
            save_snapshot(snapshot, self.cache_file)
        except RuntimeError as e:
            logger.error("Unable to persist BTC price: %s", e)
