# src/btcfolio/application/valuation_service.py
"""
Portfolio Valuation Service - Facade for Request Handlers

This module is the one object request handlers talk to. It reads the ledger's
validity key, serves the summary through the summary cache, exposes the
current BTC price, and applies currency preference changes. A summary that
cannot be computed degrades to an empty summary; only an unknown conversion
rate (a configuration problem) reaches the caller.

Files that USE this module:
- btcfolio.app (composition root builds the service)
- btcfolio.application.health (summary freshness)
- tests.test_valuation_service (unit tests)

Files that this module USES:
- btcfolio.application.ledger (Ledger protocol, LedgerEvent)
- btcfolio.application.rate_cache (current price)
- btcfolio.application.currency_converter (supported currencies)
- btcfolio.application.summary_cache (cached summary)
- btcfolio.application.valuation (calculate_summary)
- btcfolio.adapters.persistence.preferences_store (currency preferences)
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Tuple

from btcfolio.adapters.persistence.preferences_store import PreferencesStore
from btcfolio.application.currency_converter import CurrencyConverter
from btcfolio.application.ledger import Ledger, LedgerEvent
from btcfolio.application.rate_cache import RateCache
from btcfolio.application.summary_cache import SummaryCache
from btcfolio.application.valuation import calculate_summary
from btcfolio.domain.errors import ConversionRateUnknown
from btcfolio.domain.models import CurrencyPreferences, PortfolioSummary
from btcfolio.shared.validators import normalize_currency_code

if TYPE_CHECKING:
    from btcfolio.application.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


class PortfolioValuationService:
    """Facade over the rate cache, the summary cache and the ledger."""

    def __init__(
        self,
        ledger: Ledger,
        rate_cache: RateCache,
        converter: CurrencyConverter,
        summary_cache: SummaryCache,
        preferences_store: PreferencesStore,
        scheduler: Optional[RefreshScheduler] = None,
    ):
        self.ledger = ledger
        self.rate_cache = rate_cache
        self.converter = converter
        self.summary_cache = summary_cache
        self.preferences_store = preferences_store
        self.scheduler = scheduler

    def attach_scheduler(self, scheduler: RefreshScheduler) -> None:
        self.scheduler = scheduler

    @property
    def preferences(self) -> CurrencyPreferences:
        return self.preferences_store.get()

    def ledger_info(self) -> Tuple[int, Optional[datetime]]:
        """Current validity key of the ledger: (count, latest timestamp)."""
        return self.ledger.count(), self.ledger.latest_timestamp()

    def compute_summary(self) -> PortfolioSummary:
        """Compute a fresh summary from the current ledger snapshot."""
        return calculate_summary(
            self.ledger.snapshot(),
            self.rate_cache,
            self.converter,
            self.preferences_store.get(),
        )

    def get_summary(self, force_fresh: bool = False) -> PortfolioSummary:
        """
        Get the portfolio summary, from cache when it is still valid.

        Args:
            force_fresh: Recompute even if the cached summary is valid

        Returns:
            PortfolioSummary, or PortfolioSummary.empty() when the computation fails

        Raises:
            ConversionRateUnknown: A configured currency cannot be converted
        """
        ledger_count, latest = self.ledger_info()
        try:
            return self.summary_cache.get_summary(self.compute_summary, force_fresh, ledger_count, latest)
        except ConversionRateUnknown:
            raise
        except Exception as e:
            logger.error("Unable to compute portfolio summary, serving empty summary: %s", e, exc_info=True)
            prefs = self.preferences_store.get()
            return PortfolioSummary.empty(
                prefs.main_currency, prefs.secondary_currency, computed_at=datetime.now(timezone.utc)
            )

    def get_current_price(self, currency: str) -> float:
        """Price of 1 BTC in the given currency from the rate cache."""
        return self.rate_cache.get_current_price(normalize_currency_code(currency))

    def invalidate(self) -> None:
        """Invalidate the summary and schedule an out-of-band recompute."""
        self.summary_cache.invalidate_cache()
        if self.scheduler is not None:
            self.scheduler.trigger_summary_recompute()

    def clear_cache(self) -> None:
        self.summary_cache.clear_cache()

    def on_ledger_changed(self, event: LedgerEvent) -> None:
        """Ledger subscription callback."""
        logger.debug("Ledger %s (%d transactions), invalidating summary",
                     event.action, len(event.transaction_ids))
        self.invalidate()

    def update_currency_preferences(self, main: Optional[str] = None,
                                    secondary: Optional[str] = None) -> CurrencyPreferences:
        """
        Change the main and/or secondary currency.

        The summary is invalidated before this returns; rates and prices are
        refreshed in the background.

        Args:
            main: New main currency (None keeps the current one)
            secondary: New secondary currency (None keeps the current one)

        Returns:
            The preferences in effect afterwards

        Raises:
            ValueError: A currency is not supported
        """
        current = self.preferences_store.get()
        new_main = normalize_currency_code(main) if main else current.main_currency
        new_secondary = normalize_currency_code(secondary) if secondary else current.secondary_currency

        for code in (new_main, new_secondary):
            if not self.converter.is_supported(code):
                raise ValueError(
                    f"Unsupported currency: {code!r}. Supported: {', '.join(self.converter.supported_currencies)}"
                )

        updated = CurrencyPreferences(main_currency=new_main, secondary_currency=new_secondary)
        if updated == current:
            logger.debug("Currency preferences unchanged (%s/%s)", new_main, new_secondary)
            return current

        self.preferences_store.set(updated)
        self.summary_cache.invalidate_cache()
        logger.info("Currency preferences changed from %s/%s to %s/%s",
                    current.main_currency, current.secondary_currency, new_main, new_secondary)
        if self.scheduler is not None:
            self.scheduler.trigger_rate_refresh()
        return updated
