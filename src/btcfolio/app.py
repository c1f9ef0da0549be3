# src/btcfolio/app.py
"""
Application Entry Point - Cache Wiring and Startup

This module is the composition root for the price-and-valuation cache. It
builds the one instance of every cache and service, subscribes the valuation
service to ledger changes, and starts and stops the refresh scheduler.

Files that USE this module:
- btcfolio console script (pyproject entry point)

Files that this module USES:
- btcfolio.shared.logging_conf (setup_logging for logging configuration)
- btcfolio.config (settings for cadences, currencies and file locations)
- btcfolio.application.* (caches, converter, scheduler, valuation service, health)
- btcfolio.adapters.persistence (preferences store)
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler

from btcfolio.adapters.persistence import PreferencesStore
from btcfolio.application.currency_converter import CurrencyConverter
from btcfolio.application.health import HealthChecker
from btcfolio.application.ledger import InMemoryLedger, Ledger, latest_recorded_prices
from btcfolio.application.market_data import MarketDataSource
from btcfolio.application.rate_cache import RateCache
from btcfolio.application.scheduler import RefreshScheduler
from btcfolio.application.summary_cache import SummaryCache
from btcfolio.application.valuation_service import PortfolioValuationService
from btcfolio.config import Settings, settings
from btcfolio.domain.models import CurrencyPreferences
from btcfolio.shared.logging_conf import setup_logging


@dataclass
class Services:
    """Everything the composition root builds; handed to whatever serves requests."""
    ledger: Ledger
    rate_cache: RateCache
    converter: CurrencyConverter
    summary_cache: SummaryCache
    valuation: PortfolioValuationService
    scheduler: RefreshScheduler
    health: HealthChecker


def build_services(
    config: Settings = settings,
    ledger: Optional[Ledger] = None,
    source: Optional[MarketDataSource] = None,
    scheduler: Optional[BaseScheduler] = None,
) -> Services:
    """
    Wire caches, converter, scheduler and valuation service.

    Args:
        config: Settings to build from
        ledger: Transaction ledger (defaults to an empty InMemoryLedger)
        source: Market data source (defaults to CoinGecko/Yahoo + ExchangeRate-API)
        scheduler: APScheduler instance (defaults to a BackgroundScheduler)

    Returns:
        Services with the scheduler not yet started
    """
    ledger = ledger if ledger is not None else InMemoryLedger()
    source = source or MarketDataSource(
        reference_currencies=config.reference_currencies,
        pivots=config.pivot_currencies,
        currencies=config.supported_currencies,
    )

    rate_cache = RateCache(
        source,
        ledger_prices=lambda: latest_recorded_prices(ledger),
        cache_file=config.price_cache_file,
    )
    converter = CurrencyConverter(rate_cache, supported=config.supported_currencies)
    max_age = (timedelta(minutes=config.summary_max_age_minutes)
               if config.summary_max_age_minutes else None)
    summary_cache = SummaryCache(max_age=max_age)
    preferences_store = PreferencesStore(
        config.preferences_file,
        default=CurrencyPreferences(config.main_currency, config.secondary_currency),
    )

    valuation = PortfolioValuationService(ledger, rate_cache, converter, summary_cache, preferences_store)
    refresh_scheduler = RefreshScheduler(
        rate_cache,
        converter,
        summary_cache,
        compute_fn=valuation.compute_summary,
        ledger_info_fn=valuation.ledger_info,
        scheduler=scheduler,
        price_interval=timedelta(minutes=config.price_refresh_minutes),
        rates_interval=timedelta(minutes=config.rates_refresh_minutes),
        summary_interval=timedelta(minutes=config.summary_refresh_minutes),
    )
    valuation.attach_scheduler(refresh_scheduler)
    ledger.subscribe(rate_cache.on_ledger_changed)
    ledger.subscribe(valuation.on_ledger_changed)

    return Services(
        ledger=ledger,
        rate_cache=rate_cache,
        converter=converter,
        summary_cache=summary_cache,
        valuation=valuation,
        scheduler=refresh_scheduler,
        health=HealthChecker(rate_cache, summary_cache),
    )


def main() -> None:
    """
    Start the cache refresh service and run until SIGINT/SIGTERM.

    This function:
    1. Sets up logging from settings
    2. Builds the caches and services
    3. Runs the initial population and starts the refresh jobs
    4. Waits for a shutdown signal and stops the scheduler
    """
    setup_logging(
        level=settings.log_level_value,
        log_file=settings.log_file,
        log_dir=settings.log_dir,
        log_stdout=settings.log_stdout,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.log_backup_count,
    )
    logger = logging.getLogger(__name__)
    logger.info("Working directory: %s", os.getcwd())
    logger.info("Reference currencies: %s, supported: %s",
                "/".join(settings.reference_currencies), ", ".join(settings.supported_currencies))

    services = build_services()

    stop_event = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    services.scheduler.start()
    summary = services.valuation.get_summary()
    logger.info("Ready: %s BTC held, value %.2f %s",
                summary.total_btc_held, summary.current_value_main, summary.main_currency)

    try:
        stop_event.wait()
    finally:
        services.scheduler.stop()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
