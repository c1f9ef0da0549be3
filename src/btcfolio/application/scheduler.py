# src/btcfolio/application/scheduler.py
"""
Refresh Scheduler - Periodic Price, Rate and Summary Jobs

This module owns the background jobs that keep the caches warm. On start it
runs one synchronous pass (rates, prices, summary) so the first reader finds
data, then registers three repeating jobs with their own cadences. One-shot
jobs handle out-of-band work: a summary recompute after invalidation or a new
price, and a full refresh after a currency preference change.

Every job is wrapped so an exception is logged with the job name and never
stops the scheduler or the other jobs.

Files that USE this module:
- btcfolio.app (builds, starts and stops the scheduler)
- btcfolio.application.valuation_service (one-shot triggers)
- tests.test_scheduler (unit tests)

Files that this module USES:
- btcfolio.application.rate_cache (price and rate refreshes)
- btcfolio.application.currency_converter (initial rate load)
- btcfolio.application.summary_cache (summary recomputes)
- btcfolio.config (refresh cadences)
- apscheduler (background scheduler with interval and date triggers)
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from btcfolio.application.currency_converter import CurrencyConverter
from btcfolio.application.rate_cache import RateCache
from btcfolio.application.summary_cache import SUMMARY_JOB_ID, ComputeFn, LedgerInfoFn, SummaryCache
from btcfolio.config import settings

logger = logging.getLogger(__name__)

PRICE_JOB_ID = "price_refresh"
RATES_JOB_ID = "rates_refresh"


def guarded(name: str, fn: Callable[[], object]) -> Callable[[], None]:
    """Wrap a job body so failures are logged instead of escaping into the scheduler."""
    def job() -> None:
        try:
            fn()
        except Exception as e:
            logger.error("Job %s failed: %s", name, e, exc_info=True)
    job.__name__ = name
    return job


class RefreshScheduler:
    """Starts, triggers and stops the cache refresh jobs."""

    def __init__(
        self,
        rate_cache: RateCache,
        converter: CurrencyConverter,
        summary_cache: SummaryCache,
        compute_fn: ComputeFn,
        ledger_info_fn: LedgerInfoFn,
        scheduler: Optional[BaseScheduler] = None,
        price_interval: Optional[timedelta] = None,
        rates_interval: Optional[timedelta] = None,
        summary_interval: Optional[timedelta] = None,
    ):
        """
        Args:
            rate_cache: Cache refreshed by the price and rates jobs
            converter: Used for the initial rate load
            summary_cache: Cache recomputed by the summary job
            compute_fn: Computes a fresh summary
            ledger_info_fn: Returns (count, latest timestamp) of the ledger
            scheduler: APScheduler instance (defaults to a UTC BackgroundScheduler)
            price_interval: Defaults to PRICE_REFRESH_MINUTES
            rates_interval: Defaults to RATES_REFRESH_MINUTES
            summary_interval: Defaults to SUMMARY_REFRESH_MINUTES
        """
        self.rate_cache = rate_cache
        self.converter = converter
        self.summary_cache = summary_cache
        self.compute_fn = compute_fn
        self.ledger_info_fn = ledger_info_fn
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.price_interval = price_interval or timedelta(minutes=settings.price_refresh_minutes)
        self.rates_interval = rates_interval or timedelta(minutes=settings.rates_refresh_minutes)
        self.summary_interval = summary_interval or timedelta(minutes=settings.summary_refresh_minutes)
        self._jobs: Dict[str, Job] = {}
        self._started = False

    # --- job bodies ---

    def recompute_summary(self, force: bool = False) -> None:
        if force:
            count, latest = self.ledger_info_fn()
            self.summary_cache.get_summary(self.compute_fn, True, count, latest)
            logger.info("Summary recomputed (%d transactions)", count)
        else:
            self.summary_cache.refresh_if_stale(self.compute_fn, self.ledger_info_fn)

    def refresh_prices(self) -> None:
        result = self.rate_cache.refresh_prices()
        if result.snapshot is not None:
            self.trigger_summary_recompute(force=True)

    def refresh_rates(self) -> None:
        result = self.rate_cache.refresh_rates()
        if result.table is not None:
            self.trigger_summary_recompute(force=True)

    def refresh_all(self) -> None:
        self.rate_cache.refresh()
        self.recompute_summary(force=True)

    # --- lifecycle ---

    def initial_pass(self) -> None:
        """Populate rates, prices and the summary before any job is scheduled."""
        logger.info("Running initial cache population")
        guarded("initial_rates", self.converter.ensure_rates_loaded)()
        guarded("initial_prices", self.rate_cache.refresh_prices)()
        guarded("initial_summary", lambda: self.recompute_summary(force=True))()

    def _add_repeating(self, job_id: str, fn: Callable[[], object], interval: timedelta) -> Job:
        job = self._scheduler.add_job(
            guarded(job_id, fn),
            "interval",
            seconds=interval.total_seconds(),
            id=job_id,
            name=job_id,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Scheduled %s every %s", job_id, interval)
        return job

    def start(self) -> None:
        """Run the initial pass, register the repeating jobs and start the scheduler."""
        if self._started:
            logger.warning("Refresh scheduler already started")
            return

        self.initial_pass()

        self._jobs[PRICE_JOB_ID] = self._add_repeating(PRICE_JOB_ID, self.refresh_prices, self.price_interval)
        self._jobs[RATES_JOB_ID] = self._add_repeating(RATES_JOB_ID, self.refresh_rates, self.rates_interval)
        summary_job = self.summary_cache.schedule_updates(
            self.compute_fn, self.ledger_info_fn, self._scheduler, self.summary_interval
        )
        self._jobs[SUMMARY_JOB_ID] = summary_job

        if not self._scheduler.running:
            self._scheduler.start()
        self._started = True
        logger.info("Refresh scheduler started with jobs: %s", ", ".join(self._jobs))

    def stop(self, wait: bool = True) -> None:
        """Cancel all jobs and shut the scheduler down."""
        for job_id in list(self._jobs):
            self.cancel(job_id)
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._started = False
        logger.info("Refresh scheduler stopped")

    def cancel(self, job_id: str) -> bool:
        """Remove one repeating job; returns False if it was not registered."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False
        try:
            job.remove()
        except LookupError:
            # already gone from the job store
            pass
        return True

    def jobs(self) -> List[str]:
        return [job.name for job in self._scheduler.get_jobs()]

    # --- one-shot triggers ---

    def _run_once(self, name: str, fn: Callable[[], object]) -> Optional[Job]:
        if not self._started:
            logger.debug("Scheduler not started, skipping one-shot %s", name)
            return None
        return self._scheduler.add_job(
            guarded(name, fn),
            "date",
            run_date=datetime.now(timezone.utc),
            name=name,
            misfire_grace_time=None,
        )

    def trigger_summary_recompute(self, force: bool = False) -> Optional[Job]:
        """Schedule an immediate summary recompute on a worker thread."""
        return self._run_once("summary_recompute", lambda: self.recompute_summary(force=force))

    def trigger_rate_refresh(self) -> Optional[Job]:
        """Schedule an immediate price and rate refresh followed by a summary recompute."""
        return self._run_once("rates_and_prices_refresh", self.refresh_all)
