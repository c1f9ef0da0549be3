# src/btcfolio/application/summary_cache.py
"""
Summary Cache - Read-Through Cache of the Portfolio Summary

This module caches the last computed portfolio summary together with the
ledger validity key (transaction count, latest transaction timestamp) it was
computed for. A read is served from the cache while the key still matches,
the entry has not been invalidated and it is younger than the maximum age;
otherwise the summary is recomputed. Recomputes are serialized.

Files that USE this module:
- btcfolio.application.valuation_service (get_summary, invalidate, clear)
- btcfolio.application.scheduler (periodic and one-shot recomputes)
- btcfolio.application.health (summary freshness)
- tests.test_summary_cache (unit tests)

Files that this module USES:
- btcfolio.domain.models (CacheEntry, PortfolioSummary, ValidityKey)
- apscheduler (repeating summary job)
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from apscheduler.job import Job
from apscheduler.schedulers.base import BaseScheduler

from btcfolio.domain.models import CacheEntry, PortfolioSummary, ValidityKey

logger = logging.getLogger(__name__)

ComputeFn = Callable[[], PortfolioSummary]
LedgerInfoFn = Callable[[], Tuple[int, Optional[datetime]]]

SUMMARY_JOB_ID = "summary_refresh"


class SummaryCache:
    """Single-entry cache of the portfolio summary keyed by ledger state."""

    def __init__(self, max_age: Optional[timedelta] = timedelta(minutes=5),
                 clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        """
        Args:
            max_age: Entries older than this are recomputed (None disables the check)
            clock: Returns the current UTC time
        """
        self.max_age = max_age
        self._clock = clock
        self._entry: Optional[CacheEntry[PortfolioSummary]] = None
        # bumped on every invalidate/clear; a compute that overlaps one stores an invalidated entry
        self._generation = 0
        self._entry_lock = threading.Lock()
        self._compute_lock = threading.Lock()

    def _is_hit(self, entry: Optional[CacheEntry[PortfolioSummary]], key: ValidityKey) -> bool:
        if entry is None or not entry.matches(key):
            return False
        if self.max_age is not None and self._clock() - entry.computed_at > self.max_age:
            return False
        return True

    def get_summary(
        self,
        compute_fn: ComputeFn,
        force_fresh: bool = False,
        ledger_count: int = 0,
        ledger_latest_timestamp: Optional[datetime] = None,
    ) -> PortfolioSummary:
        """
        Return the cached summary or recompute it.

        Args:
            compute_fn: Computes a fresh summary
            force_fresh: Recompute even if the entry is valid
            ledger_count: Current number of ledger transactions
            ledger_latest_timestamp: Timestamp of the latest ledger transaction

        Returns:
            PortfolioSummary

        Raises:
            Whatever compute_fn raises; the stored entry is left unchanged
        """
        key: ValidityKey = (ledger_count, ledger_latest_timestamp)

        if not force_fresh:
            entry = self._entry
            if self._is_hit(entry, key):
                logger.debug("Summary cache hit for %s", key)
                return entry.value

        with self._compute_lock:
            if not force_fresh:
                entry = self._entry
                if self._is_hit(entry, key):
                    logger.debug("Summary recomputed by another caller, using it")
                    return entry.value

            generation = self._generation
            logger.debug("Recomputing summary for %s (forced=%s)", key, force_fresh)
            summary = compute_fn()

            with self._entry_lock:
                self._entry = CacheEntry(
                    value=summary,
                    computed_at=self._clock(),
                    validity_key=key,
                    invalidated=generation != self._generation,
                )
            return summary

    def invalidate_cache(self) -> None:
        """Mark the entry stale; the next read recomputes. Idempotent."""
        with self._entry_lock:
            self._generation += 1
            if self._entry is not None and not self._entry.invalidated:
                self._entry = self._entry.mark_invalidated()
        logger.debug("Summary cache invalidated")

    def clear_cache(self) -> None:
        with self._entry_lock:
            self._generation += 1
            self._entry = None
        logger.info("Summary cache cleared")

    def is_valid(self, ledger_count: int, ledger_latest_timestamp: Optional[datetime]) -> bool:
        return self._is_hit(self._entry, (ledger_count, ledger_latest_timestamp))

    def get_cached_summary(self) -> Optional[PortfolioSummary]:
        entry = self._entry
        return entry.value if entry is not None else None

    def entry(self) -> Optional[CacheEntry[PortfolioSummary]]:
        return self._entry

    def refresh_if_stale(self, compute_fn: ComputeFn, get_ledger_info_fn: LedgerInfoFn) -> bool:
        """
        Recompute the summary when the entry is not valid for the current ledger.

        Returns:
            True if a recompute ran
        """
        ledger_count, latest = get_ledger_info_fn()
        if self.is_valid(ledger_count, latest):
            return False
        self.get_summary(compute_fn, False, ledger_count, latest)
        logger.info("Summary refreshed (%d transactions)", ledger_count)
        return True

    def schedule_updates(self, compute_fn: ComputeFn, get_ledger_info_fn: LedgerInfoFn,
                         scheduler: BaseScheduler, interval: timedelta) -> Job:
        """
        Register a repeating job that keeps the summary fresh.

        Args:
            compute_fn: Computes a fresh summary
            get_ledger_info_fn: Returns (count, latest timestamp) of the ledger
            scheduler: APScheduler scheduler
            interval: Time between runs

        Returns:
            The APScheduler Job (call .remove() to cancel)
        """
        def scheduled_refresh() -> None:
            try:
                self.refresh_if_stale(compute_fn, get_ledger_info_fn)
            except Exception as e:
                logger.error("Scheduled summary refresh failed: %s", e, exc_info=True)

        job = scheduler.add_job(
            scheduled_refresh,
            "interval",
            seconds=interval.total_seconds(),
            id=SUMMARY_JOB_ID,
            name=SUMMARY_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info("Summary refresh scheduled every %s", interval)
        return job
