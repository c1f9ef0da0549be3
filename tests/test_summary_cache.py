# tests/test_summary_cache.py
"""
Summary Cache Tests - Validity Key, Invalidation and Scheduling

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- btcfolio.application.summary_cache (SummaryCache under test)
- unittest.mock (compute function and scheduler mocks)
"""
import pytest

from datetime import timedelta
from unittest.mock import Mock

from btcfolio.application.summary_cache import SUMMARY_JOB_ID, SummaryCache
from btcfolio.domain.models import PortfolioSummary

from conftest import T0


def _compute(*summaries):
    """compute_fn returning fresh empty summaries (or the given ones) on each call."""
    fn = Mock()
    if summaries:
        fn.side_effect = list(summaries)
    else:
        fn.side_effect = lambda: PortfolioSummary.empty()
    return fn


class TestGetSummary:
    def test_first_read_computes(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()

        summary = cache.get_summary(compute, False, 0, None)

        assert summary.total_btc_held == 0
        compute.assert_called_once()
        assert cache.entry().validity_key == (0, None)
        assert cache.entry().computed_at == T0

    def test_hit_with_same_key(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()

        first = cache.get_summary(compute, False, 2, T0)
        second = cache.get_summary(compute, False, 2, T0)

        assert second is first
        compute.assert_called_once()

    def test_count_change_recomputes(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()

        cache.get_summary(compute, False, 2, T0)
        cache.get_summary(compute, False, 3, T0)

        assert compute.call_count == 2
        assert cache.entry().validity_key == (3, T0)

    def test_latest_timestamp_change_recomputes(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()

        cache.get_summary(compute, False, 2, T0)
        cache.get_summary(compute, False, 2, T0 + timedelta(hours=1))

        assert compute.call_count == 2

    def test_force_fresh_recomputes(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()

        cache.get_summary(compute, False, 1, T0)
        cache.get_summary(compute, True, 1, T0)

        assert compute.call_count == 2

    def test_max_age_expires_entry(self, clock):
        cache = SummaryCache(max_age=timedelta(minutes=5), clock=clock)
        compute = _compute()

        cache.get_summary(compute, False, 1, T0)
        clock.advance(minutes=5)
        cache.get_summary(compute, False, 1, T0)
        assert compute.call_count == 1

        clock.advance(seconds=1)
        cache.get_summary(compute, False, 1, T0)
        assert compute.call_count == 2

    def test_no_max_age(self, clock):
        cache = SummaryCache(max_age=None, clock=clock)
        compute = _compute()

        cache.get_summary(compute, False, 1, T0)
        clock.advance(days=30)
        cache.get_summary(compute, False, 1, T0)

        compute.assert_called_once()

    def test_compute_error_keeps_previous_entry(self, clock):
        cache = SummaryCache(clock=clock)
        first = PortfolioSummary.empty()
        cache.get_summary(_compute(first), False, 1, T0)
        entry = cache.entry()

        with pytest.raises(RuntimeError):
            cache.get_summary(Mock(side_effect=RuntimeError("boom")), True, 1, T0)

        assert cache.entry() is entry
        assert cache.get_cached_summary() is first


class TestInvalidation:
    def test_invalidate_forces_recompute(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()
        cache.get_summary(compute, False, 1, T0)

        cache.invalidate_cache()

        assert not cache.is_valid(1, T0)
        cache.get_summary(compute, False, 1, T0)
        assert compute.call_count == 2
        assert not cache.entry().invalidated

    def test_invalidate_is_idempotent(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()
        cache.get_summary(compute, False, 1, T0)

        cache.invalidate_cache()
        once = cache.entry()
        cache.invalidate_cache()

        assert cache.entry() == once
        cache.get_summary(compute, False, 1, T0)
        assert compute.call_count == 2

    def test_invalidate_without_entry(self, clock):
        cache = SummaryCache(clock=clock)
        cache.invalidate_cache()
        assert cache.entry() is None

    def test_invalidate_during_compute_is_not_lost(self, clock):
        cache = SummaryCache(clock=clock)

        def compute():
            cache.invalidate_cache()
            return PortfolioSummary.empty()

        cache.get_summary(compute, False, 1, T0)

        assert cache.entry().invalidated
        assert not cache.is_valid(1, T0)

    def test_clear_cache(self, clock):
        cache = SummaryCache(clock=clock)
        cache.get_summary(_compute(), False, 1, T0)

        cache.clear_cache()

        assert cache.entry() is None
        assert cache.get_cached_summary() is None
        assert not cache.is_valid(1, T0)


class TestScheduledUpdates:
    def test_refresh_if_stale(self, clock):
        cache = SummaryCache(clock=clock)
        compute = _compute()
        info = Mock(return_value=(1, T0))

        assert cache.refresh_if_stale(compute, info) is True
        assert cache.refresh_if_stale(compute, info) is False
        compute.assert_called_once()

        info.return_value = (2, T0)
        assert cache.refresh_if_stale(compute, info) is True

    def test_schedule_updates_registers_interval_job(self, clock):
        cache = SummaryCache(clock=clock)
        scheduler = Mock()

        job = cache.schedule_updates(_compute(), Mock(return_value=(0, None)), scheduler,
                                     timedelta(minutes=5))

        assert job is scheduler.add_job.return_value
        args, kwargs = scheduler.add_job.call_args
        assert args[1] == "interval"
        assert kwargs["seconds"] == 300
        assert kwargs["id"] == SUMMARY_JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True

    def test_scheduled_job_swallows_compute_errors(self, clock):
        cache = SummaryCache(clock=clock)
        scheduler = Mock()
        cache.schedule_updates(Mock(side_effect=RuntimeError("boom")), Mock(return_value=(1, T0)),
                               scheduler, timedelta(minutes=5))
        job_fn = scheduler.add_job.call_args.args[0]

        job_fn()  # does not raise

        assert cache.entry() is None
