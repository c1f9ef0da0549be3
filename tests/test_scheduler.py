# tests/test_scheduler.py
"""
Refresh Scheduler Tests - Job Registration, Isolation and Triggers

The APScheduler instance is mocked so no worker threads are started; job
bodies are invoked directly.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- btcfolio.application.scheduler (RefreshScheduler, guarded)
- unittest.mock (scheduler and cache mocks)
"""
import pytest

from datetime import timedelta
from unittest.mock import Mock

from btcfolio.application.rate_cache import RefreshResult
from btcfolio.application.scheduler import PRICE_JOB_ID, RATES_JOB_ID, RefreshScheduler, guarded
from btcfolio.application.summary_cache import SUMMARY_JOB_ID, SummaryCache
from btcfolio.domain.errors import FetchTimeout
from btcfolio.domain.models import PortfolioSummary

from conftest import T0, make_snapshot, make_table


@pytest.fixture
def parts(clock):
    rate_cache = Mock()
    rate_cache.refresh_prices.return_value = RefreshResult(snapshot=make_snapshot())
    rate_cache.refresh_rates.return_value = RefreshResult(table=make_table())
    rate_cache.refresh.return_value = RefreshResult(snapshot=make_snapshot(), table=make_table())
    converter = Mock()
    summary_cache = SummaryCache(clock=clock)
    compute = Mock(side_effect=lambda: PortfolioSummary.empty())
    ledger_info = Mock(return_value=(0, None))
    aps = Mock()
    aps.running = False
    scheduler = RefreshScheduler(
        rate_cache, converter, summary_cache, compute, ledger_info, scheduler=aps,
        price_interval=timedelta(minutes=10),
        rates_interval=timedelta(minutes=120),
        summary_interval=timedelta(minutes=5),
    )
    return scheduler, rate_cache, converter, summary_cache, compute, aps


def _job_calls(aps):
    return {call.kwargs.get("id"): call for call in aps.add_job.call_args_list}


class TestGuarded:
    def test_failure_is_logged_not_raised(self, caplog):
        job = guarded("price_refresh", Mock(side_effect=RuntimeError("boom")))

        job()

        assert "Job price_refresh failed: boom" in caplog.text

    def test_failing_job_does_not_stop_others(self):
        calls = []
        jobs = [
            guarded("first", Mock(side_effect=FetchTimeout("slow"))),
            guarded("second", lambda: calls.append("second")),
        ]

        for job in jobs:
            job()

        assert calls == ["second"]


class TestStart:
    def test_initial_pass_runs_synchronously(self, parts):
        scheduler, rate_cache, converter, summary_cache, compute, aps = parts

        scheduler.start()

        converter.ensure_rates_loaded.assert_called_once()
        rate_cache.refresh_prices.assert_called_once()
        compute.assert_called_once()
        assert summary_cache.get_cached_summary() is not None
        aps.start.assert_called_once()

    def test_registers_three_repeating_jobs(self, parts):
        scheduler, _, _, _, _, aps = parts

        scheduler.start()

        calls = _job_calls(aps)
        assert set(calls) == {PRICE_JOB_ID, RATES_JOB_ID, SUMMARY_JOB_ID}
        assert calls[PRICE_JOB_ID].kwargs["seconds"] == 600
        assert calls[RATES_JOB_ID].kwargs["seconds"] == 7200
        assert calls[SUMMARY_JOB_ID].kwargs["seconds"] == 300
        for call in calls.values():
            assert call.args[1] == "interval"
            assert call.kwargs["max_instances"] == 1
            assert call.kwargs["coalesce"] is True

    def test_initial_pass_survives_failures(self, parts):
        scheduler, rate_cache, converter, _, _, aps = parts
        converter.ensure_rates_loaded.side_effect = RuntimeError("no network")
        rate_cache.refresh_prices.side_effect = RuntimeError("no network")

        scheduler.start()

        aps.start.assert_called_once()

    def test_start_twice_is_noop(self, parts):
        scheduler, _, converter, _, _, aps = parts

        scheduler.start()
        scheduler.start()

        converter.ensure_rates_loaded.assert_called_once()
        aps.start.assert_called_once()

    def test_stop_removes_jobs_and_shuts_down(self, parts):
        scheduler, _, _, _, _, aps = parts
        scheduler.start()
        aps.running = True
        job = aps.add_job.return_value

        scheduler.stop()

        assert job.remove.call_count == 3
        aps.shutdown.assert_called_once_with(wait=True)

    def test_cancel_unknown_job(self, parts):
        scheduler, _, _, _, _, _ = parts
        assert scheduler.cancel("nope") is False


class TestJobs:
    def test_price_job_triggers_summary_recompute_on_success(self, parts):
        scheduler, _, _, _, _, aps = parts
        scheduler.start()
        aps.add_job.reset_mock()

        scheduler.refresh_prices()

        args, kwargs = aps.add_job.call_args
        assert args[1] == "date"
        assert kwargs["name"] == "summary_recompute"

    def test_failed_price_job_does_not_trigger_recompute(self, parts):
        scheduler, rate_cache, _, _, _, aps = parts
        scheduler.start()
        aps.add_job.reset_mock()
        rate_cache.refresh_prices.return_value = RefreshResult(errors=(FetchTimeout("slow"),))

        scheduler.refresh_prices()

        aps.add_job.assert_not_called()

    def test_forced_recompute_ignores_valid_entry(self, parts):
        scheduler, _, _, _, compute, _ = parts
        scheduler.recompute_summary(force=False)
        scheduler.recompute_summary(force=False)
        assert compute.call_count == 1

        scheduler.recompute_summary(force=True)
        assert compute.call_count == 2

    def test_refresh_all(self, parts):
        scheduler, rate_cache, _, summary_cache, compute, _ = parts

        scheduler.refresh_all()

        rate_cache.refresh.assert_called_once()
        compute.assert_called_once()
        assert summary_cache.entry().computed_at == T0

    def test_triggers_are_skipped_before_start(self, parts):
        scheduler, _, _, _, _, aps = parts

        assert scheduler.trigger_rate_refresh() is None
        assert scheduler.trigger_summary_recompute() is None
        aps.add_job.assert_not_called()

    def test_trigger_rate_refresh_runs_once_immediately(self, parts):
        scheduler, _, _, _, _, aps = parts
        scheduler.start()
        aps.add_job.reset_mock()

        scheduler.trigger_rate_refresh()

        args, kwargs = aps.add_job.call_args
        assert args[1] == "date"
        assert kwargs["misfire_grace_time"] is None
        assert kwargs["run_date"] is not None

        # the scheduled body is guarded
        args[0]()

    def test_jobs_lists_scheduler_job_names(self, parts):
        scheduler, _, _, _, _, aps = parts
        job = Mock()
        job.name = PRICE_JOB_ID
        aps.get_jobs.return_value = [job]

        assert scheduler.jobs() == [PRICE_JOB_ID]
