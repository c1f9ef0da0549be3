# tests/test_app.py
"""
Composition Root Tests - Service Wiring

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- btcfolio.app (build_services)
- btcfolio.config.settings (Settings pointed at a temp directory)
"""
import pytest

from datetime import timedelta
from unittest.mock import Mock

from btcfolio.app import build_services
from btcfolio.application.ledger import InMemoryLedger
from btcfolio.config.settings import Settings
from btcfolio.domain.models import SOURCE_LEDGER, TransactionValues

from conftest import T0, make_tx


@pytest.fixture
def config(tmp_path):
    return Settings(
        _env_file=None,
        PRICE_CACHE_FILE=str(tmp_path / "price_cache.json"),
        PREFERENCES_FILE=str(tmp_path / "preferences.json"),
        SUMMARY_MAX_AGE_MINUTES=5,
    )


class TestBuildServices:
    def test_scheduler_is_not_started(self, config, source):
        aps = Mock()
        aps.running = False

        services = build_services(config, source=source, scheduler=aps)

        aps.start.assert_not_called()
        assert services.valuation.scheduler is services.scheduler
        assert services.summary_cache.max_age.total_seconds() == 300

    def test_zero_summary_max_age_disables_age_check(self, tmp_path, source):
        config = Settings(
            _env_file=None,
            PRICE_CACHE_FILE=str(tmp_path / "price_cache.json"),
            PREFERENCES_FILE=str(tmp_path / "preferences.json"),
            SUMMARY_MAX_AGE_MINUTES=0,
        )

        services = build_services(config, source=source, scheduler=Mock(running=False))

        assert services.summary_cache.max_age is None

    def test_ledger_change_updates_cold_price(self, config, source):
        ledger = InMemoryLedger([make_tx("t1", price=42000.0, currency="EUR")])
        services = build_services(config, ledger=ledger, source=source, scheduler=Mock(running=False))

        ledger.add(make_tx("t2", price=43000.0, currency="EUR", date=T0 + timedelta(days=1)))

        assert services.rate_cache.get_current_price("EUR") == 43000.0
        assert services.valuation.get_summary().current_price_main == 43000.0

    def test_ledger_mutation_invalidates_summary(self, config, source):
        ledger = InMemoryLedger()
        services = build_services(config, ledger=ledger, source=source, scheduler=Mock(running=False))
        services.valuation.get_summary()

        ledger.add(make_tx("t1"))

        assert services.summary_cache.entry().invalidated

    def test_ledger_prices_back_the_cold_cache(self, config, source):
        ledger = InMemoryLedger([make_tx("t1", price=42000.0, currency="EUR",
                                         base={"USD": TransactionValues(price=46000.0, cost=4600.0)})])
        services = build_services(config, ledger=ledger, source=source, scheduler=Mock(running=False))

        snapshot = services.rate_cache.current_snapshot()

        assert snapshot.source == SOURCE_LEDGER
        assert snapshot.price_a == 42000.0
        assert snapshot.price_b == 46000.0

    def test_preferences_default_from_settings(self, tmp_path, source):
        config = Settings(
            _env_file=None,
            PRICE_CACHE_FILE=str(tmp_path / "price_cache.json"),
            PREFERENCES_FILE=str(tmp_path / "preferences.json"),
            MAIN_CURRENCY="PLN",
        )

        services = build_services(config, source=source, scheduler=Mock(running=False))

        assert services.valuation.preferences.main_currency == "PLN"
