# tests/test_settings.py
"""
Settings and Validator Tests

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- btcfolio.config.settings (Settings)
- btcfolio.shared.validators (currency and URL validation)
"""
import logging

import pytest

from btcfolio.config.settings import Settings
from btcfolio.shared.validators import (
    normalize_currency_code,
    parse_currency_list,
    validate_currency_code,
    validate_http_url,
)


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestValidators:
    def test_currency_code(self):
        assert validate_currency_code("EUR")
        assert not validate_currency_code("eur")
        assert not validate_currency_code("EURO")
        assert not validate_currency_code("")

    def test_normalize(self):
        assert normalize_currency_code(" pln ") == "PLN"
        assert normalize_currency_code(None) == ""

    def test_parse_list_dedupes_and_keeps_order(self):
        assert parse_currency_list("usd, EUR,,usd") == ["USD", "EUR"]
        assert parse_currency_list(["gbp", "chf"]) == ["GBP", "CHF"]

    def test_parse_list_rejects_bad_code(self):
        with pytest.raises(ValueError):
            parse_currency_list("EUR,E1R")

    def test_http_url(self):
        assert validate_http_url("https://api.coingecko.com/api/v3/simple/price")
        assert not validate_http_url("ftp://example.com")
        assert not validate_http_url("not a url")


class TestSettings:
    def test_defaults(self):
        config = make_settings()

        assert config.reference_currencies == ("EUR", "USD")
        assert config.pivot_currencies == ["EUR", "USD"]
        assert config.supported_currencies[:2] == ["EUR", "USD"]
        assert config.log_level_value == logging.INFO

    def test_reference_currencies_always_supported(self):
        config = make_settings(SUPPORTED_CURRENCIES="GBP,PLN", PIVOT_CURRENCIES="EUR")

        assert config.supported_currencies == ["EUR", "USD", "GBP", "PLN"]

    def test_currency_codes_are_normalized(self):
        config = make_settings(MAIN_CURRENCY="pln", SECONDARY_CURRENCY=" gbp ")

        assert config.main_currency == "PLN"
        assert config.secondary_currency == "GBP"

    def test_url_trailing_slash_is_stripped(self):
        config = make_settings(EXCHANGE_RATE_URL="https://example.com/v4/latest/")
        assert config.exchange_rate_url == "https://example.com/v4/latest"

    @pytest.mark.parametrize("overrides", [
        {"MAIN_CURRENCY": "EURO"},
        {"PIVOT_CURRENCIES": "EUR,XX"},
        {"COINGECKO_URL": "not-a-url"},
        {"LOG_LEVEL": "VERBOSE"},
        {"PRICE_REFRESH_MINUTES": 0},
        {"SUMMARY_MAX_AGE_MINUTES": -1},
        {"REFERENCE_CURRENCY_B": "EUR"},
        {"PIVOT_CURRENCIES": "EUR,THB"},
    ])
    def test_invalid_values_are_rejected(self, overrides):
        with pytest.raises(ValueError):
            make_settings(**overrides)
