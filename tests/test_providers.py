# tests/test_providers.py
"""
Provider Tests - Unit Tests for Market Data API Clients

This module contains unit tests for the CoinGecko, Yahoo Finance and
ExchangeRate-API providers. It tests response parsing, error translation into
typed fetch errors, and outbound throttling.

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- btcfolio.adapters.providers (providers under test)
- btcfolio.domain.errors (expected error types)
- unittest.mock (Mock for API mocking)
- pytest (testing framework)
"""
import pytest  # Testing framework for writing and running tests

from unittest.mock import Mock, patch  # Mock objects and patching for testing without real API calls
import requests  # HTTP library (used for mocking exceptions)

from btcfolio.adapters.providers.coingecko import CoinGeckoProvider
from btcfolio.adapters.providers.exchangerate import ExchangeRateProvider
from btcfolio.adapters.providers.yahoo import YahooFinanceProvider
from btcfolio.domain.errors import (
    FetchMalformedResponse,
    FetchRateLimited,
    FetchTimeout,
    NoDataAvailable,
)
from btcfolio.domain.models import SOURCE_FEED
from btcfolio.shared.rate_limiter import RateLimitConfig, RateLimiter

GET = "btcfolio.adapters.providers.base.requests.get"


def _response(payload=None, status_code=200, headers=None):
    resp = Mock()
    resp.status_code = status_code
    resp.headers = headers or {}
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def _chart(closes):
    return {"chart": {"result": [{"indicators": {"quote": [{"close": closes}]}}], "error": None}}


class TestCoinGeckoProvider:
    def test_init_with_defaults(self):
        provider = CoinGeckoProvider()
        assert provider.timeout == 10
        assert "coingecko.com" in provider.url

    @patch(GET)
    def test_btc_prices_success(self, mock_get):
        mock_get.return_value = _response({"bitcoin": {"eur": 58000, "usd": 63000.5}})

        snap = CoinGeckoProvider().btc_prices("EUR", "USD")

        assert snap.price_a == 58000.0
        assert snap.price_b == 63000.5
        assert snap.currency_a == "EUR"
        assert snap.source == SOURCE_FEED
        assert snap.provider == "coingecko"
        _, kwargs = mock_get.call_args
        assert kwargs["params"]["vs_currencies"] == "eur,usd"
        assert kwargs["timeout"] == 10

    @patch(GET)
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(FetchTimeout) as exc:
            CoinGeckoProvider().btc_prices("EUR", "USD")
        assert exc.value.provider == "coingecko"

    @patch(GET)
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("down")

        with pytest.raises(NoDataAvailable, match="request failed"):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_server_error(self, mock_get):
        mock_get.return_value = _response(status_code=503)

        with pytest.raises(NoDataAvailable, match="503"):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_client_error(self, mock_get):
        resp = _response(status_code=404)
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError("404 Not Found")
        mock_get.return_value = resp

        with pytest.raises(NoDataAvailable, match="HTTP error"):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_invalid_json(self, mock_get):
        resp = _response()
        resp.json.side_effect = ValueError("Invalid JSON")
        mock_get.return_value = resp

        with pytest.raises(FetchMalformedResponse, match="invalid JSON"):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_missing_currency(self, mock_get):
        mock_get.return_value = _response({"bitcoin": {"eur": 58000}})

        with pytest.raises(FetchMalformedResponse):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_missing_bitcoin_field(self, mock_get):
        mock_get.return_value = _response({"status": "ok"})

        with pytest.raises(FetchMalformedResponse, match="bitcoin"):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_non_positive_price(self, mock_get):
        mock_get.return_value = _response({"bitcoin": {"eur": 0, "usd": 63000}})

        with pytest.raises(NoDataAvailable):
            CoinGeckoProvider().btc_prices("EUR", "USD")

    @patch(GET)
    def test_429_blocks_provider_for_retry_after(self, mock_get):
        mock_get.return_value = _response(status_code=429, headers={"Retry-After": "30"})
        provider = CoinGeckoProvider(limiter=RateLimiter())

        with pytest.raises(FetchRateLimited) as exc:
            provider.btc_prices("EUR", "USD")
        assert exc.value.retry_after == 30.0

        # blocked locally: no second network call
        with pytest.raises(FetchRateLimited):
            provider.btc_prices("EUR", "USD")
        assert mock_get.call_count == 1

    @patch(GET)
    def test_local_budget_exhausted(self, mock_get):
        mock_get.return_value = _response({"bitcoin": {"eur": 58000, "usd": 63000}})
        provider = CoinGeckoProvider(
            limiter=RateLimiter(), limit=RateLimitConfig(max_requests=1, time_window=60)
        )

        provider.btc_prices("EUR", "USD")
        with pytest.raises(FetchRateLimited, match="budget exhausted"):
            provider.btc_prices("EUR", "USD")
        assert mock_get.call_count == 1


class TestYahooFinanceProvider:
    def test_latest_close_skips_empty_points(self):
        assert YahooFinanceProvider._latest_close(_chart([56000.0, 57000.5, None]), "BTC-EUR") == 57000.5

    def test_latest_close_without_data(self):
        with pytest.raises(NoDataAvailable, match="No valid data points"):
            YahooFinanceProvider._latest_close(_chart([None, None]), "BTC-EUR")

    def test_latest_close_chart_error(self):
        data = {"chart": {"result": None, "error": {"description": "No data found"}}}
        with pytest.raises(NoDataAvailable, match="No data found"):
            YahooFinanceProvider._latest_close(data, "BTC-EUR")

    def test_latest_close_bad_schema(self):
        with pytest.raises(FetchMalformedResponse):
            YahooFinanceProvider._latest_close({"chart": {"result": []}}, "BTC-EUR")

    @patch(GET)
    def test_btc_prices_success(self, mock_get):
        mock_get.side_effect = [_response(_chart([57000.0])), _response(_chart([62000.0, None]))]

        snap = YahooFinanceProvider().btc_prices("EUR", "USD")

        assert snap.price_a == 57000.0
        assert snap.price_b == 62000.0
        assert snap.provider == "yahoo"
        urls = [call.args[0] for call in mock_get.call_args_list]
        assert urls[0].endswith("/BTC-EUR")
        assert urls[1].endswith("/BTC-USD")
        assert "User-Agent" in mock_get.call_args.kwargs["headers"]

    @patch(GET)
    def test_second_currency_failure_fails_the_fetch(self, mock_get):
        mock_get.side_effect = [_response(_chart([57000.0])), requests.exceptions.Timeout()]

        with pytest.raises(FetchTimeout):
            YahooFinanceProvider().btc_prices("EUR", "USD")


class TestExchangeRateProvider:
    @patch(GET)
    def test_latest_row_keeps_requested_currencies(self, mock_get):
        mock_get.return_value = _response(
            {"base": "EUR", "rates": {"EUR": 1, "USD": 1.09, "PLN": 4.31, "THB": 39.2}}
        )

        row = ExchangeRateProvider().latest_row("EUR", ["EUR", "USD", "PLN", "GBP"])

        assert row == {"USD": 1.09, "PLN": 4.31}
        assert mock_get.call_args.args[0].endswith("/latest/EUR")

    @patch(GET)
    def test_fiat_rates_builds_table_per_pivot(self, mock_get):
        mock_get.side_effect = [
            _response({"base": "EUR", "rates": {"USD": 1.1, "GBP": 0.85}}),
            _response({"base": "USD", "rates": {"EUR": 0.91, "GBP": 0.77}}),
        ]

        table = ExchangeRateProvider().fiat_rates(["EUR", "USD"], ["EUR", "USD", "GBP"])

        assert table.pivots == ("EUR", "USD")
        assert table.lookup("EUR", "GBP") == 0.85
        assert table.lookup("USD", "EUR") == 0.91
        assert table.provider == "exchangerate"

    @patch(GET)
    def test_missing_rates(self, mock_get):
        mock_get.return_value = _response({"result": "error"})

        with pytest.raises(FetchMalformedResponse, match="rates"):
            ExchangeRateProvider().latest_row("EUR", ["USD"])

    @patch(GET)
    def test_no_usable_rates(self, mock_get):
        mock_get.return_value = _response({"rates": {"USD": "n/a", "PLN": 0}})

        with pytest.raises(NoDataAvailable):
            ExchangeRateProvider().latest_row("EUR", ["USD", "PLN"])

    @patch(GET)
    def test_partial_failure_returns_no_table(self, mock_get):
        mock_get.side_effect = [
            _response({"rates": {"USD": 1.1}}),
            _response(status_code=500),
        ]

        with pytest.raises(NoDataAvailable):
            ExchangeRateProvider().fiat_rates(["EUR", "USD"], ["EUR", "USD"])
