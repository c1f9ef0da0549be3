# src/btcfolio/application/valuation.py
"""
Valuation - Portfolio Summary Computation

This module turns a ledger snapshot, the rate cache and the user's currency
preferences into a PortfolioSummary. Price and rates are read from one
published cache state so a summary never mixes data from two refresh cycles.

Cost basis: a buy's cost in the main currency is the cost recorded for that
currency at entry time when available, otherwise the original cost converted
with the current rates. Sells reduce the BTC held but not the cost basis.

Files that USE this module:
- btcfolio.application.valuation_service (compute function for the summary cache)
- tests.test_valuation (unit tests)

Files that this module USES:
- btcfolio.application.rate_cache (current price and rate table)
- btcfolio.application.currency_converter (conversions)
- btcfolio.domain.models (Transaction, CurrencyPreferences, PortfolioSummary)
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from btcfolio.application.currency_converter import CurrencyConverter
from btcfolio.application.rate_cache import RateCache
from btcfolio.domain.models import CurrencyPreferences, PortfolioSummary, Transaction

logger = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def calculate_summary(
    transactions: Iterable[Transaction],
    rate_cache: RateCache,
    converter: CurrencyConverter,
    preferences: CurrencyPreferences,
    now: Optional[datetime] = None,
) -> PortfolioSummary:
    """
    Compute the portfolio summary in the main and secondary currencies.

    Args:
        transactions: Ledger snapshot
        rate_cache: Source of the current price and rates
        converter: Converter used for costs and the secondary currency
        preferences: Main and secondary currency

    Returns:
        PortfolioSummary (zero ratios where the denominator is zero)

    Raises:
        ConversionRateUnknown: A needed currency pair has no route in the rate table
        NoDataAvailable: A cost must be converted before any rates were loaded
    """
    main = preferences.main_currency
    secondary = preferences.secondary_currency
    transactions = list(transactions)

    state = rate_cache.current_state()
    snapshot = rate_cache.current_snapshot(state)
    table = state.table

    current_price_main = rate_cache.get_current_price(main, state)

    if main == secondary:
        secondary_rate: Optional[float] = 1.0
    elif table is None:
        logger.warning("No exchange rates loaded, %s figures will be zero", secondary)
        secondary_rate = None
    else:
        secondary_rate = converter.get_rate(main, secondary, table)
    multiplier = secondary_rate or 0.0

    total_btc = 0.0
    total_bought = 0.0
    total_cost_main = 0.0
    for tx in transactions:
        if tx.is_sell:
            total_btc -= tx.amount
            continue
        if not tx.is_buy:
            logger.warning("Skipping transaction %s with unknown type %r", tx.id, tx.type)
            continue

        total_btc += tx.amount
        total_bought += tx.amount
        recorded = tx.values_in(main)
        if recorded is not None:
            total_cost_main += recorded.cost
        else:
            total_cost_main += converter.convert(tx.original.cost, tx.original_currency, main, table)

    total_cost_secondary = total_cost_main * multiplier
    current_value_main = total_btc * current_price_main
    current_value_secondary = current_value_main * multiplier
    pnl_main = current_value_main - total_cost_main
    pnl_secondary = current_value_secondary - total_cost_secondary

    return PortfolioSummary(
        total_btc_held=total_btc,
        total_cost_main=total_cost_main,
        total_cost_secondary=total_cost_secondary,
        current_value_main=current_value_main,
        current_value_secondary=current_value_secondary,
        pnl_main=pnl_main,
        pnl_secondary=pnl_secondary,
        pnl_percentage_main=_ratio(pnl_main, total_cost_main) * 100,
        pnl_percentage_secondary=_ratio(pnl_secondary, total_cost_secondary) * 100,
        average_price_main=_ratio(total_cost_main, total_bought),
        average_price_secondary=_ratio(total_cost_secondary, total_bought),
        source_price_timestamp=snapshot.captured_at,
        main_currency=main,
        secondary_currency=secondary,
        has_transactions=bool(transactions),
        current_price_main=current_price_main,
        current_price_secondary=current_price_main * multiplier,
        secondary_rate=secondary_rate,
        reliable=snapshot.reliable and table is not None,
        computed_at=now or datetime.now(timezone.utc),
    )
