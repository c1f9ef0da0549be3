# src/btcfolio/application/health.py
"""
Health Checker - Cache Freshness Monitoring

This module reports how fresh the BTC price, the fiat rate table and the
portfolio summary are, for an operator health endpoint. It only inspects the
caches; it never triggers a network call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from btcfolio.application.rate_cache import RateCache
from btcfolio.application.summary_cache import SummaryCache
from btcfolio.config import settings

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Represents the health status of a component."""
    is_healthy: bool
    message: str
    last_check: datetime
    details: Optional[Dict[str, Any]] = None


def _format_age(age: timedelta) -> str:
    minutes = int(age.total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m"
    return f"{minutes // 60}h{minutes % 60:02d}m"


class HealthChecker:
    """Freshness checks for the price, rate and summary caches."""

    def __init__(
        self,
        rate_cache: RateCache,
        summary_cache: SummaryCache,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        price_max_age: Optional[timedelta] = None,
        rates_max_age: Optional[timedelta] = None,
    ):
        """
        Args:
            rate_cache: Cache to inspect
            summary_cache: Cache to inspect
            clock: Returns the current UTC time
            price_max_age: Older prices are unhealthy (defaults to 3 price refresh periods)
            rates_max_age: Older rates are unhealthy (defaults to 2 rates refresh periods)
        """
        self.rate_cache = rate_cache
        self.summary_cache = summary_cache
        self._clock = clock
        self.price_max_age = price_max_age or timedelta(minutes=3 * settings.price_refresh_minutes)
        self.rates_max_age = rates_max_age or timedelta(minutes=2 * settings.rates_refresh_minutes)

    def check_prices(self) -> HealthStatus:
        """Check the BTC price snapshot."""
        snapshot = self.rate_cache.current_snapshot()
        age = self.rate_cache.get_age()
        details = {
            "source": snapshot.source,
            "provider": snapshot.provider,
            snapshot.currency_a.lower(): snapshot.price_a,
            snapshot.currency_b.lower(): snapshot.price_b,
            "captured_at": snapshot.captured_at.isoformat(),
            "age_seconds": int(age.total_seconds()) if age is not None else None,
        }
        if age is None:
            return HealthStatus(
                is_healthy=False,
                message=f"No BTC price fetched yet (serving {snapshot.source} fallback)",
                last_check=self._clock(),
                details=details,
            )
        if age > self.price_max_age:
            return HealthStatus(
                is_healthy=False,
                message=f"BTC price stale, last refresh {_format_age(age)} ago",
                last_check=self._clock(),
                details=details,
            )
        return HealthStatus(
            is_healthy=True,
            message=f"BTC price healthy, provider: {snapshot.provider or snapshot.source}, "
                    f"age {_format_age(age)}",
            last_check=self._clock(),
            details=details,
        )

    def check_rates(self) -> HealthStatus:
        """Check the fiat rate table."""
        table = self.rate_cache.rate_table()
        age = self.rate_cache.get_rates_age()
        if table is None or age is None:
            return HealthStatus(
                is_healthy=False,
                message="No exchange rates loaded",
                last_check=self._clock(),
                details={"has_rates": False},
            )
        details = {
            "has_rates": True,
            "provider": table.provider,
            "pairs": len(table.rates),
            "pivots": list(table.pivots),
            "captured_at": table.captured_at.isoformat(),
            "age_seconds": int(age.total_seconds()),
        }
        if age > self.rates_max_age:
            return HealthStatus(
                is_healthy=False,
                message=f"Exchange rates stale, last refresh {_format_age(age)} ago",
                last_check=self._clock(),
                details=details,
            )
        return HealthStatus(
            is_healthy=True,
            message=f"Exchange rates healthy, {len(table.rates)} pairs, age {_format_age(age)}",
            last_check=self._clock(),
            details=details,
        )

    def check_summary(self) -> HealthStatus:
        """Check the cached portfolio summary."""
        entry = self.summary_cache.entry()
        if entry is None:
            # the summary is computed lazily; an empty cache is not a failure
            return HealthStatus(
                is_healthy=True,
                message="Summary cache empty (computed on next read)",
                last_check=self._clock(),
                details={"cached": False},
            )
        age = self._clock() - entry.computed_at
        return HealthStatus(
            is_healthy=True,
            message=f"Summary cached {_format_age(age)} ago"
                    + (" (invalidated)" if entry.invalidated else ""),
            last_check=self._clock(),
            details={
                "cached": True,
                "invalidated": entry.invalidated,
                "transactions": entry.validity_key[0],
                "reliable": entry.value.reliable,
                "computed_at": entry.computed_at.isoformat(),
            },
        )

    def get_overall_health(self) -> Dict[str, Any]:
        """
        Get overall health status of all components.

        Returns degraded status if any component fails, even if others are healthy.
        """
        checks = {}
        for name, check in (("prices", self.check_prices),
                            ("rates", self.check_rates),
                            ("summary", self.check_summary)):
            try:
                checks[name] = check()
            except Exception as e:
                logger.error("%s health check failed: %s", name, e, exc_info=True)
                checks[name] = HealthStatus(
                    is_healthy=False,
                    message=f"{name} check error: {e}",
                    last_check=self._clock(),
                )

        healthy_checks = [name for name, check in checks.items() if check.is_healthy]
        failed_checks = [name for name, check in checks.items() if not check.is_healthy]
        overall_healthy = len(failed_checks) == 0

        if overall_healthy:
            status_message = "All systems healthy"
        else:
            status_message = f"Degraded - {len(failed_checks)} component(s) failed: {', '.join(failed_checks)}"

        return {
            "overall_healthy": overall_healthy,
            "status": "healthy" if overall_healthy else "degraded",
            "message": status_message,
            "healthy_components": healthy_checks,
            "failed_components": failed_checks,
            "timestamp": self._clock().isoformat(),
            "checks": {
                name: {
                    "healthy": check.is_healthy,
                    "message": check.message,
                    "last_check": check.last_check.isoformat(),
                    "details": check.details,
                }
                for name, check in checks.items()
            },
        }
