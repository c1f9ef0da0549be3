# src/btcfolio/config/settings.py
"""
Settings - Pydantic-based Configuration Management

Provides centralized configuration management using Pydantic Settings.
Supports environment variables with validation and an optional .env file.

Files that USE this module:
- btcfolio.app (loads settings for logging and scheduler configuration)
- btcfolio.adapters.providers.* (all providers use settings for URLs and timeouts)
- btcfolio.adapters.persistence.* (file locations)
- btcfolio.application.* (services use settings for currencies and cadences)

Files that this module USES:
- btcfolio.shared.validators (validation functions for settings)
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

from pathlib import Path  # Object-oriented filesystem paths
from typing import List, Optional  # Type hints for lists and optional values

from pydantic import Field, field_validator  # Data validation and field configuration
from pydantic_settings import BaseSettings, SettingsConfigDict  # Settings management with Pydantic

from btcfolio.shared.validators import (
    normalize_currency_code,  # Upper-case and strip currency codes
    parse_currency_list,  # Parse "EUR,USD" style lists
    validate_currency_code,  # Validate ISO 4217 style codes
    validate_http_url,  # Validate upstream endpoint URLs
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # --- Currencies ---
    # The BTC price feed returns these two directly; every other currency is derived
    reference_currency_a: str = Field(default="EUR", alias="REFERENCE_CURRENCY_A")
    reference_currency_b: str = Field(default="USD", alias="REFERENCE_CURRENCY_B")
    pivot_currencies_raw: str = Field(default="EUR,USD", alias="PIVOT_CURRENCIES")
    supported_currencies_raw: str = Field(
        default="EUR,USD,GBP,JPY,CHF,PLN,BRL", alias="SUPPORTED_CURRENCIES"
    )
    main_currency: str = Field(default="EUR", alias="MAIN_CURRENCY")
    secondary_currency: str = Field(default="USD", alias="SECONDARY_CURRENCY")

    # --- Upstream APIs ---
    coingecko_url: str = Field(
        default="https://api.coingecko.com/api/v3/simple/price", alias="COINGECKO_URL"
    )
    yahoo_finance_url: str = Field(
        default="https://query2.finance.yahoo.com/v8/finance/chart", alias="YAHOO_FINANCE_URL"
    )
    exchange_rate_url: str = Field(
        default="https://api.exchangerate-api.com/v4/latest", alias="EXCHANGE_RATE_URL"
    )

    # --- HTTP Settings ---
    http_timeout_seconds: int = Field(default=10, alias="HTTP_TIMEOUT_SECONDS", ge=1, le=60)

    # --- Outbound throttling (per provider) ---
    provider_max_requests: int = Field(default=10, alias="PROVIDER_MAX_REQUESTS", ge=1)
    provider_window_seconds: int = Field(default=60, alias="PROVIDER_WINDOW_SECONDS", ge=1)

    # --- Scheduling (in minutes) ---
    price_refresh_minutes: int = Field(default=10, alias="PRICE_REFRESH_MINUTES", ge=1, le=1440)
    rates_refresh_minutes: int = Field(default=120, alias="RATES_REFRESH_MINUTES", ge=1, le=10080)
    summary_refresh_minutes: int = Field(default=5, alias="SUMMARY_REFRESH_MINUTES", ge=1, le=1440)
    # 0 disables the summary age check
    summary_max_age_minutes: int = Field(default=5, alias="SUMMARY_MAX_AGE_MINUTES", ge=0)

    # --- Persistence ---
    price_cache_file: Path = Field(
        default=Path("./data/price_cache.json"), alias="PRICE_CACHE_FILE"
    )
    preferences_file: Path = Field(
        default=Path("./data/preferences.json"), alias="PREFERENCES_FILE"
    )

    # --- Logging (for server deployment) ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")
    log_dir: Optional[str] = Field(default=None, alias="LOG_DIR")
    log_stdout: bool = Field(default=True, alias="BTCFOLIO_LOG_STDOUT")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")  # 10MB
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    # Computed properties for convenience
    @property
    def reference_currencies(self) -> tuple[str, str]:
        """The two currencies the BTC price feed quotes directly."""
        return (self.reference_currency_a, self.reference_currency_b)

    @property
    def pivot_currencies(self) -> List[str]:
        """Currencies for which a full rate row is fetched."""
        return parse_currency_list(self.pivot_currencies_raw)

    @property
    def supported_currencies(self) -> List[str]:
        """
        Every currency a user may pick as main or secondary.

        Reference currencies are always included even if omitted from
        SUPPORTED_CURRENCIES.
        """
        codes = parse_currency_list(self.supported_currencies_raw)
        for code in reversed(self.reference_currencies):
            if code not in codes:
                codes.insert(0, code)
        return codes

    @property
    def log_level_value(self) -> int:
        """Numeric logging level for logging.basicConfig."""
        import logging
        return logging.getLevelName(self.log_level.upper()) if self.log_level else logging.INFO

    @field_validator(
        "reference_currency_a", "reference_currency_b", "main_currency", "secondary_currency",
        mode="before",
    )
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate and normalize single currency codes."""
        code = normalize_currency_code(v)
        if not validate_currency_code(code):
            raise ValueError(f"Invalid currency code: {v!r}")
        return code

    @field_validator("pivot_currencies_raw", "supported_currencies_raw")
    @classmethod
    def validate_currency_list(cls, v: str) -> str:
        """Validate comma separated currency lists."""
        codes = parse_currency_list(v)
        if not codes:
            raise ValueError("Currency list must not be empty")
        return ",".join(codes)

    @field_validator("coingecko_url", "yahoo_finance_url", "exchange_rate_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate upstream endpoint URLs."""
        if not validate_http_url(v):
            raise ValueError(f"Invalid URL: {v!r}")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v.upper()

    def model_post_init(self, __context) -> None:
        """Post-initialization validation."""
        if self.reference_currency_a == self.reference_currency_b:
            raise ValueError("REFERENCE_CURRENCY_A and REFERENCE_CURRENCY_B must differ")
        missing = [c for c in self.pivot_currencies if c not in self.supported_currencies]
        if missing:
            raise ValueError(f"Pivot currencies not supported: {', '.join(missing)}")


# Global settings instance
settings = Settings()
