# src/btcfolio/adapters/persistence/preferences_store.py
"""
Preferences Store - Persist the Selected Main and Secondary Currencies

This module stores the user's currency preferences so a restart keeps valuing
the portfolio in the currencies that were last selected.

Files that USE this module:
- btcfolio.application.valuation_service (reads and updates preferences)
- btcfolio.app (builds the store from settings)

Files that this module USES:
- btcfolio.domain.models (CurrencyPreferences)
- btcfolio.shared.validators (currency code normalization)
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from btcfolio.domain.models import CurrencyPreferences
from btcfolio.shared.validators import normalize_currency_code

logger = logging.getLogger(__name__)


class PreferencesStore:
    """Store and retrieve currency preferences."""

    def __init__(self, store_file: Optional[Path], default: CurrencyPreferences):
        """
        Initialize preferences store.

        Args:
            store_file: JSON file for the preferences (None keeps them in memory only)
            default: Preferences used when nothing has been stored yet
        """
        self.store_file = Path(store_file) if store_file is not None else None
        self._preferences = default
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load preferences from disk."""
        if self.store_file is None or not self.store_file.exists():
            logger.info("No preferences file found, using %s/%s",
                        self._preferences.main_currency, self._preferences.secondary_currency)
            return

        try:
            with self.store_file.open("r", encoding="utf-8") as f:
                data = json.load(f)
            self._preferences = CurrencyPreferences(
                main_currency=normalize_currency_code(data.get("main_currency")
                                                      or self._preferences.main_currency),
                secondary_currency=normalize_currency_code(data.get("secondary_currency")
                                                           or self._preferences.secondary_currency),
            )
            logger.info("Loaded currency preferences: %s/%s",
                        self._preferences.main_currency, self._preferences.secondary_currency)
        except (OSError, ValueError, AttributeError) as e:
            logger.error("Failed to load preferences file, keeping defaults: %s", e)

    def _save(self) -> None:
        """Save preferences to disk using temp file + atomic rename."""
        if self.store_file is None:
            return

        data = {
            "main_currency": self._preferences.main_currency,
            "secondary_currency": self._preferences.secondary_currency,
        }
        try:
            self.store_file.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(suffix=".json.tmp", dir=str(self.store_file.parent), text=True)
        except OSError as e:
            logger.error("Failed to save preferences file: %s", e)
            return

        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, str(self.store_file))
            logger.debug("Saved currency preferences to %s", self.store_file)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            logger.error("Failed to save preferences file: %s", e)

    def get(self) -> CurrencyPreferences:
        with self._lock:
            return self._preferences

    def set(self, preferences: CurrencyPreferences) -> bool:
        """
        Set and persist preferences.

        Returns:
            True if the preferences changed
        """
        with self._lock:
            if preferences == self._preferences:
                return False
            self._preferences = preferences
            self._save()
        logger.info("Currency preferences set: %s/%s",
                    preferences.main_currency, preferences.secondary_currency)
        return True
