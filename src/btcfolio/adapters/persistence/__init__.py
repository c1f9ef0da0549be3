# src/btcfolio/adapters/persistence/__init__.py
"""
Persistence Adapters - Data Storage

This package contains adapters for persisting data:
- Last known BTC price snapshot (JSON)
- Currency preferences (JSON)
"""

from btcfolio.adapters.persistence.file_store import load_snapshot, save_snapshot
from btcfolio.adapters.persistence.preferences_store import PreferencesStore

__all__ = [
    "load_snapshot",
    "save_snapshot",
    "PreferencesStore",
]
