# src/btcfolio/adapters/persistence/file_store.py
"""
File Store - Last Known BTC Price on Disk

This module persists the last successfully fetched price snapshot as JSON so a
restarted process can serve a real (if old) price before the first fetch
completes. Writes are atomic; a corrupt file is moved aside and ignored.

Files that USE this module:
- btcfolio.application.rate_cache (RateCache saves after each successful price fetch
  and loads on cold start)
- tests.test_file_store (unit tests)

Files that this module USES:
- btcfolio.config (settings for the cache file path)
- btcfolio.domain.models (PriceSnapshot)
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional

from btcfolio.config import settings
from btcfolio.domain.models import PriceSnapshot, SOURCE_DISK

log = logging.getLogger(__name__)


def _cache_path(path: Optional[Path] = None) -> Path:
    """
    Resolve the snapshot file path and ensure its directory exists.

    Args:
        path: Explicit path, defaults to settings.price_cache_file
    """
    p = Path(path) if path is not None else settings.price_cache_file
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def save_snapshot(snap: PriceSnapshot, path: Optional[Path] = None) -> None:
    """
    Save a price snapshot using temp file + atomic rename.

    Args:
        snap: Snapshot to save
        path: Target file, defaults to settings.price_cache_file

    Raises:
        RuntimeError: The file could not be written
    """
    p = _cache_path(path)
    temp_fd, temp_path = tempfile.mkstemp(suffix=".json.tmp", dir=str(p.parent), text=True)

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            json.dump(snap.to_json(), f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, str(p))
        log.debug("Saved price snapshot to %s", p)
    except Exception as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise RuntimeError(f"Failed to save price cache file: {e}") from e


def load_snapshot(path: Optional[Path] = None) -> Optional[PriceSnapshot]:
    """
    Load the last saved price snapshot.

    The returned snapshot keeps its original capture time and is marked as
    coming from disk.

    Returns:
        PriceSnapshot, or None when the file is missing, corrupt or incomplete
    """
    p = _cache_path(path)
    if not p.exists():
        return None

    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        backup_path = p.with_suffix(".json.corrupt")
        try:
            shutil.copy2(p, backup_path)
            p.unlink()
            log.warning("Price cache file corrupted, backed up to %s: %s", backup_path, e)
        except OSError as backup_error:
            log.error("Failed to backup corrupt price cache file: %s", backup_error)
        return None
    except OSError as e:
        log.error("Unable to read price cache file %s: %s", p, e)
        return None

    try:
        snap = PriceSnapshot.from_json(data)
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        log.warning("Price cache file schema mismatch, ignoring it: %s", e)
        return None

    if snap.price_a <= 0 or snap.price_b <= 0:
        log.warning("Price cache file holds non-positive prices, ignoring it")
        return None
    return replace(snap, source=SOURCE_DISK)
