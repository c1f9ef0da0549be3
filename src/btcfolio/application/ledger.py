# src/btcfolio/application/ledger.py
"""
Ledger - Read Interface to the Transaction Store

This module defines what the valuation caches need from the transaction
ledger (a snapshot, the count, the latest timestamp and change notifications)
and ships an in-memory implementation used by the composition root and tests.
Every mutation notifies subscribers synchronously, after the change is applied,
so the summary cache is invalidated before the mutating call returns.

Files that USE this module:
- btcfolio.application.valuation_service (reads snapshots, subscribes to changes)
- btcfolio.application.rate_cache (latest recorded price for the fallback chain)
- btcfolio.app (builds the default ledger)
- tests.* (InMemoryLedger as test fixture)

Files that this module USES:
- btcfolio.domain.models (Transaction)
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from btcfolio.domain.models import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    """A ledger mutation: action is add, update, delete, bulk_delete or import."""
    action: str
    transaction_ids: Tuple[str, ...] = ()


LedgerListener = Callable[[LedgerEvent], None]


class Ledger(Protocol):
    """Read side of the transaction ledger."""

    def snapshot(self) -> List[Transaction]:
        ...

    def count(self) -> int:
        ...

    def latest_timestamp(self) -> Optional[datetime]:
        ...

    def subscribe(self, callback: LedgerListener) -> None:
        ...


class InMemoryLedger:
    """Thread-safe in-memory ledger keyed by transaction id."""

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._transactions: Dict[str, Transaction] = {}
        self._listeners: List[LedgerListener] = []
        self._lock = threading.Lock()
        for tx in transactions:
            self._transactions[tx.id] = tx

    # --- read side ---

    def snapshot(self) -> List[Transaction]:
        """Transactions ordered by date, oldest first."""
        with self._lock:
            return sorted(self._transactions.values(), key=lambda tx: tx.date)

    def count(self) -> int:
        with self._lock:
            return len(self._transactions)

    def latest_timestamp(self) -> Optional[datetime]:
        with self._lock:
            if not self._transactions:
                return None
            return max(tx.date for tx in self._transactions.values())

    def subscribe(self, callback: LedgerListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    # --- write side ---

    def _notify(self, event: LedgerEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error("Ledger listener failed for %s event: %s", event.action, e, exc_info=True)

    def add(self, tx: Transaction) -> None:
        """
        Add a transaction.

        Raises:
            ValueError: A transaction with the same id already exists
        """
        with self._lock:
            if tx.id in self._transactions:
                raise ValueError(f"Transaction {tx.id} already exists")
            self._transactions[tx.id] = tx
        self._notify(LedgerEvent("add", (tx.id,)))

    def update(self, tx: Transaction) -> None:
        """
        Replace an existing transaction.

        Raises:
            KeyError: No transaction with that id
        """
        with self._lock:
            if tx.id not in self._transactions:
                raise KeyError(tx.id)
            self._transactions[tx.id] = tx
        self._notify(LedgerEvent("update", (tx.id,)))

    def delete(self, transaction_id: str) -> bool:
        """Delete a transaction; returns False when it did not exist."""
        with self._lock:
            removed = self._transactions.pop(transaction_id, None)
        if removed is None:
            return False
        self._notify(LedgerEvent("delete", (transaction_id,)))
        return True

    def bulk_delete(self, transaction_ids: Iterable[str]) -> int:
        """Delete several transactions; returns how many were removed."""
        removed: List[str] = []
        with self._lock:
            for transaction_id in transaction_ids:
                if self._transactions.pop(transaction_id, None) is not None:
                    removed.append(transaction_id)
        if removed:
            self._notify(LedgerEvent("bulk_delete", tuple(removed)))
        return len(removed)

    def import_transactions(self, transactions: Iterable[Transaction]) -> int:
        """
        Import transactions, replacing any with the same id.

        Returns:
            Number of transactions imported
        """
        imported: List[str] = []
        with self._lock:
            for tx in transactions:
                self._transactions[tx.id] = tx
                imported.append(tx.id)
        if imported:
            logger.info("Imported %d transactions", len(imported))
            self._notify(LedgerEvent("import", tuple(imported)))
        return len(imported)


def latest_recorded_prices(ledger: Ledger) -> Dict[str, float]:
    """
    BTC prices recorded on the most recent transaction that has one.

    Returns:
        Mapping currency -> recorded price (empty when the ledger has no price)
    """
    for tx in reversed(ledger.snapshot()):
        prices: Dict[str, float] = {}
        if tx.original.price > 0:
            prices[tx.original_currency] = tx.original.price
        for code, values in tx.base.items():
            if values.price > 0:
                prices[code] = values.price
        if prices:
            return prices
    return {}
