"""
Subscription ledger — address -> transaction log plus the processed-height cursor.

One readers-writer lock guards the whole ledger (map and cursor) as one unit.
Readers (API handlers) share the lock; the ingestion engine takes it
exclusively only for the in-memory append and cursor advance of one height.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Mapping

from txwatch.hexutil import normalize_address
from txwatch.models import Transaction
from txwatch.storage.base import Snapshot
from txwatch.txwatch_logging import get_logger

logger = get_logger(__name__)


class ReadWriteLock:
    """
    Writer-preferring readers-writer lock.

    New readers wait while a writer is waiting, so a steady stream of API
    reads cannot starve the engine's append step.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SubscriptionLedger:
    """
    In-memory watch-list: normalized address -> ordered transaction log.

    Invariants:
    - no log holds two transactions with the same hash;
    - last_height never decreases except through restore();
    - membership only grows (there is no unsubscribe).
    """

    def __init__(self, last_height: int = 0) -> None:
        if last_height < 0:
            raise ValueError("last_height must be >= 0")
        self._lock = ReadWriteLock()
        self._logs: dict[str, list[Transaction]] = {}
        self._last_height = last_height

    # ------------------------------------------------------------------
    # Reader / subscriber operations
    # ------------------------------------------------------------------

    def subscribe(self, address: str) -> bool:
        """
        Add an address with an empty log.

        Returns True if newly added, False if already subscribed.
        Raises ValueError for a malformed address (state untouched).
        """
        addr = normalize_address(address)
        with self._lock.write_locked():
            if addr in self._logs:
                return False
            self._logs[addr] = []
        logger.info("ledger_subscribed", address=addr)
        return True

    def addresses(self) -> frozenset[str]:
        """Point-in-time copy of the subscribed addresses."""
        with self._lock.read_locked():
            return frozenset(self._logs)

    def current_height(self) -> int:
        with self._lock.read_locked():
            return self._last_height

    def transactions_for(self, address: str) -> tuple[Transaction, ...] | None:
        """
        Immutable copy of an address log.

        None means the address is not subscribed; an empty tuple means it is
        subscribed but nothing matched yet. Malformed addresses are unknown.
        """
        try:
            addr = normalize_address(address)
        except ValueError:
            return None
        with self._lock.read_locked():
            log = self._logs.get(addr)
            return tuple(log) if log is not None else None

    # ------------------------------------------------------------------
    # Engine operations
    # ------------------------------------------------------------------

    def record_height(self, height: int, found: Mapping[str, Iterable[Transaction]]) -> list[tuple[str, Transaction]]:
        """
        Append newly found transactions and mark `height` processed, atomically.

        Transactions whose hash is already in the address log (or repeated
        within `found`) are dropped. Addresses not subscribed are ignored.
        The cursor moves to max(cursor, height).

        Returns the (address, transaction) pairs actually appended.
        """
        appended: list[tuple[str, Transaction]] = []
        with self._lock.write_locked():
            for address, txs in found.items():
                log = self._logs.get(address)
                if log is None:
                    continue
                for tx in txs:
                    if self._contains(log, tx.hash):
                        continue
                    log.append(tx)
                    appended.append((address, tx))
            if height > self._last_height:
                self._last_height = height
        return appended

    @staticmethod
    def _contains(log: list[Transaction], tx_hash: str) -> bool:
        for tx in log:
            if tx.hash == tx_hash:
                return True
        return False

    def snapshot(self) -> Snapshot:
        """Consistent copy of cursor and all logs, for persistence."""
        with self._lock.read_locked():
            return Snapshot(
                last_height=self._last_height,
                subscriptions={a: list(log) for a, log in self._logs.items()},
            )

    def restore(self, snapshot: Snapshot) -> None:
        """Replace all state with a loaded snapshot (startup only)."""
        logs: dict[str, list[Transaction]] = {}
        for address, txs in snapshot.subscriptions.items():
            log: list[Transaction] = []
            for tx in txs:
                if not self._contains(log, tx.hash):
                    log.append(tx)
            logs[address] = log
        with self._lock.write_locked():
            self._logs = logs
            self._last_height = snapshot.last_height
