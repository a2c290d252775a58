"""
Ingestion engine — polling loop, block processor, persistence policy.

Each tick polls the chain head; when it is ahead of the cursor the engine
scans every height from cursor+1 to head for the addresses subscribed at the
start of the batch. Fetches happen without holding the ledger lock; the
append and cursor advance of one height happen under one write lock.

Failure policy: a failed fetch for one address at one height is logged and
skipped, and the cursor still advances past that height. Only persistence
of the whole snapshot is retried (on the next save).
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Iterable, Protocol

from txwatch.errors import LedgerError, PersistenceError
from txwatch.models import Transaction
from txwatch.storage.base import Storage
from txwatch.txwatch_logging import get_logger
from txwatch.watcher.ledger import SubscriptionLedger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 10.0


class LedgerSource(Protocol):
    """What the engine needs from a ledger client (LedgerClient or a test double)."""

    def latest_height(self) -> int: ...

    def transactions_at(self, height: int, address: str) -> list[Transaction]: ...

    def transaction_receipt(self, tx_hash: str) -> dict: ...

    def close(self) -> None: ...


class EngineState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    STOPPED = "stopped"


class IngestionEngine:
    """
    Single writer of the subscription ledger.

    run() blocks until stop_event is set, then performs one final save.
    tick() / process_range() / process_height() are the individual steps,
    usable directly from tests without the timer.
    """

    def __init__(
        self,
        ledger: SubscriptionLedger,
        client: LedgerSource,
        storage: Storage,
        *,
        poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        enrich_receipts: bool = False,
        stop_event: threading.Event | None = None,
    ) -> None:
        if poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        self._ledger = ledger
        self._client = client
        self._storage = storage
        self._poll_interval_sec = poll_interval_sec
        self._enrich_receipts = enrich_receipts
        self._stop_event = stop_event or threading.Event()
        self._state = EngineState.IDLE

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def stop(self) -> None:
        """Request shutdown; run() exits after the height in progress and saves once."""
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Tick every poll_interval_sec until stopped; final unconditional save on exit."""
        if self._state is EngineState.STOPPED:
            raise RuntimeError("engine already stopped")
        logger.info(
            "engine_started",
            poll_interval_sec=self._poll_interval_sec,
            cursor=self._ledger.current_height(),
            storage=self._storage.describe(),
        )
        try:
            while not self._stop_event.wait(timeout=self._poll_interval_sec):
                try:
                    self.tick()
                except Exception as e:
                    logger.exception("engine_tick_error", error=str(e))
        finally:
            self._state = EngineState.STOPPED
            self.persist()
            logger.info("engine_stopped", cursor=self._ledger.current_height())

    def tick(self) -> int:
        """
        Poll the chain head and process the backlog. Returns new transactions recorded.

        A snapshot is saved when at least one new transaction was recorded.
        """
        if self._state is EngineState.STOPPED:
            return 0
        try:
            head = self._client.latest_height()
        except LedgerError as e:
            logger.warning("engine_head_poll_failed", error=str(e))
            return 0
        cursor = self._ledger.current_height()
        if head <= cursor:
            logger.debug("engine_idle_tick", head=head, cursor=cursor)
            return 0

        self._state = EngineState.PROCESSING
        try:
            recorded = self.process_range(cursor + 1, head)
        finally:
            if self._state is EngineState.PROCESSING:
                self._state = EngineState.IDLE
        if recorded:
            self.persist()
        return recorded

    # ------------------------------------------------------------------
    # Block processing
    # ------------------------------------------------------------------

    def process_range(self, start: int, end: int, addresses: Iterable[str] | None = None) -> int:
        """
        Process heights start..end inclusive, ascending.

        The address set is fixed for the whole range (defaults to a snapshot of
        the current subscriptions). If stop is requested, the remaining heights
        are left for the next run; the height in progress is always finished.
        """
        batch = sorted(addresses if addresses is not None else self._ledger.addresses())
        logger.info("engine_batch_started", start=start, end=end, address_count=len(batch))
        recorded = 0
        for height in range(start, end + 1):
            if self._stop_event.is_set():
                logger.info("engine_batch_abandoned", next_height=height, end=end)
                break
            recorded += self.process_height(height, batch)
        logger.info("engine_batch_done", cursor=self._ledger.current_height(), recorded=recorded)
        return recorded

    def process_height(self, height: int, addresses: Iterable[str]) -> int:
        """Fetch, dedup and append one height for the given addresses; advance the cursor."""
        found: dict[str, list[Transaction]] = {}
        failures = 0
        for address in addresses:
            try:
                found[address] = self._client.transactions_at(height, address)
            except LedgerError as e:
                failures += 1
                logger.warning(
                    "engine_fetch_failed",
                    address=address,
                    height=height,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        if self._enrich_receipts:
            found = self._enrich(found)

        appended = self._ledger.record_height(height, found)
        for address, tx in appended:
            logger.info(
                "engine_tx_recorded",
                address=address,
                height=height,
                tx_hash=tx.hash,
            )
        if failures:
            logger.warning("engine_height_incomplete", height=height, failed_addresses=failures)
        return len(appended)

    def _enrich(self, found: dict[str, list[Transaction]]) -> dict[str, list[Transaction]]:
        """Replace not-yet-recorded transactions with receipt-enriched copies."""
        receipts: dict[str, Transaction] = {}
        enriched: dict[str, list[Transaction]] = {}
        for address, txs in found.items():
            known = {tx.hash for tx in (self._ledger.transactions_for(address) or ())}
            out: list[Transaction] = []
            for tx in txs:
                if tx.hash in known:
                    out.append(tx)
                    continue
                if tx.hash not in receipts:
                    try:
                        receipts[tx.hash] = tx.with_receipt(self._client.transaction_receipt(tx.hash))
                    except LedgerError as e:
                        logger.warning("engine_receipt_failed", tx_hash=tx.hash, error=str(e))
                        receipts[tx.hash] = tx
                out.append(receipts[tx.hash])
            enriched[address] = out
        return enriched

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> bool:
        """Save a snapshot of the ledger. Failure is logged; memory state is kept."""
        snapshot = self._ledger.snapshot()
        try:
            self._storage.save(snapshot)
        except PersistenceError as e:
            logger.error(
                "engine_persist_failed",
                storage=self._storage.describe(),
                cursor=snapshot.last_height,
                error=str(e),
            )
            return False
        return True
