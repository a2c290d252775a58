"""
Watcher service — the public, thread-safe face of the ingestion engine.

Constructed once at startup and handed to whoever needs it (the API server
receives it through dependency injection). start() restores persisted state
and launches the engine thread; stop() cancels it, waits a bounded time, and
lets the engine perform its final save.
"""

from __future__ import annotations

import threading

from txwatch.config import Settings
from txwatch.errors import LedgerError, PersistenceError, StartupError
from txwatch.models import Transaction
from txwatch.rpc import LedgerClient
from txwatch.storage import Storage, create_storage
from txwatch.storage.base import Snapshot
from txwatch.txwatch_logging import get_logger
from txwatch.watcher.engine import (
    DEFAULT_POLL_INTERVAL_SEC,
    EngineState,
    IngestionEngine,
    LedgerSource,
)
from txwatch.watcher.ledger import SubscriptionLedger

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


class WatcherService:
    """Owns the ledger, the engine and its thread; exposes the read/subscribe API."""

    def __init__(
        self,
        client: LedgerSource,
        storage: Storage,
        *,
        start_height: int | None = None,
        poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        shutdown_timeout_sec: float = SHUTDOWN_JOIN_TIMEOUT_SEC,
        enrich_receipts: bool = False,
    ) -> None:
        """
        Args:
            client: Ledger client (LedgerClient in production).
            storage: Snapshot storage for this client's endpoint.
            start_height: Initial cursor when nothing usable is persisted;
                heights after it are scanned. None means the chain tip at start().
            poll_interval_sec: Seconds between ticks.
            shutdown_timeout_sec: Max seconds stop() waits for the engine thread.
            enrich_receipts: Fetch receipts for new transactions (gas used,
                created contract address).
        """
        if start_height is not None and start_height < 0:
            raise ValueError("start_height must be >= 0")
        self._client = client
        self._storage = storage
        self._start_height = start_height
        self._shutdown_timeout_sec = shutdown_timeout_sec
        self._ledger = SubscriptionLedger()
        self._engine = IngestionEngine(
            self._ledger,
            client,
            storage,
            poll_interval_sec=poll_interval_sec,
            enrich_receipts=enrich_receipts,
        )
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "WatcherService":
        """Build the production client and storage from settings."""
        client = LedgerClient(settings.rpc_url, timeout_sec=settings.rpc_timeout_sec)
        return cls(
            client,
            create_storage(settings),
            start_height=settings.start_height,
            poll_interval_sec=settings.poll_interval_sec,
            shutdown_timeout_sec=settings.shutdown_timeout_sec,
            enrich_receipts=settings.enrich_receipts,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Restore state and launch the engine thread.

        Raises:
            StartupError: the chain height could not be obtained.
            RuntimeError: start() was already called.
        """
        if self._thread is not None:
            raise RuntimeError("watcher already started")
        try:
            head = self._client.latest_height()
        except LedgerError as e:
            logger.error("service_startup_failed", error=str(e))
            raise StartupError(f"cannot obtain initial chain height: {e}") from e

        self._restore_state(head)
        self._thread = threading.Thread(
            target=self._engine.run,
            name="ingestion-engine",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "service_started",
            storage=self._storage.describe(),
            chain_head=head,
            cursor=self._ledger.current_height(),
            address_count=len(self._ledger.addresses()),
        )

    def _restore_state(self, head: int) -> None:
        try:
            snapshot = self._storage.load()
        except PersistenceError as e:
            logger.warning("service_state_load_failed", storage=self._storage.describe(), error=str(e))
            snapshot = Snapshot()

        if not snapshot.is_empty:
            self._ledger.restore(snapshot)
            if self._start_height is not None:
                logger.info(
                    "service_start_height_ignored",
                    start_height=self._start_height,
                    resumed_height=snapshot.last_height,
                )
            return
        height = self._start_height if self._start_height is not None else head
        self._ledger.restore(Snapshot(last_height=height))

    def stop(self) -> None:
        """Cancel the engine, wait up to shutdown_timeout_sec, release resources."""
        if self._thread is None:
            return
        self._engine.stop()
        self._thread.join(timeout=self._shutdown_timeout_sec)
        if self._thread.is_alive():
            logger.warning("service_shutdown_timeout", timeout_sec=self._shutdown_timeout_sec)
            return
        self._client.close()
        self._storage.close()
        logger.info("service_stopped", cursor=self._ledger.current_height())

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> EngineState:
        return self._engine.state

    @property
    def engine(self) -> IngestionEngine:
        return self._engine

    # ------------------------------------------------------------------
    # Public operations (safe from any thread)
    # ------------------------------------------------------------------

    def subscribe(self, address: str) -> bool:
        """True if newly subscribed, False if already present. ValueError if malformed."""
        return self._ledger.subscribe(address)

    def current_height(self) -> int:
        return self._ledger.current_height()

    def list_subscriptions(self) -> frozenset[str]:
        return self._ledger.addresses()

    def transactions_for(self, address: str) -> tuple[Transaction, ...] | None:
        """Transactions recorded for address; None if the address is not subscribed."""
        return self._ledger.transactions_for(address)
