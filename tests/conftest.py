"""
Pytest fixtures for tx-watch tests. Temporary JSON/SQLite storages and a
scripted in-memory ledger in place of the JSON-RPC endpoint.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from txwatch.errors import LedgerError, TransportError
from txwatch.models import Transaction

ENDPOINT = "http://ledger.test:8545"
ADDR_A = "0x" + "a" * 40
ADDR_B = "0x" + "b" * 40
ADDR_C = "0x" + "c" * 40
OTHER = "0x" + "1" * 40


def make_tx(tx_hash: str, height: int, sender: str = OTHER, recipient: str | None = ADDR_A) -> Transaction:
    return Transaction(
        hash=tx_hash,
        block_hash="0x" + format(height, "064x"),
        block_number=height,
        sender=sender,
        recipient=recipient,
        tx_type=2,
        gas_used=21000,
        gas_price=30_000_000_000,
        nonce=0,
    )


class FakeLedger:
    """
    In-memory stand-in for LedgerClient.

    head: value returned by latest_height() (head_error raises instead).
    blocks: height -> transactions in that block; filtered by sender/recipient.
    failures: (height, address) pairs whose fetch raises TransportError.
    on_fetch: called with (height, address) before each fetch returns.
    """

    def __init__(self, head: int = 0) -> None:
        self.head = head
        self.head_error: LedgerError | None = None
        self.blocks: dict[int, list[Transaction]] = {}
        self.failures: set[tuple[int, str]] = set()
        self.receipts: dict[str, dict[str, Any]] = {}
        self.on_fetch: Callable[[int, str], None] | None = None
        self.fetches: list[tuple[int, str]] = []
        self.receipt_calls: list[str] = []
        self.closed = False

    def add(self, tx: Transaction) -> Transaction:
        self.blocks.setdefault(tx.block_number, []).append(tx)
        return tx

    def latest_height(self) -> int:
        if self.head_error is not None:
            raise self.head_error
        return self.head

    def transactions_at(self, height: int, address: str) -> list[Transaction]:
        self.fetches.append((height, address))
        if self.on_fetch is not None:
            self.on_fetch(height, address)
        if (height, address) in self.failures:
            raise TransportError(f"fetch failed at {height}")
        return [
            tx
            for tx in self.blocks.get(height, [])
            if tx.sender == address or tx.recipient == address
        ]

    def transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        self.receipt_calls.append(tx_hash)
        if tx_hash not in self.receipts:
            raise TransportError(f"no receipt for {tx_hash}")
        return self.receipts[tx_hash]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_ledger():
    return FakeLedger(head=100)


@pytest.fixture
def json_storage(tmp_path):
    from txwatch.storage import JsonFileStorage

    return JsonFileStorage(tmp_path / "data.json", endpoint=ENDPOINT)


@pytest.fixture
def sql_storage(tmp_path):
    from txwatch.storage import SqlStorage

    storage = SqlStorage(f"sqlite:///{tmp_path / 'txwatch.db'}", endpoint=ENDPOINT)
    yield storage
    storage.close()


@pytest.fixture
def service(fake_ledger, json_storage):
    """WatcherService with a long poll interval so the engine never ticks on its own."""
    from txwatch.watcher import WatcherService

    return WatcherService(
        fake_ledger,
        json_storage,
        start_height=100,
        poll_interval_sec=3600,
        shutdown_timeout_sec=5,
    )


@pytest.fixture
def client(service):
    """FastAPI TestClient; the app lifespan starts and stops the service."""
    from fastapi.testclient import TestClient

    from txwatch.api_server import create_app

    with TestClient(create_app(service)) as test_client:
        yield test_client
