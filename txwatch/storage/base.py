"""
Storage abstraction for watcher snapshots.

A snapshot is the full persisted state of one endpoint: the cursor and every
subscribed address with its transaction log. Backends are swappable (JSON
file, SQL database); all access goes through the abstract interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from txwatch.errors import PersistenceError
from txwatch.hexutil import normalize_address
from txwatch.models import Transaction


@dataclass
class Snapshot:
    """Cursor plus address -> transaction log, for one endpoint."""

    last_height: int = 0
    subscriptions: dict[str, list[Transaction]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.last_height == 0 and not self.subscriptions

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastProcessedHeight": self.last_height,
            "subscribedAddresses": {
                address: [tx.to_dict() for tx in txs]
                for address, txs in self.subscriptions.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        """Parse the persisted shape; raises PersistenceError if malformed."""
        try:
            height = int(data["lastProcessedHeight"])
            raw_subs = data.get("subscribedAddresses") or {}
            if height < 0 or not isinstance(raw_subs, dict):
                raise ValueError("negative height or subscribedAddresses not an object")
            subscriptions = {
                normalize_address(str(address)): [Transaction.from_dict(tx) for tx in (txs or [])]
                for address, txs in raw_subs.items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PersistenceError(f"malformed snapshot: {e}") from e
        return cls(last_height=height, subscriptions=subscriptions)


class Storage(ABC):
    """Persists and restores the snapshot of one ledger endpoint."""

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """
        Atomically replace the stored snapshot for this endpoint.

        Raises:
            PersistenceError: nothing was written; the previous snapshot is intact.
        """

    @abstractmethod
    def load(self) -> Snapshot:
        """
        Return the stored snapshot, or an empty one if nothing is stored.

        Raises:
            PersistenceError: stored content exists but cannot be read.
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description for logs."""

    def close(self) -> None:
        """Release backend resources; no-op by default."""
