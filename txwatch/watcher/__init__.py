"""
Address watcher: subscription ledger, ingestion engine and the service facade.

The engine polls the ledger for new blocks, records transactions touching
subscribed addresses, and persists snapshots through a Storage backend.
"""

from txwatch.watcher.engine import EngineState, IngestionEngine
from txwatch.watcher.ledger import ReadWriteLock, SubscriptionLedger
from txwatch.watcher.service import WatcherService

__all__ = [
    "EngineState",
    "IngestionEngine",
    "ReadWriteLock",
    "SubscriptionLedger",
    "WatcherService",
]
