"""
Snapshot storage — pluggable persistence of the watch-list and cursor.

JsonFileStorage for a single file, SqlStorage for any SQLAlchemy database.
create_storage() picks one from Settings.
"""

from __future__ import annotations

from txwatch.config import Settings
from txwatch.storage.base import Snapshot, Storage
from txwatch.storage.json_file import JsonFileStorage
from txwatch.storage.sql import SqlStorage


def create_storage(settings: Settings) -> Storage:
    """Build the storage backend named by settings.storage_backend for settings.rpc_url."""
    if settings.storage_backend == "sql":
        return SqlStorage(settings.database_url, endpoint=settings.rpc_url)
    return JsonFileStorage(settings.state_file, endpoint=settings.rpc_url)


__all__ = [
    "JsonFileStorage",
    "Snapshot",
    "SqlStorage",
    "Storage",
    "create_storage",
]
