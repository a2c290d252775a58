"""
API server package — HTTP interface to the watcher.

Subscribes addresses and serves the current height and recorded transactions;
all state lives in the WatcherService handed to create_app().
"""

from txwatch.api_server.server import create_app, get_watcher

__all__ = ["create_app", "get_watcher"]
