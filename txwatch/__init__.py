"""
tx-watch — incremental transaction recorder for a watch-list of EVM addresses.

Polls a JSON-RPC ledger endpoint for new blocks, records every transaction
touching a subscribed address, and persists the watch-list with its
transaction logs. Modular layout: rpc client, watcher engine, storage
backends, API server.
"""

__version__ = "0.1.0"
