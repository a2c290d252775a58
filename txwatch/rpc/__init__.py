"""
Ledger RPC client package.

Talks JSON-RPC 2.0 to an EVM node: chain head height, per-address block
filtering and transaction receipts.
"""

from txwatch.rpc.client import LedgerClient

__all__ = ["LedgerClient"]
