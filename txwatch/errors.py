"""
Error taxonomy for tx-watch.

Ledger errors are non-fatal to the polling loop; persistence errors are
non-fatal on save; StartupError is the only error that aborts the process.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures talking to the ledger RPC endpoint."""


class TransportError(LedgerError):
    """Endpoint unreachable, timed out, or answered with an HTTP error status."""


class DecodeError(LedgerError):
    """Response body is not JSON or lacks / malforms an expected field."""


class RPCError(LedgerError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(f"{message} (code={code})")
        self.code = code


class PersistenceError(Exception):
    """Snapshot could not be saved or the stored snapshot could not be read."""


class StartupError(Exception):
    """Watcher cannot start (initial chain height unavailable)."""
