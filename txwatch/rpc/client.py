"""
Ledger JSON-RPC client — chain head and per-address block filtering.

Responsibilities:
- Perform JSON-RPC 2.0 calls over HTTP (httpx) against one endpoint.
- Map transport, decoding and node-side failures onto the LedgerError taxonomy.
- Filter a block's transactions to those sent from or to an address and
  return them as structured Transaction records.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from txwatch.errors import DecodeError, RPCError, TransportError
from txwatch.hexutil import hex_to_int, int_to_hex
from txwatch.models import Transaction
from txwatch.txwatch_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 10.0


class LedgerClient:
    """
    Blocking JSON-RPC client bound to one ledger endpoint.

    The most recently fetched block is cached by height, so scanning one
    height for N subscribed addresses costs a single eth_getBlockByNumber.
    Not thread-safe; owned by the ingestion engine thread.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        http_client: httpx.Client | None = None,
    ) -> None:
        """
        Args:
            endpoint: JSON-RPC HTTP URL (e.g. https://ethereum-rpc.publicnode.com).
            timeout_sec: Per-request HTTP timeout; bounds how long shutdown can
                wait on an in-flight call.
            http_client: Optional preconfigured client (tests pass one with
                httpx.MockTransport). Closed by close() only if created here.
        """
        if not endpoint.strip():
            raise ValueError("endpoint must be non-empty")
        self.endpoint = endpoint.strip()
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=httpx.Timeout(timeout_sec))
        self._ids = itertools.count(1)
        self._cached_height: int | None = None
        self._cached_block: list[dict[str, Any]] = []

    def __enter__(self) -> "LedgerClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def latest_height(self) -> int:
        """Current chain height (eth_blockNumber)."""
        return hex_to_int(self._call("eth_blockNumber", []), "result")

    def transactions_at(self, height: int, address: str) -> list[Transaction]:
        """
        Transactions in block `height` where `address` is sender or recipient.

        Raises:
            TransportError / DecodeError / RPCError: fetching or decoding failed.
        """
        address = address.lower()
        matches: list[Transaction] = []
        for item in self._block_transactions(height):
            if not isinstance(item, dict):
                raise DecodeError(f"block {height}: transaction entry is not an object")
            sender = item.get("from")
            recipient = item.get("to")
            if not isinstance(sender, str):
                raise DecodeError(f"block {height}: transaction without 'from'")
            if sender.lower() == address or (
                isinstance(recipient, str) and recipient.lower() == address
            ):
                matches.append(Transaction.from_rpc_item(item))
        return matches

    def transaction_receipt(self, tx_hash: str) -> dict[str, Any]:
        """eth_getTransactionReceipt; raises DecodeError if the node has no receipt."""
        result = self._call("eth_getTransactionReceipt", [tx_hash])
        if not isinstance(result, dict):
            raise DecodeError(f"no receipt for {tx_hash}")
        return result

    def _block_transactions(self, height: int) -> list[dict[str, Any]]:
        if self._cached_height == height:
            return self._cached_block
        block = self._call("eth_getBlockByNumber", [int_to_hex(height), True])
        if not isinstance(block, dict):
            raise DecodeError(f"block {height}: not found")
        transactions = block.get("transactions")
        if not isinstance(transactions, list):
            raise DecodeError(f"block {height}: 'transactions' is not a list")
        self._cached_height = height
        self._cached_block = transactions
        return transactions

    def _call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; return its result or raise a LedgerError."""
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._http.post(self.endpoint, json=body)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"{method}: {e}") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise DecodeError(f"{method}: response is not JSON") from e
        if not isinstance(data, dict):
            raise DecodeError(f"{method}: response is not a JSON object")
        if data.get("error") is not None:
            err = data["error"]
            if isinstance(err, dict):
                raise RPCError(f"{method}: {err.get('message', err)}", err.get("code"))
            raise RPCError(f"{method}: {err}")
        if "result" not in data:
            raise DecodeError(f"{method}: response has no result")
        logger.debug("rpc_call_ok", method=method)
        return data["result"]
