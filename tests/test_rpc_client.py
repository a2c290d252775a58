"""
Tests for LedgerClient against a scripted JSON-RPC node (httpx.MockTransport).
"""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import ADDR_A, ADDR_B, ENDPOINT
from txwatch.errors import DecodeError, LedgerError, RPCError, TransportError
from txwatch.rpc import LedgerClient


def _item(tx_hash: str, sender: str, recipient: str | None) -> dict:
    return {
        "hash": tx_hash,
        "blockHash": "0x" + "f" * 64,
        "blockNumber": "0x66",
        "from": sender,
        "to": recipient,
        "type": "0x2",
        "gas": "0x5208",
        "gasPrice": "0x1",
        "nonce": "0x0",
    }


BLOCK_102 = {
    "number": "0x66",
    "transactions": [
        _item("0x01", ADDR_B, ADDR_A.upper().replace("0X", "0x")),
        _item("0x02", "0x" + "9" * 40, "0x" + "8" * 40),
        _item("0x03", ADDR_A, None),
    ],
}


class Node:
    """Answers JSON-RPC methods from a dict; records every request body."""

    def __init__(self, results: dict) -> None:
        self.results = results
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        result = self.results[body["method"]]
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


def _client(handler) -> LedgerClient:
    return LedgerClient(ENDPOINT, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_latest_height():
    node = Node({"eth_blockNumber": "0x1b4"})
    with _client(node) as client:
        assert client.latest_height() == 436
    req = node.requests[0]
    assert req["jsonrpc"] == "2.0"
    assert req["method"] == "eth_blockNumber"
    assert req["params"] == []


def test_transactions_at_filters_by_sender_or_recipient():
    node = Node({"eth_getBlockByNumber": BLOCK_102})
    client = _client(node)
    txs = client.transactions_at(102, ADDR_A)
    assert [tx.hash for tx in txs] == ["0x01", "0x03"]
    assert txs[0].recipient == ADDR_A
    assert txs[1].recipient is None
    assert node.requests[0]["params"] == ["0x66", True]


def test_block_is_cached_per_height():
    node = Node({"eth_getBlockByNumber": BLOCK_102})
    client = _client(node)
    client.transactions_at(102, ADDR_A)
    assert [tx.hash for tx in client.transactions_at(102, ADDR_B)] == ["0x01"]
    assert len(node.requests) == 1
    client.transactions_at(103, ADDR_A)
    assert len(node.requests) == 2


def test_ids_increase():
    node = Node({"eth_blockNumber": "0x1"})
    client = _client(node)
    client.latest_height()
    client.latest_height()
    assert [r["id"] for r in node.requests] == [1, 2]


def test_http_error_is_transport_error():
    node = Node({"eth_blockNumber": httpx.Response(503, text="unavailable")})
    with pytest.raises(TransportError):
        _client(node).latest_height()


def test_connection_error_is_transport_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        _client(refuse).latest_height()


def test_non_json_body_is_decode_error():
    node = Node({"eth_blockNumber": httpx.Response(200, text="<html>")})
    with pytest.raises(DecodeError):
        _client(node).latest_height()


def test_rpc_error_object():
    error = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}}
    node = Node({"eth_getBlockByNumber": httpx.Response(200, json=error)})
    with pytest.raises(RPCError) as exc_info:
        _client(node).transactions_at(1, ADDR_A)
    assert exc_info.value.code == -32000
    assert "header not found" in str(exc_info.value)


def test_missing_block_is_decode_error():
    node = Node({"eth_getBlockByNumber": None})
    with pytest.raises(DecodeError, match="not found"):
        _client(node).transactions_at(1, ADDR_A)


def test_malformed_transaction_entry():
    node = Node({"eth_getBlockByNumber": {"transactions": ["0xhashonly"]}})
    with pytest.raises(DecodeError):
        _client(node).transactions_at(1, ADDR_A)


def test_bad_height_hex_is_ledger_error():
    node = Node({"eth_blockNumber": "latest"})
    with pytest.raises(LedgerError):
        _client(node).latest_height()


def test_transaction_receipt():
    receipt = {"gasUsed": "0x5208", "contractAddress": None}
    node = Node({"eth_getTransactionReceipt": receipt})
    assert _client(node).transaction_receipt("0x01") == receipt
    node.results["eth_getTransactionReceipt"] = None
    with pytest.raises(DecodeError):
        _client(node).transaction_receipt("0x01")


def test_close_leaves_injected_client_open():
    http = httpx.Client(transport=httpx.MockTransport(Node({"eth_blockNumber": "0x1"})))
    client = LedgerClient(ENDPOINT, http_client=http)
    client.close()
    assert not http.is_closed
    http.close()


def test_empty_endpoint_rejected():
    with pytest.raises(ValueError):
        LedgerClient("  ")
