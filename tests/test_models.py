"""
Tests for Transaction decoding from JSON-RPC block items and hex helpers.
"""

from __future__ import annotations

import pytest

from txwatch.errors import DecodeError
from txwatch.hexutil import hex_to_int, int_to_hex, normalize_address
from txwatch.models import Transaction

RAW_ITEM = {
    "hash": "0xABC1",
    "blockHash": "0xBEEF",
    "blockNumber": "0x66",
    "from": "0x" + "A" * 40,
    "to": "0x" + "B" * 40,
    "type": "0x2",
    "gas": "0x5208",
    "gasPrice": "0x6fc23ac00",
    "nonce": "0x7",
    "input": "0x",
}


def test_from_rpc_item_decodes_and_lowercases():
    tx = Transaction.from_rpc_item(RAW_ITEM)
    assert tx.hash == "0xabc1"
    assert tx.block_hash == "0xbeef"
    assert tx.block_number == 102
    assert tx.sender == "0x" + "a" * 40
    assert tx.recipient == "0x" + "b" * 40
    assert tx.tx_type == 2
    assert tx.gas_used == 21000
    assert tx.gas_price == 30_000_000_000
    assert tx.nonce == 7
    assert tx.contract_address is None


def test_from_rpc_item_contract_creation():
    """Null 'to' is a contract creation; legacy items may omit 'type'."""
    item = dict(RAW_ITEM, to=None)
    item.pop("type")
    tx = Transaction.from_rpc_item(item)
    assert tx.recipient is None
    assert tx.tx_type is None


@pytest.mark.parametrize("field", ["hash", "from", "blockNumber", "gasPrice"])
def test_from_rpc_item_missing_field(field):
    item = dict(RAW_ITEM)
    item.pop(field)
    with pytest.raises(DecodeError):
        Transaction.from_rpc_item(item)


def test_from_rpc_item_bad_hex():
    with pytest.raises(DecodeError, match="nonce"):
        Transaction.from_rpc_item(dict(RAW_ITEM, nonce="7"))


def test_with_receipt_sets_gas_used_and_contract():
    tx = Transaction.from_rpc_item(dict(RAW_ITEM, to=None))
    enriched = tx.with_receipt({"gasUsed": "0x5000", "contractAddress": "0x" + "C" * 40})
    assert enriched.gas_used == 0x5000
    assert enriched.contract_address == "0x" + "c" * 40
    # Original is frozen and untouched
    assert tx.gas_used == 21000
    assert tx.contract_address is None


def test_to_dict_from_dict():
    tx = Transaction.from_rpc_item(RAW_ITEM)
    data = tx.to_dict()
    assert data["from"] == tx.sender
    assert data["blockNumber"] == 102
    assert Transaction.from_dict(data) == tx


def test_from_dict_rejects_missing_key():
    data = Transaction.from_rpc_item(RAW_ITEM).to_dict()
    del data["hash"]
    with pytest.raises(KeyError):
        Transaction.from_dict(data)


def test_hex_helpers():
    assert hex_to_int("0x0") == 0
    assert hex_to_int("0x") == 0
    assert hex_to_int("0x1b4") == 436
    assert int_to_hex(436) == "0x1b4"
    with pytest.raises(DecodeError, match="result"):
        hex_to_int(None, "result")
    with pytest.raises(DecodeError):
        hex_to_int("0xzz")
    with pytest.raises(ValueError):
        int_to_hex(-1)


@pytest.mark.parametrize("raw", ["0x-1", "0x+5", "0x1_0", "0x 5", "0x5 ", "0x5\n"])
def test_hex_to_int_rejects_what_int_would_accept(raw):
    """Signs, underscores and whitespace are not hex quantities."""
    with pytest.raises(DecodeError, match="blockNumber"):
        hex_to_int(raw, "blockNumber")


def test_rpc_item_with_negative_block_number_rejected():
    with pytest.raises(DecodeError):
        Transaction.from_rpc_item(dict(RAW_ITEM, blockNumber="0x-66"))


def test_normalize_address():
    assert normalize_address("  0x" + "AB" * 20 + " ") == "0x" + "ab" * 20
    with pytest.raises(ValueError, match="non-empty"):
        normalize_address("   ")
    with pytest.raises(ValueError, match="Invalid address"):
        normalize_address("0x123")
    with pytest.raises(ValueError, match="Invalid address"):
        normalize_address("0x" + "g" * 40)
