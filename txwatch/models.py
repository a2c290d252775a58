"""
Data models for watcher output.

Transaction is the unit recorded per subscribed address. It is built once
from raw eth_getBlockByNumber data by explicit field extraction, so nothing
downstream of the rpc client reads raw JSON payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from txwatch.errors import DecodeError
from txwatch.hexutil import hex_to_int


def _optional_address(value: Any, field: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise DecodeError(f"{field}: expected string, got {value!r}")
    return value.lower()


def _required_str(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if not isinstance(value, str) or not value:
        raise DecodeError(f"{key}: missing or not a string")
    return value


@dataclass(frozen=True)
class Transaction:
    """
    One ledger transaction touching a subscribed address.

    hash is the natural key; every other field is informational.
    """

    hash: str
    block_hash: str
    block_number: int
    sender: str
    recipient: str | None  # None on contract creation
    tx_type: int | None
    gas_used: int
    """Gas limit from the block body; the receipt value when enriched."""
    gas_price: int
    nonce: int
    contract_address: str | None = None  # set on contract creation when enriched

    @classmethod
    def from_rpc_item(cls, item: Any) -> "Transaction":
        """Build from one transaction object of eth_getBlockByNumber(..., true)."""
        if not isinstance(item, dict):
            raise DecodeError(f"transaction: expected object, got {type(item).__name__}")
        tx_type = item.get("type")
        return cls(
            hash=_required_str(item, "hash").lower(),
            block_hash=_required_str(item, "blockHash").lower(),
            block_number=hex_to_int(item.get("blockNumber"), "blockNumber"),
            sender=_required_str(item, "from").lower(),
            recipient=_optional_address(item.get("to"), "to"),
            tx_type=hex_to_int(tx_type, "type") if tx_type is not None else None,
            gas_used=hex_to_int(item.get("gas"), "gas"),
            gas_price=hex_to_int(item.get("gasPrice"), "gasPrice"),
            nonce=hex_to_int(item.get("nonce"), "nonce"),
            contract_address=_optional_address(item.get("creates"), "creates"),
        )

    def with_receipt(self, receipt: dict[str, Any]) -> "Transaction":
        """Return a copy with gas_used and contract_address taken from the receipt."""
        gas_used = receipt.get("gasUsed")
        return replace(
            self,
            gas_used=hex_to_int(gas_used, "gasUsed") if gas_used is not None else self.gas_used,
            contract_address=(
                _optional_address(receipt.get("contractAddress"), "contractAddress")
                or self.contract_address
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable dict (persisted snapshot and API responses)."""
        return {
            "hash": self.hash,
            "blockHash": self.block_hash,
            "blockNumber": self.block_number,
            "from": self.sender,
            "to": self.recipient,
            "type": self.tx_type,
            "gasUsed": self.gas_used,
            "gasPrice": self.gas_price,
            "nonce": self.nonce,
            "contractAddress": self.contract_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Transaction":
        """Inverse of to_dict. Raises KeyError / TypeError / ValueError on malformed data."""
        if not isinstance(data, dict):
            raise TypeError(f"transaction: expected object, got {type(data).__name__}")
        tx_type = data.get("type")
        return cls(
            hash=str(data["hash"]),
            block_hash=str(data["blockHash"]),
            block_number=int(data["blockNumber"]),
            sender=str(data["from"]),
            recipient=data.get("to"),
            tx_type=int(tx_type) if tx_type is not None else None,
            gas_used=int(data["gasUsed"]),
            gas_price=int(data["gasPrice"]),
            nonce=int(data["nonce"]),
            contract_address=data.get("contractAddress"),
        )
