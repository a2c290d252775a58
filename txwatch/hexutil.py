"""Hex quantity and address helpers for JSON-RPC payloads."""

from __future__ import annotations

import re
from typing import Any

from txwatch.errors import DecodeError

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_QUANTITY_RE = re.compile(r"0[xX][0-9a-fA-F]*")


def hex_to_int(value: Any, field: str = "value") -> int:
    """Decode a 0x-prefixed hex quantity. Raises DecodeError naming the field."""
    if not isinstance(value, str) or not value.lower().startswith("0x"):
        raise DecodeError(f"{field}: expected 0x-prefixed hex string, got {value!r}")
    # int() alone would also take a sign, underscores and whitespace
    if not _QUANTITY_RE.fullmatch(value):
        raise DecodeError(f"{field}: invalid hex quantity {value!r}")
    return int(value[2:] or "0", 16)


def int_to_hex(value: int) -> str:
    if value < 0:
        raise ValueError("quantity must be non-negative")
    return hex(value)


def normalize_address(address: str) -> str:
    """
    Canonical form of an address: stripped and lowercased.

    Raises ValueError if the result is not 0x followed by 40 hex digits.
    """
    addr = (address or "").strip().lower()
    if not addr:
        raise ValueError("address must be non-empty")
    if not _ADDRESS_RE.match(addr):
        raise ValueError(f"Invalid address: {address!r}")
    return addr

