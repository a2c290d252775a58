"""
Environment variable loading and validation for tx-watch.

- LEDGER_RPC_URL: JSON-RPC endpoint of the ledger node
- START_HEIGHT: initial cursor when no persisted state exists (optional)
- STORAGE_BACKEND: json | sql (default: json)
- STATE_FILE / DATABASE_URL: storage location per backend
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is txwatch/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_RPC_URL = "https://ethereum-rpc.publicnode.com"
DEFAULT_STATE_FILE = "data.json"
DEFAULT_DATABASE_URL = "sqlite:///txwatch.db"
STORAGE_BACKENDS = ("json", "sql")

_TRUTHY = ("1", "true", "yes", "on")


def load_txwatch_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides set vars."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def env_str(name: str, default: str) -> str:
    """Return stripped env value, or default when unset or blank."""
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_int(name: str, default: int | None) -> int | None:
    """Return env value as int; default when unset. Raises ValueError naming the variable."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw, 0)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def env_float(name: str, default: float) -> float:
    """Return env value as a positive float; default when unset."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def get_storage_backend() -> str:
    """Return STORAGE_BACKEND (json | sql). Unknown values raise ValueError."""
    backend = env_str("STORAGE_BACKEND", "json").lower()
    if backend not in STORAGE_BACKENDS:
        raise ValueError(
            f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {backend!r}"
        )
    return backend


def mask_url(url: str) -> str:
    """Hide credentials and API keys in an endpoint URL before logging it."""
    if "api-key=" in url:
        url = url.split("api-key=")[0] + "api-key=***"
    if "@" in url and "//" in url:
        scheme, rest = url.split("//", 1)
        url = f"{scheme}//***@{rest.split('@', 1)[1]}"
    return url
