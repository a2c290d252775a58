"""
Application settings.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate values and provide defaults for optional ones.
- Expose typed settings (RPC URL, storage, poll interval, API bind, etc.)
  for use across the watcher engine, storage factory, API server and main.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from txwatch.config.env import (
    DEFAULT_DATABASE_URL,
    DEFAULT_RPC_URL,
    DEFAULT_STATE_FILE,
    STORAGE_BACKENDS,
    env_bool,
    env_float,
    env_int,
    env_str,
    get_storage_backend,
    load_txwatch_env,
)

DEFAULT_POLL_INTERVAL_SEC = 10.0
DEFAULT_RPC_TIMEOUT_SEC = 10.0
DEFAULT_SHUTDOWN_TIMEOUT_SEC = 15.0
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8082


@dataclass(frozen=True)
class Settings:
    """Typed, validated configuration for one watcher process."""

    rpc_url: str = DEFAULT_RPC_URL
    start_height: int | None = None
    """Initial cursor when nothing is persisted; None means the chain tip."""
    storage_backend: str = "json"
    state_file: str = DEFAULT_STATE_FILE
    database_url: str = DEFAULT_DATABASE_URL
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    rpc_timeout_sec: float = DEFAULT_RPC_TIMEOUT_SEC
    shutdown_timeout_sec: float = DEFAULT_SHUTDOWN_TIMEOUT_SEC
    enrich_receipts: bool = False
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    def __post_init__(self) -> None:
        if not self.rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if self.start_height is not None and self.start_height < 0:
            raise ValueError("start_height must be >= 0")
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {STORAGE_BACKENDS}")
        if self.poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        if not (0 < self.api_port < 65536):
            raise ValueError("api_port must be between 1 and 65535")

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with the non-None overrides applied (command-line flags)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def get_settings() -> Settings:
    """
    Return the current application settings from the environment.

    Raises:
        ValueError: a variable is set but malformed (message names the variable).
    """
    load_txwatch_env()
    return Settings(
        rpc_url=env_str("LEDGER_RPC_URL", DEFAULT_RPC_URL),
        start_height=env_int("START_HEIGHT", None),
        storage_backend=get_storage_backend(),
        state_file=env_str("STATE_FILE", DEFAULT_STATE_FILE),
        database_url=env_str("DATABASE_URL", DEFAULT_DATABASE_URL),
        poll_interval_sec=env_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
        rpc_timeout_sec=env_float("RPC_TIMEOUT_SEC", DEFAULT_RPC_TIMEOUT_SEC),
        shutdown_timeout_sec=env_float("SHUTDOWN_TIMEOUT_SEC", DEFAULT_SHUTDOWN_TIMEOUT_SEC),
        enrich_receipts=env_bool("ENRICH_RECEIPTS"),
        api_host=env_str("API_HOST", DEFAULT_API_HOST),
        api_port=env_int("API_PORT", DEFAULT_API_PORT),
    )
