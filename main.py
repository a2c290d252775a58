"""
Main entrypoint: ingestion engine (background thread) + FastAPI server in main thread.

The watcher is started before the server binds so an unreachable ledger fails
fast with exit status 1. The API runs in the main thread; on SIGINT/SIGTERM
uvicorn returns and the watcher is stopped, which performs the final save.

Env: LEDGER_RPC_URL, START_HEIGHT, STORAGE_BACKEND, STATE_FILE, DATABASE_URL,
POLL_INTERVAL_SEC, API_HOST, API_PORT, etc. Flags override the environment.

API-only with env config: uvicorn txwatch.api_server.app:build_app --factory --port 8082
"""

from __future__ import annotations

import argparse
import os
import sys

# Configure structured JSON logging before other imports that may log
from txwatch.txwatch_logging import get_logger

logger = get_logger("main")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Watch EVM addresses and record their transactions.")
    parser.add_argument("--url", help="ledger JSON-RPC endpoint (LEDGER_RPC_URL)")
    parser.add_argument(
        "--startblock",
        type=lambda s: int(s, 0),
        help="initial cursor when no state is persisted; default is the chain tip (START_HEIGHT)",
    )
    parser.add_argument("--file", help="JSON state file (STATE_FILE)")
    parser.add_argument("--storage", choices=("json", "sql"), help="storage backend (STORAGE_BACKEND)")
    parser.add_argument("--database-url", help="SQLAlchemy URL for --storage sql (DATABASE_URL)")
    parser.add_argument("--host", help="API bind host (API_HOST)")
    parser.add_argument("--port", type=int, help="API bind port (API_PORT)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Build settings, start the watcher, then serve the API until interrupted."""
    args = _parse_args(argv)

    from txwatch.config import get_settings
    from txwatch.config.env import mask_url
    from txwatch.errors import StartupError
    from txwatch.watcher.service import WatcherService

    try:
        settings = get_settings().with_overrides(
            rpc_url=args.url,
            start_height=args.startblock,
            state_file=args.file,
            storage_backend=args.storage,
            database_url=args.database_url,
            api_host=args.host,
            api_port=args.port,
        )
    except ValueError as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    service = WatcherService.from_settings(settings)
    logger.info(
        "main_watcher_starting",
        rpc_url=mask_url(settings.rpc_url),
        storage_backend=settings.storage_backend,
        start_height=settings.start_height,
    )
    try:
        service.start()
    except StartupError as e:
        logger.error("main_startup_failed", error=str(e))
        sys.exit(1)

    from txwatch.api_server.server import create_app
    import uvicorn

    app = create_app(service, manage_lifecycle=False)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    try:
        uvicorn.run(
            app,
            host=settings.api_host,
            port=settings.api_port,
            log_level=os.getenv("LOG_LEVEL", "info").lower(),
        )
    finally:
        service.stop()
        logger.info("main_stopped", cursor=service.current_height())


if __name__ == "__main__":
    main()
