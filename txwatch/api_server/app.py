"""
FastAPI/ASGI application entrypoint.

Build the watcher from environment settings and wrap it in the API app.
Run with: uvicorn txwatch.api_server.app:build_app --factory --host 0.0.0.0 --port 8082
"""

from __future__ import annotations

from fastapi import FastAPI

from txwatch.api_server.server import create_app
from txwatch.config import get_settings
from txwatch.watcher.service import WatcherService


def build_app() -> FastAPI:
    """App whose lifespan starts and stops a watcher configured from the environment."""
    return create_app(WatcherService.from_settings(get_settings()))


__all__ = ["build_app"]
