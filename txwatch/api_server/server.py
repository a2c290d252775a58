"""
FastAPI server — thin HTTP front end over WatcherService.

Routes:
  GET  /                  liveness text
  GET  /health            liveness probe
  GET  /getCurrentBlock   last processed height
  POST /subscribe         add an address to the watch-list
  GET  /getSubscriptions  subscribed addresses
  GET  /getTransactions   recorded transactions for one address

The service is injected at app construction and reached through a
dependency; the lifespan starts it and stops it (final snapshot save).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from txwatch import __version__
from txwatch.txwatch_logging import get_logger
from txwatch.watcher.service import WatcherService

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class SubscribeRequest(BaseModel):
    """POST /subscribe body."""

    address: str = Field(..., min_length=1, max_length=64, description="EVM address (0x + 40 hex)")


class SubscribeResponse(BaseModel):
    """POST /subscribe response."""

    address: str = Field(..., description="Normalized (lowercase) address")
    subscribed: bool = Field(..., description="True if newly added, False if already watched")


class CurrentBlockResponse(BaseModel):
    currentBlock: int = Field(..., ge=0, description="Last fully processed block height")


class TransactionResponse(BaseModel):
    """One recorded transaction (see Transaction.to_dict)."""

    hash: str
    blockHash: str
    blockNumber: int
    from_: str = Field(..., alias="from")
    to: str | None = None
    type: int | None = None
    gasUsed: int
    gasPrice: int
    nonce: int
    contractAddress: str | None = None


# -----------------------------------------------------------------------------
# Dependency
# -----------------------------------------------------------------------------


def get_watcher(request: Request) -> WatcherService:
    """Dependency: the WatcherService attached to this app."""
    return request.app.state.watcher


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(service: WatcherService, *, manage_lifecycle: bool = True) -> FastAPI:
    """
    Build the API app around an explicitly constructed service.

    manage_lifecycle=True starts the service on startup and stops it on
    shutdown; pass False when the caller owns start()/stop().
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            service.start()
            logger.info("api_watcher_started")
        try:
            yield
        finally:
            if manage_lifecycle:
                service.stop()
                logger.info("api_watcher_stopped")

    app = FastAPI(
        title="tx-watch API",
        description="Subscribe addresses and read the transactions recorded for them.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.watcher = service

    @app.get("/", response_class=PlainTextResponse)
    def hello() -> str:
        return "Hello, the server is running!"

    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    @app.get("/getCurrentBlock", response_model=CurrentBlockResponse)
    def get_current_block(watcher: WatcherService = Depends(get_watcher)) -> CurrentBlockResponse:
        return CurrentBlockResponse(currentBlock=watcher.current_height())

    @app.post("/subscribe", response_model=SubscribeResponse)
    def subscribe(body: SubscribeRequest, watcher: WatcherService = Depends(get_watcher)) -> JSONResponse:
        """
        Add an address to the watch-list.
        Returns 201 when newly added, 200 when already watched, 400 when malformed.
        """
        try:
            registered = watcher.subscribe(body.address)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        resp = SubscribeResponse(address=body.address.strip().lower(), subscribed=registered)
        return JSONResponse(status_code=201 if registered else 200, content=resp.model_dump())

    @app.get("/getSubscriptions")
    def get_subscriptions(watcher: WatcherService = Depends(get_watcher)) -> list[str]:
        return sorted(watcher.list_subscriptions())

    @app.get("/getTransactions", response_model=list[TransactionResponse], response_model_by_alias=True)
    def get_transactions(
        address: str = Query(..., description="Subscribed address"),
        watcher: WatcherService = Depends(get_watcher),
    ) -> list[dict[str, Any]]:
        """Transactions recorded for address; 404 if the address is not subscribed."""
        if not address.strip():
            raise HTTPException(status_code=400, detail="address must be non-empty")
        txs = watcher.transactions_for(address)
        if txs is None:
            raise HTTPException(status_code=404, detail=f"Address {address.strip()} is not subscribed")
        return [tx.to_dict() for tx in txs]

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    return app
