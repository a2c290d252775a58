"""
SQLAlchemy-backed snapshot storage.

Uses any SQLAlchemy URL (sqlite:///txwatch.db by default, PostgreSQL via
DATABASE_URL). A save brings the endpoint's rows in line with the snapshot
inside a single database transaction, so readers never observe a half-written
snapshot. Transaction logs are append-only, so a save normally inserts only
the entries recorded since the previous one.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import BigInteger, Column, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from txwatch.errors import PersistenceError
from txwatch.models import Transaction
from txwatch.storage.base import Snapshot, Storage
from txwatch.txwatch_logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

# BIGINT ids; SQLite keeps INTEGER so the column aliases rowid.
SurrogateKey = BigInteger().with_variant(Integer, "sqlite")


class WatchCursor(Base):
    """Last processed height per endpoint."""

    __tablename__ = "watch_cursors"

    endpoint = Column(String(512), primary_key=True)
    last_height = Column(BigInteger, nullable=False)
    updated_at = Column(Integer, nullable=False)  # Unix timestamp


class WatchSubscription(Base):
    """Subscribed address per endpoint; present even when the log is empty."""

    __tablename__ = "watch_subscriptions"
    __table_args__ = (UniqueConstraint("endpoint", "address"),)

    id = Column(SurrogateKey, primary_key=True, autoincrement=True)
    endpoint = Column(String(512), nullable=False, index=True)
    address = Column(String(42), nullable=False)


class WatchTransaction(Base):
    """
    One transaction log entry. position keeps discovery order within the
    address log; gas_price is a string because wei values can exceed BIGINT.
    """

    __tablename__ = "watch_transactions"
    __table_args__ = (UniqueConstraint("endpoint", "address", "tx_hash"),)

    id = Column(SurrogateKey, primary_key=True, autoincrement=True)
    endpoint = Column(String(512), nullable=False, index=True)
    address = Column(String(42), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    tx_hash = Column(String(66), nullable=False)
    block_hash = Column(String(66), nullable=False)
    block_number = Column(BigInteger, nullable=False)
    sender = Column(String(42), nullable=False)
    recipient = Column(String(42), nullable=True)
    tx_type = Column(Integer, nullable=True)
    gas_used = Column(BigInteger, nullable=False)
    gas_price = Column(String(78), nullable=False)
    nonce = Column(BigInteger, nullable=False)
    contract_address = Column(String(42), nullable=True)

    @classmethod
    def from_model(cls, endpoint: str, address: str, position: int, tx: Transaction) -> "WatchTransaction":
        return cls(
            endpoint=endpoint,
            address=address,
            position=position,
            tx_hash=tx.hash,
            block_hash=tx.block_hash,
            block_number=tx.block_number,
            sender=tx.sender,
            recipient=tx.recipient,
            tx_type=tx.tx_type,
            gas_used=tx.gas_used,
            gas_price=str(tx.gas_price),
            nonce=tx.nonce,
            contract_address=tx.contract_address,
        )

    def to_model(self) -> Transaction:
        return Transaction(
            hash=self.tx_hash,
            block_hash=self.block_hash,
            block_number=int(self.block_number),
            sender=self.sender,
            recipient=self.recipient,
            tx_type=self.tx_type,
            gas_used=int(self.gas_used),
            gas_price=int(self.gas_price),
            nonce=int(self.nonce),
            contract_address=self.contract_address,
        )


class SqlStorage(Storage):
    """Snapshot storage in SQL tables, namespaced by endpoint."""

    def __init__(self, database_url: str, endpoint: str) -> None:
        super().__init__(endpoint)
        self.database_url = database_url
        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        try:
            self._engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to initialise database: {e}") from e
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        logger.info("sql_storage_init", url=self._safe_url())

    def _safe_url(self) -> str:
        return self.database_url.split("?")[0].split("@")[-1].split("//")[-1]

    def describe(self) -> str:
        return f"SQL Storage - {self._safe_url()}"

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Single session; commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def save(self, snapshot: Snapshot) -> None:
        endpoint = self.endpoint
        inserted = 0
        try:
            with self._session_scope() as session:
                session.merge(
                    WatchCursor(
                        endpoint=endpoint,
                        last_height=snapshot.last_height,
                        updated_at=int(time.time()),
                    )
                )
                stored_addresses = {
                    r[0]
                    for r in session.query(WatchSubscription.address)
                    .filter(WatchSubscription.endpoint == endpoint)
                    .all()
                }
                stale = stored_addresses - set(snapshot.subscriptions)
                if stale:
                    self._delete_addresses(session, stale, subscriptions=True)

                stored_logs: dict[str, list[str]] = {}
                for address, tx_hash in (
                    session.query(WatchTransaction.address, WatchTransaction.tx_hash)
                    .filter(WatchTransaction.endpoint == endpoint)
                    .order_by(WatchTransaction.address, WatchTransaction.position)
                    .all()
                ):
                    stored_logs.setdefault(address, []).append(tx_hash)

                for address, txs in snapshot.subscriptions.items():
                    if address not in stored_addresses:
                        session.add(WatchSubscription(endpoint=endpoint, address=address))
                    stored = stored_logs.get(address, [])
                    if [tx.hash for tx in txs[: len(stored)]] != stored:
                        # Stored log is not a prefix of the snapshot log; rewrite it.
                        self._delete_addresses(session, {address}, subscriptions=False)
                        stored = []
                    new_rows = [
                        WatchTransaction.from_model(endpoint, address, i, tx)
                        for i, tx in enumerate(txs)
                        if i >= len(stored)
                    ]
                    session.add_all(new_rows)
                    inserted += len(new_rows)
        except SQLAlchemyError as e:
            raise PersistenceError(f"failed to save snapshot: {e}") from e
        logger.info(
            "sql_storage_saved",
            last_height=snapshot.last_height,
            address_count=len(snapshot.subscriptions),
            inserted=inserted,
        )

    def _delete_addresses(self, session: Session, addresses: set[str], *, subscriptions: bool) -> None:
        """Drop the transaction rows (and optionally the subscription rows) of addresses."""
        session.query(WatchTransaction).filter(
            WatchTransaction.endpoint == self.endpoint,
            WatchTransaction.address.in_(addresses),
        ).delete(synchronize_session=False)
        if subscriptions:
            session.query(WatchSubscription).filter(
                WatchSubscription.endpoint == self.endpoint,
                WatchSubscription.address.in_(addresses),
            ).delete(synchronize_session=False)

    def load(self) -> Snapshot:
        endpoint = self.endpoint
        try:
            with self._session_scope() as session:
                cursor = session.get(WatchCursor, endpoint)
                addresses = [
                    r[0]
                    for r in session.query(WatchSubscription.address)
                    .filter(WatchSubscription.endpoint == endpoint)
                    .order_by(WatchSubscription.id)
                    .all()
                ]
                rows = (
                    session.query(WatchTransaction)
                    .filter(WatchTransaction.endpoint == endpoint)
                    .order_by(WatchTransaction.address, WatchTransaction.position)
                    .all()
                )
                subscriptions: dict[str, list[Transaction]] = {a: [] for a in addresses}
                for row in rows:
                    subscriptions.setdefault(row.address, []).append(row.to_model())
                last_height = int(cursor.last_height) if cursor is not None else 0
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise PersistenceError(f"failed to load snapshot: {e}") from e
        if cursor is None and not subscriptions:
            logger.info("sql_storage_fresh_state", endpoint=endpoint)
            return Snapshot()
        logger.info(
            "sql_storage_loaded",
            last_height=last_height,
            address_count=len(subscriptions),
        )
        return Snapshot(last_height=last_height, subscriptions=subscriptions)

    def close(self) -> None:
        self._engine.dispose()
