"""
JSON file storage — one document holding snapshots for several endpoints.

Layout:
    {"<endpoint>": {"lastProcessedHeight": 123,
                    "subscribedAddresses": {"0xabc...": [{...tx...}]}}}

Saves write a temp file in the same directory, fsync it, os.replace it over
the target and fsync the directory, so a crash mid-write leaves the previous
document intact. An unparseable document is replaced on save; a file that
cannot be read at all fails the save instead.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from txwatch.errors import PersistenceError
from txwatch.storage.base import Snapshot, Storage
from txwatch.txwatch_logging import get_logger

logger = get_logger(__name__)


class CorruptDocumentError(PersistenceError):
    """The state file exists and was read, but is not a JSON object."""


class JsonFileStorage(Storage):
    """Snapshot storage in a JSON file, namespaced by endpoint."""

    def __init__(self, path: str | Path, endpoint: str) -> None:
        super().__init__(endpoint)
        self.path = Path(path)

    def describe(self) -> str:
        return f"Json File Storage - {self.path}"

    def _read_raw(self) -> str | None:
        """File contents; None if missing. Raises PersistenceError on I/O failure."""
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"failed to read {self.path}: {e}") from e

    def _parse_document(self, raw: str | None) -> dict[str, Any]:
        """Whole document as a dict; {} if missing. Raises CorruptDocumentError."""
        if raw is None:
            return {}
        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDocumentError(f"failed to parse {self.path}: {e}") from e
        if not isinstance(doc, dict):
            raise CorruptDocumentError(f"{self.path}: top-level JSON is not an object")
        return doc

    def load(self) -> Snapshot:
        doc = self._parse_document(self._read_raw())
        entry = doc.get(self.endpoint)
        if entry is None:
            logger.info("json_storage_fresh_state", path=str(self.path), endpoint=self.endpoint)
            return Snapshot()
        snapshot = Snapshot.from_dict(entry)
        logger.info(
            "json_storage_loaded",
            path=str(self.path),
            last_height=snapshot.last_height,
            address_count=len(snapshot.subscriptions),
        )
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        # A read failure propagates: other endpoints' entries must not be lost.
        raw = self._read_raw()
        try:
            doc = self._parse_document(raw)
        except CorruptDocumentError as e:
            # Unparseable document would block every future save; replace it.
            logger.warning("json_storage_replacing_corrupt_file", path=str(self.path), error=str(e))
            doc = {}
        doc[self.endpoint] = snapshot.to_dict()
        self._write_atomic(doc)
        logger.info(
            "json_storage_saved",
            path=str(self.path),
            last_height=snapshot.last_height,
            address_count=len(snapshot.subscriptions),
        )

    def _write_atomic(self, doc: dict[str, Any]) -> None:
        directory = self.path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(directory)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(doc, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
            _fsync_directory(directory)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"failed to write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("json_storage_tmp_cleanup_failed", tmp=tmp_name)


def _fsync_directory(directory: Path) -> None:
    """Flush the directory entry so the rename survives power loss (POSIX only)."""
    if os.name != "posix":
        return
    dir_fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
