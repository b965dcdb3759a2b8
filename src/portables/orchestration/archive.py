"""SQLite-backed portable archive.

One archive file holds one metadata record (the export request, which
carries the schema version and included categories) plus any number of
JSON records written by services under their category name.

Usage::

    with ArchiveRepository(path) as repo:
        repo.add_single_item(request)
        repo.add_items("Pages", [{"id": 1, "title": "Home"}])

    with ArchiveRepository(path) as repo:
        request = repo.get_single_item(ExportRequest)
        pages = repo.get_items("Pages")

``close()`` commits, closes the connection and returns only once the file
is visible on disk, so callers can stat it immediately.
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from portables.core.errors import ArchiveError, StorageError
from portables.core.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

_TABLES = {"archive_meta", "archive_items"}

_DDL = (
    "CREATE TABLE IF NOT EXISTS archive_meta ("
    "  id INTEGER PRIMARY KEY CHECK (id = 1),"
    "  item_type TEXT NOT NULL,"
    "  payload TEXT NOT NULL)",
    "CREATE TABLE IF NOT EXISTS archive_items ("
    "  seq INTEGER PRIMARY KEY AUTOINCREMENT,"
    "  category TEXT NOT NULL,"
    "  payload TEXT NOT NULL)",
    "CREATE INDEX IF NOT EXISTS ix_archive_items_category ON archive_items (category)",
)


class ArchiveRepository:
    """Handle on one archive file, scoped to a single engine run.

    Args:
        path: Archive file; created when missing unless *read_only*.
        read_only: Open an existing archive without ever writing to it
            (imports). The file must already hold the archive tables.
    """

    def __init__(self, path: str | Path, *, read_only: bool = False) -> None:
        self.path = Path(path)
        self.read_only = read_only
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        try:
            if read_only:
                self._conn = sqlite3.connect(
                    f"{self.path.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False
                )
                tables = {
                    row[0]
                    for row in self._conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
                }
                if not _TABLES <= tables:
                    self._discard()
                    raise ArchiveError(f"{self.path.name} is not a portable archive").with_context(
                        archive=self.path.name
                    )
            else:
                self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
                for statement in _DDL:
                    self._conn.execute(statement)
                self._conn.commit()
        except sqlite3.DatabaseError as e:
            self._discard()
            raise ArchiveError(f"Cannot open archive {self.path.name}: {e}", cause=e).with_context(
                archive=self.path.name
            ) from e
        logger.debug("archive.opened", archive=str(self.path), read_only=read_only)

    # -- metadata record -------------------------------------------------------

    def add_single_item(self, item: BaseModel) -> None:
        """Store (or replace) the archive's single metadata record."""
        with self._lock:
            conn = self._require_open()
            conn.execute(
                "INSERT INTO archive_meta (id, item_type, payload) VALUES (1, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET item_type = excluded.item_type, payload = excluded.payload",
                (type(item).__name__, item.model_dump_json()),
            )
            conn.commit()

    def get_single_item(self, model: type[M]) -> M:
        """Load the metadata record as *model*.

        Raises:
            ArchiveError: The record is missing or does not fit *model*.
        """
        with self._lock:
            row = self._require_open().execute(
                "SELECT payload FROM archive_meta WHERE id = 1"
            ).fetchone()
        if row is None:
            raise ArchiveError(f"Archive {self.path.name} has no metadata record").with_context(
                archive=self.path.name
            )
        try:
            return model.model_validate_json(row[0])
        except ValidationError as e:
            raise ArchiveError(
                f"Archive {self.path.name} metadata is not a valid {model.__name__}", cause=e
            ).with_context(archive=self.path.name) from e

    # -- category records ------------------------------------------------------

    def add_items(self, category: str, records: list[dict[str, Any]]) -> int:
        """Append JSON records under *category*. Returns the number written."""
        with self._lock:
            conn = self._require_open()
            conn.executemany(
                "INSERT INTO archive_items (category, payload) VALUES (?, ?)",
                [(category, json.dumps(r, default=str)) for r in records],
            )
            conn.commit()
        return len(records)

    def get_items(self, category: str, *, offset: int = 0, limit: int | None = None) -> list[dict[str, Any]]:
        """Read records of *category* in insertion order."""
        sql = "SELECT payload FROM archive_items WHERE category = ? ORDER BY seq LIMIT ? OFFSET ?"
        with self._lock:
            rows = self._require_open().execute(
                sql, (category, -1 if limit is None else limit, offset)
            ).fetchall()
        return [json.loads(r[0]) for r in rows]

    def count(self, category: str) -> int:
        with self._lock:
            row = self._require_open().execute(
                "SELECT COUNT(*) FROM archive_items WHERE category = ?", (category,)
            ).fetchone()
        return int(row[0])

    def categories(self) -> list[str]:
        """Categories that have at least one record, in first-write order."""
        with self._lock:
            rows = self._require_open().execute(
                "SELECT category FROM archive_items GROUP BY category ORDER BY MIN(seq)"
            ).fetchall()
        return [r[0] for r in rows]

    # -- lifecycle -------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self) -> None:
        """Commit and close; returns once the archive file is visible on disk.

        Idempotent.

        Raises:
            StorageError: The file is not present after closing.
        """
        with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            if not self.read_only:
                conn.commit()
            conn.close()
        if not self.path.exists():
            raise StorageError(f"Archive {self.path} missing after close").with_context(
                archive=self.path.name
            )
        # Flush directory metadata so the finished file is visible to other processes
        if hasattr(os, "O_DIRECTORY"):
            fd = os.open(self.path.parent, os.O_RDONLY | os.O_DIRECTORY)
            try:
                os.fsync(fd)
            finally:
                os.close(fd)
        logger.debug("archive.closed", archive=str(self.path), size=self.path.stat().st_size)

    def __enter__(self) -> ArchiveRepository:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _discard(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"Archive {self.path.name} is closed")
        return self._conn

    def __repr__(self) -> str:
        return f"ArchiveRepository({str(self.path)!r}, closed={self.closed})"


__all__ = ["ArchiveRepository"]
