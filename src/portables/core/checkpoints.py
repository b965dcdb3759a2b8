"""
Checkpoint tracking for resumable export/import jobs.

A long export or import is cut into several scheduler invocations by the
time budget. Each portable service records how far it got in a
per-(job, category) ``Checkpoint``; on the next invocation the engine
hands the same checkpoint back and the service resumes from it.

Manifesto:
    - **One marker per (job, category):** UNIQUE constraint / dict key
    - **Attempted is progress:** the engine persists a fresh checkpoint
      before a category first runs, so a zero-progress category still
      counts as started
    - **Opaque payload:** ``stage`` and ``stage_data`` belong to the service
    - **Persistence-agnostic:** SQLite connection or in-memory (tests)

Architecture:
    ::

        CheckpointStore.upsert(cp)
              │
              ▼
        ┌────────────────────────────────────────────────────────────┐
        │ portable_checkpoints table (or in-memory dict)             │
        │ job_id | category | stage | stage_data | progress | ...    │
        │ 01J9.. | Pages    | 2     | {"last":17}| 40.0     | ...    │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> store = CheckpointStore()
    >>> store.upsert(Checkpoint(job_id="j1", category="Pages", stage=1))
    >>> store.load("j1")["Pages"].stage
    1

Tags:
    checkpoint, resume, incremental, portables
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from portables.core.logging import get_logger

logger = get_logger(__name__)

CHECKPOINTS_DDL = """
CREATE TABLE IF NOT EXISTS portable_checkpoints (
    job_id          TEXT NOT NULL,
    category        TEXT NOT NULL,
    stage           INTEGER NOT NULL DEFAULT 0,
    stage_data      TEXT,
    progress        REAL NOT NULL DEFAULT 0,
    total_items     INTEGER NOT NULL DEFAULT 0,
    processed_items INTEGER NOT NULL DEFAULT 0,
    completed       INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    updated_at      TEXT,
    UNIQUE (job_id, category)
)
"""

_COLUMNS = (
    "job_id, category, stage, stage_data, progress, total_items, "
    "processed_items, completed, error, updated_at"
)


@dataclass
class Checkpoint:
    """Progress marker for one category of one job.

    Mutable on purpose: the owning service updates it in place and then
    calls its checkpoint callback, which persists it.

    Attributes:
        job_id: Owning job.
        category: Portable category name.
        stage: Service-defined stage number.
        stage_data: Opaque service payload (usually JSON).
        progress: Percentage complete, 0-100.
        total_items: Items the service expects to process.
        processed_items: Items processed so far.
        completed: The category has nothing left to do for this job.
        error: Failure message recorded under the ``continue`` policy.
        updated_at: Last time the checkpoint was persisted.
    """

    job_id: str
    category: str
    stage: int = 0
    stage_data: str | None = None
    progress: float = 0.0
    total_items: int = 0
    processed_items: int = 0
    completed: bool = False
    error: str | None = None
    updated_at: datetime | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class CheckpointStore:
    """Persistence-agnostic checkpoint store.

    If *conn* is supplied (a ``sqlite3.Connection`` or anything exposing
    ``.execute()`` and ``.commit()``), checkpoints are persisted to the
    ``portable_checkpoints`` table; otherwise an in-memory dict is used.
    Calls are serialized by a lock so concurrent jobs can share a store.
    """

    def __init__(self, conn: Any | None = None) -> None:
        self._conn = conn
        self._mem: dict[tuple[str, str], Checkpoint] = {}
        self._lock = threading.RLock()
        if conn is not None:
            conn.execute(CHECKPOINTS_DDL)
            conn.commit()

    # -- core operations -----------------------------------------------------

    def get_checkpoints(self, job_id: str) -> list[Checkpoint]:
        """Return every checkpoint recorded for *job_id*."""
        with self._lock:
            if self._conn is not None:
                return self._list_db(job_id)
            return [replace(cp) for (jid, _), cp in self._mem.items() if jid == job_id]

    def load(self, job_id: str) -> dict[str, Checkpoint]:
        """Return the checkpoints of *job_id* keyed by category name."""
        return {cp.category: cp for cp in self.get_checkpoints(job_id)}

    def get(self, job_id: str, category: str) -> Checkpoint | None:
        """Retrieve one checkpoint, or ``None`` if the category never ran."""
        return self.load(job_id).get(category)

    def has_checkpoints(self, job_id: str) -> bool:
        return bool(self.get_checkpoints(job_id))

    def upsert(self, checkpoint: Checkpoint) -> Checkpoint:
        """Insert or replace the checkpoint for its (job, category) pair.

        Stamps ``updated_at`` on the passed object and stores a copy.
        """
        checkpoint.updated_at = datetime.now(UTC)
        with self._lock:
            if self._conn is not None:
                self._upsert_db(checkpoint)
            else:
                self._mem[(checkpoint.job_id, checkpoint.category)] = replace(checkpoint)
        logger.debug(
            "checkpoint.saved",
            job_id=checkpoint.job_id,
            category=checkpoint.category,
            stage=checkpoint.stage,
            progress=checkpoint.progress,
            completed=checkpoint.completed,
        )
        return checkpoint

    save = upsert

    def delete_job(self, job_id: str) -> int:
        """Remove all checkpoints of a job. Returns the number removed."""
        with self._lock:
            if self._conn is not None:
                cur = self._conn.execute(
                    "DELETE FROM portable_checkpoints WHERE job_id = ?", (job_id,)
                )
                self._conn.commit()
                return cur.rowcount
            keys = [k for k in self._mem if k[0] == job_id]
            for key in keys:
                del self._mem[key]
            return len(keys)

    # -- internal: database backend ------------------------------------------

    def _upsert_db(self, cp: Checkpoint) -> None:
        assert self._conn is not None
        self._conn.execute(
            f"INSERT INTO portable_checkpoints ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(job_id, category) DO UPDATE SET "
            "  stage = excluded.stage, "
            "  stage_data = excluded.stage_data, "
            "  progress = excluded.progress, "
            "  total_items = excluded.total_items, "
            "  processed_items = excluded.processed_items, "
            "  completed = excluded.completed, "
            "  error = excluded.error, "
            "  updated_at = excluded.updated_at",
            (
                cp.job_id,
                cp.category,
                cp.stage,
                cp.stage_data,
                cp.progress,
                cp.total_items,
                cp.processed_items,
                int(cp.completed),
                cp.error,
                cp.updated_at.isoformat() if cp.updated_at else None,
            ),
        )
        self._conn.commit()

    def _list_db(self, job_id: str) -> list[Checkpoint]:
        assert self._conn is not None
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM portable_checkpoints WHERE job_id = ? ORDER BY rowid",
            (job_id,),
        ).fetchall()
        return [
            Checkpoint(
                job_id=r[0],
                category=r[1],
                stage=r[2],
                stage_data=r[3],
                progress=r[4],
                total_items=r[5],
                processed_items=r[6],
                completed=bool(r[7]),
                error=r[8],
                updated_at=datetime.fromisoformat(r[9]) if r[9] else None,
            )
            for r in rows
        ]


__all__ = ["Checkpoint", "CheckpointStore", "CHECKPOINTS_DDL"]
