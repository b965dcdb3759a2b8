"""
Export/import job records and their store.

A ``Job`` identifies one export or import run. It is created before the
first invocation, mutated by the engine (status, completion time) and
saved back by the runner. Jobs are never deleted by the engine.

Tags:
    job, status, persistence, portables
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from portables.core.errors import JobNotFoundError

JOBS_DDL = """
CREATE TABLE IF NOT EXISTS portable_jobs (
    job_id       TEXT PRIMARY KEY,
    job_type     TEXT NOT NULL,
    name         TEXT NOT NULL DEFAULT '',
    job_object   TEXT NOT NULL,
    export_file  TEXT,
    status       TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    completed_at TEXT
)
"""

_COLUMNS = "job_id, job_type, name, job_object, export_file, status, created_at, completed_at"


class JobType(str, Enum):
    """Direction of a portability job."""

    EXPORT = "export"
    IMPORT = "import"


class JobStatus(str, Enum):
    """Lifecycle status of a job."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE_SUCCESS = "done_success"
    DONE_FAILURE = "done_failure"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE_SUCCESS, JobStatus.DONE_FAILURE, JobStatus.CANCELLED)


# Crockford base32, time-sortable ids
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def new_job_id() -> str:
    """Generate a 26 character, time-sortable job id."""
    value = int(time.time() * 1000)
    chars = []
    for _ in range(10):
        chars.append(_ENCODING[value % 32])
        value //= 32
    return "".join(reversed(chars)) + "".join(random.choices(_ENCODING, k=16))


@dataclass
class Job:
    """One export or import run.

    Attributes:
        job_id: Unique id.
        job_type: ``JobType.EXPORT`` or ``JobType.IMPORT``.
        job_object: Serialized request payload (JSON).
        name: Display name.
        export_file: Archive base name (export jobs only).
        status: Current :class:`JobStatus`.
        created_at: Creation timestamp.
        completed_at: Set when the job reaches a terminal status.
    """

    job_id: str
    job_type: JobType
    job_object: str
    name: str = ""
    export_file: str | None = None
    status: JobStatus = JobStatus.NOT_STARTED
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def finish(self, status: JobStatus) -> None:
        """Set a terminal status and stamp the completion time."""
        self.status = status
        self.completed_at = datetime.now(UTC)


class JobStore:
    """Job persistence: SQLite ``portable_jobs`` table or in-memory dict."""

    def __init__(self, conn: Any | None = None) -> None:
        self._conn = conn
        self._mem: dict[str, Job] = {}
        self._lock = threading.RLock()
        if conn is not None:
            conn.execute(JOBS_DDL)
            conn.commit()

    def create_export(self, request_json: str, *, name: str = "", export_file: str | None = None) -> Job:
        """Create and persist a new export job.

        The archive base name defaults to ``export_<job_id>``.
        """
        job_id = new_job_id()
        job = Job(
            job_id=job_id,
            job_type=JobType.EXPORT,
            job_object=request_json,
            name=name,
            export_file=export_file or f"export_{job_id}",
        )
        return self.save(job)

    def create_import(self, request_json: str, *, name: str = "") -> Job:
        """Create and persist a new import job."""
        job = Job(job_id=new_job_id(), job_type=JobType.IMPORT, job_object=request_json, name=name)
        return self.save(job)

    def get(self, job_id: str) -> Job:
        """Load a job by id.

        Raises:
            JobNotFoundError: No such job.
        """
        with self._lock:
            if self._conn is not None:
                row = self._conn.execute(
                    f"SELECT {_COLUMNS} FROM portable_jobs WHERE job_id = ?", (job_id,)
                ).fetchone()
                if row is None:
                    raise JobNotFoundError(job_id)
                return _row_to_job(row)
            if job_id not in self._mem:
                raise JobNotFoundError(job_id)
            return replace(self._mem[job_id])

    def save(self, job: Job) -> Job:
        """Insert or update a job."""
        with self._lock:
            if self._conn is not None:
                self._conn.execute(
                    f"INSERT INTO portable_jobs ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
                    "ON CONFLICT(job_id) DO UPDATE SET "
                    "  name = excluded.name, "
                    "  job_object = excluded.job_object, "
                    "  export_file = excluded.export_file, "
                    "  status = excluded.status, "
                    "  completed_at = excluded.completed_at",
                    (
                        job.job_id,
                        job.job_type.value,
                        job.name,
                        job.job_object,
                        job.export_file,
                        job.status.value,
                        job.created_at.isoformat(),
                        job.completed_at.isoformat() if job.completed_at else None,
                    ),
                )
                self._conn.commit()
            else:
                self._mem[job.job_id] = replace(job)
        return job

    def list(self, status: JobStatus | None = None) -> list[Job]:
        """List jobs oldest first, optionally filtered by status."""
        with self._lock:
            if self._conn is not None:
                if status is None:
                    rows = self._conn.execute(
                        f"SELECT {_COLUMNS} FROM portable_jobs ORDER BY created_at, job_id"
                    ).fetchall()
                else:
                    rows = self._conn.execute(
                        f"SELECT {_COLUMNS} FROM portable_jobs WHERE status = ? "
                        "ORDER BY created_at, job_id",
                        (status.value,),
                    ).fetchall()
                return [_row_to_job(r) for r in rows]
            jobs = sorted(self._mem.values(), key=lambda j: (j.created_at, j.job_id))
            if status is not None:
                jobs = [j for j in jobs if j.status == status]
            return [replace(j) for j in jobs]


def _row_to_job(row: tuple) -> Job:
    return Job(
        job_id=row[0],
        job_type=JobType(row[1]),
        name=row[2],
        job_object=row[3],
        export_file=row[4],
        status=JobStatus(row[5]),
        created_at=datetime.fromisoformat(row[6]),
        completed_at=datetime.fromisoformat(row[7]) if row[7] else None,
    )


__all__ = ["Job", "JobStatus", "JobStore", "JobType", "new_job_id", "JOBS_DDL"]
