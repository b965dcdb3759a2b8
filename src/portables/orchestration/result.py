"""Job result aggregation and the run note log."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from portables.core.jobs import JobStatus
from portables.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SummaryItem:
    """One human-readable summary line."""

    label: str
    detail: str


@dataclass
class JobResult:
    """Outcome of one engine invocation.

    Starts pessimistic (``DONE_FAILURE``); the engine upgrades it to
    ``IN_PROGRESS`` once work begins and to ``DONE_SUCCESS`` only when
    nothing failed and nothing was cancelled.
    """

    job_id: str
    status: JobStatus = JobStatus.DONE_FAILURE
    summary: list[SummaryItem] = field(default_factory=list)
    completed_categories: list[str] = field(default_factory=list)
    failed_categories: list[str] = field(default_factory=list)
    time_budget_exceeded: bool = False

    def add_summary(self, label: str, detail: Any) -> None:
        self.summary.append(SummaryItem(label, str(detail)))

    def mark_completed(self, category: str) -> None:
        self.completed_categories.append(category)

    def mark_failed(self, category: str) -> None:
        self.failed_categories.append(category)

    @property
    def is_final(self) -> bool:
        return self.status.is_terminal

    def summary_dict(self) -> dict[str, str]:
        return {item.label: item.detail for item in self.summary}

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "summary": [{"label": s.label, "detail": s.detail} for s in self.summary],
            "completed_categories": list(self.completed_categories),
            "failed_categories": list(self.failed_categories),
            "time_budget_exceeded": self.time_budget_exceeded,
        }


class RunLog(Protocol):
    """Line-oriented note log attached to the invoking schedule/run record."""

    def add_note(self, note: str) -> None: ...


class MemoryRunLog:
    """RunLog that keeps notes in order and mirrors them to the structured log."""

    def __init__(self) -> None:
        self.notes: list[str] = []

    def add_note(self, note: str) -> None:
        self.notes.append(note)
        logger.info("run_log.note", note=note)

    def __contains__(self, note: str) -> bool:
        return note in self.notes

    def __str__(self) -> str:
        return "\n".join(self.notes)


_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_size(n_bytes: int) -> str:
    """Human-readable byte size: ``512 B``, ``1.5 KB``, ``3.2 MB``."""
    size = float(n_bytes)
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{n_bytes} B"


__all__ = ["SummaryItem", "JobResult", "RunLog", "MemoryRunLog", "format_size"]
