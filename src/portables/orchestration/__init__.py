"""
Portables Orchestration - the export/import engine and its collaborators.

    requests.py       ExportRequest / ImportRequest payload models
    categories.py     Inclusion set resolution + level-by-level category graph
    cancellation.py   CancellationToken + marker-based CancellationRegistry
    result.py         JobResult, RunLog, size formatting
    archive.py        SQLite archive handle passed to services
    engine.py         ExportImportEngine (the scheduler core)
    runner.py         PortabilityRunner (load job → run → persist)
"""

from portables.orchestration.archive import ArchiveRepository
from portables.orchestration.cancellation import CancellationRegistry, CancellationToken, job_cache_key
from portables.orchestration.categories import (
    CATEGORY_PAGES,
    CATEGORY_PORTAL,
    CategoryGraph,
    CategorySet,
    resolve_included,
)
from portables.orchestration.engine import ExportImportEngine
from portables.orchestration.requests import ExportRequest, ImportRequest, PageSelection
from portables.orchestration.result import JobResult, MemoryRunLog, RunLog
from portables.orchestration.runner import PortabilityRunner

__all__ = [
    "ArchiveRepository",
    "CancellationRegistry",
    "CancellationToken",
    "job_cache_key",
    "CATEGORY_PAGES",
    "CATEGORY_PORTAL",
    "CategoryGraph",
    "CategorySet",
    "resolve_included",
    "ExportImportEngine",
    "ExportRequest",
    "ImportRequest",
    "PageSelection",
    "JobResult",
    "MemoryRunLog",
    "RunLog",
    "PortabilityRunner",
]
