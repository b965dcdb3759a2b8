"""
Shared pytest fixtures and configuration for portables tests.

This module provides:
- Registry and settings cleanup fixtures for test isolation
- Temporary export directory settings
- Recording fake services for engine tests
- A controllable clock for time budget tests

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments.

    def test_export(engine, make_service, export_job):
        ...
"""

import os
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure portables package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from portables.core.checkpoints import CheckpointStore
from portables.core.jobs import Job, JobStore, JobType
from portables.core.settings import PortablesSettings, reset_settings
from portables.framework.registry import clear_registry
from portables.framework.services import PortableService
from portables.orchestration.cancellation import CancellationRegistry
from portables.orchestration.engine import ExportImportEngine
from portables.orchestration.requests import ExportRequest, ImportRequest
from portables.orchestration.result import MemoryRunLog


# =============================================================================
# Cleanup Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_registry():
    """Ensure the service registry is empty before and after each test."""
    clear_registry()
    yield
    clear_registry()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Drop cached settings and any PORTABLES_* variables from the environment."""
    for key in list(os.environ):
        if key.startswith("PORTABLES_"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# Settings / Stores
# =============================================================================


@pytest.fixture
def settings(tmp_path) -> PortablesSettings:
    """Settings rooted in a temporary directory."""
    return PortablesSettings(
        _env_file=None,
        export_dir=tmp_path / "exports",
        database=tmp_path / "portables.db",
    )


@pytest.fixture
def checkpoints() -> CheckpointStore:
    return CheckpointStore()


@pytest.fixture
def cancellations() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def jobs() -> JobStore:
    return JobStore()


@pytest.fixture
def run_log() -> MemoryRunLog:
    return MemoryRunLog()


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Fake Services
# =============================================================================


class RecordingService(PortableService):
    """Portable service that records its invocations in a shared list.

    ``action`` (optional) is called with the service and the job before
    the call is recorded; it may raise, cancel, or touch the checkpoint.
    """

    def __init__(self, calls: list[str], action: Callable | None = None):
        super().__init__()
        self.calls = calls
        self.action = action

    def export_data(self, job, request):
        if self.action is not None:
            self.action(self, job)
        self.repository.add_items(self.category, [{"category": self.category}])
        self.calls.append(self.category)

    def import_data(self, job, exported_request):
        if self.action is not None:
            self.action(self, job)
        self.calls.append(self.category)


@pytest.fixture
def calls() -> list[str]:
    """Shared invocation log for recording services."""
    return []


@pytest.fixture
def make_service(calls):
    """Factory for recording service types.

    Returns the class so it can be registered or instantiated by the
    engine's service factory.
    """

    def _make(
        category: str,
        parent: str = "",
        priority: int = 0,
        action: Callable | None = None,
    ) -> type[RecordingService]:
        def __init__(self):
            RecordingService.__init__(self, calls, action)

        return type(
            f"{category}Service",
            (RecordingService,),
            {
                "category": category,
                "parent_category": parent,
                "priority": priority,
                "__init__": __init__,
            },
        )

    return _make


@pytest.fixture
def standard_hierarchy(make_service):
    """Portal, A (with children A1, A2) and B, in deliberately shuffled order."""
    return [
        make_service("A2", parent="A", priority=2),
        make_service("B", priority=2),
        make_service("A1", parent="A", priority=1),
        make_service("A", priority=1),
        make_service("Portal", priority=0),
    ]


@pytest.fixture
def make_engine(settings, checkpoints, cancellations, clock):
    """Build an engine over a fixed list of service types."""

    def _make(service_types, *, engine_settings: PortablesSettings | None = None, **overrides) -> ExportImportEngine:
        kwargs = {
            "checkpoints": checkpoints,
            "cancellations": cancellations,
            "services": lambda: [cls() for cls in service_types],
            "clock": clock,
        }
        kwargs.update(overrides)
        return ExportImportEngine(engine_settings or settings, **kwargs)

    return _make


# =============================================================================
# Jobs
# =============================================================================


@pytest.fixture
def export_job():
    """Factory for unsaved export jobs."""

    def _make(items: list[str], *, job_id: str = "job-export", **request_fields) -> Job:
        request = ExportRequest(items_to_export=items, **request_fields)
        return Job(
            job_id=job_id,
            job_type=JobType.EXPORT,
            job_object=request.model_dump_json(),
            export_file=f"export_{job_id}",
        )

    return _make


@pytest.fixture
def import_job():
    """Factory for unsaved import jobs."""

    def _make(file_name: str, *, job_id: str = "job-import", schema_version: str | None = None) -> Job:
        request = ImportRequest(file_name=file_name, schema_version=schema_version)
        return Job(job_id=job_id, job_type=JobType.IMPORT, job_object=request.model_dump_json())

    return _make
