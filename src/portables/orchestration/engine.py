"""Export/import engine: the level-by-level service scheduler.

Manifesto:
    One engine invocation is a single forward pass over the category
    hierarchy. Long jobs are not finished in one pass: the time budget
    asks services to wind down, their checkpoints are persisted, and the
    next invocation of the same job resumes from those checkpoints.

    NotStarted ──▶ Running ──▶ Completed | Failed | Cancelled

Algorithm (identical for both directions)::

    open archive            (fresh only when the job has no checkpoints)
    included = resolve(request, services)
    register cancellation token
    for level in CategoryGraph(services).levels():
        stop if cancelled
        for service in level (ascending priority):
            stop if cancelled
            if selected: inject collaborators, checkpoint, run, note
    unregister token        (always)
    promote IN_PROGRESS → DONE_SUCCESS

Tags:
    portables, orchestration, engine, checkpoint, cancellation
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from portables.core.checkpoints import Checkpoint, CheckpointStore
from portables.core.errors import (
    ArchiveError,
    ArchiveNotFoundError,
    OperationCancelled,
    PreconditionError,
    ServiceExecutionError,
)
from portables.core.jobs import Job, JobStatus, JobType
from portables.core.logging import LogContext, get_logger
from portables.core.settings import FailurePolicy, PortablesSettings, get_settings
from portables.framework.registry import discover_services
from portables.framework.services import PortableService
from portables.orchestration.archive import ArchiveRepository
from portables.orchestration.cancellation import CancellationRegistry, CancellationToken, job_cache_key
from portables.orchestration.categories import CategoryGraph, CategorySet, is_selected, resolve_for_request
from portables.orchestration.requests import (
    ExportRequest,
    is_compatible,
    parse_export_request,
    parse_import_request,
)
from portables.orchestration.result import JobResult, RunLog, format_size

logger = get_logger(__name__)

ServiceFactory = Callable[[], Iterable[PortableService]]


@dataclass
class _Run:
    """Per-invocation state; the engine itself holds none."""

    job: Job
    result: JobResult
    log: RunLog
    started_at: float
    failed: bool = False


class ExportImportEngine:
    """Drives the registered portable services for one job invocation.

    Args:
        settings: Engine settings (defaults to :func:`get_settings`).
        checkpoints: Checkpoint store shared by all jobs.
        cancellations: Cancellation registry shared by all jobs.
        services: Factory returning fresh service instances for one run.
        clock: Monotonic clock used for the time budget.
    """

    def __init__(
        self,
        settings: PortablesSettings | None = None,
        *,
        checkpoints: CheckpointStore | None = None,
        cancellations: CancellationRegistry | None = None,
        services: ServiceFactory = discover_services,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.checkpoints = checkpoints if checkpoints is not None else CheckpointStore()
        self.cancellations = cancellations if cancellations is not None else CancellationRegistry()
        self._services = services
        self._clock = clock
        self.export_dir = Path(self.settings.export_dir)
        self.export_dir.mkdir(parents=True, exist_ok=True)

    # ── public API ────────────────────────────────────────────────

    def run(self, job: Job, log: RunLog, token: CancellationToken | None = None) -> JobResult:
        """Run *job* in its own direction."""
        if job.job_type is JobType.EXPORT:
            return self.run_export(job, log, token)
        return self.run_import(job, log, token)

    def archive_path_for(self, job: Job) -> Path:
        """Archive file of an export job, always directly inside the export folder.

        Raises:
            PreconditionError: ``export_file`` points outside the export folder.
        """
        name = f"{job.export_file or f'export_{job.job_id}'}{self.settings.archive_extension}"
        export_dir = self.export_dir.resolve()
        path = (export_dir / name).resolve()
        if path.parent != export_dir:
            raise PreconditionError(f"Export file must live in the export folder: {job.export_file}")
        return self.export_dir / path.name

    def run_export(self, job: Job, log: RunLog, token: CancellationToken | None = None) -> JobResult:
        """Export the requested categories of *job* into its archive."""
        run = _Run(job=job, result=JobResult(job_id=job.job_id), log=log, started_at=self._clock())

        with LogContext(job_id=job.job_id, direction=JobType.EXPORT.value):
            try:
                request = parse_export_request(job.job_object)
                if not request.items_to_export:
                    raise PreconditionError("No items selected for exporting")
                archive_path = self.archive_path_for(job)
            except PreconditionError as e:
                return self._precondition_failed(run, e)

            if request.schema_version is None:
                request.schema_version = self.settings.schema_version

            checkpoints = self.checkpoints.load(job.job_id)

            # Existing checkpoints mean a resume: keep the archive written so far
            if not checkpoints and archive_path.exists():
                archive_path.unlink()
                logger.info("engine.archive_recreated", archive=archive_path.name)

            services = list(self._services())
            logger.info(
                "engine.started",
                archive=archive_path.name,
                services=len(services),
                resumed=bool(checkpoints),
            )

            repository = ArchiveRepository(archive_path)
            try:
                run.result.add_summary("Exporting Repository", archive_path.name)
                repository.add_single_item(request)
                run.result.status = JobStatus.IN_PROGRESS
                self._run_levels(
                    run,
                    services=services,
                    included=resolve_for_request(request, services),
                    repository=repository,
                    checkpoints=checkpoints,
                    payload=request,
                    token=token,
                )
            finally:
                repository.close()

            self._finish(run)
            run.result.add_summary("Exported File Size", format_size(archive_path.stat().st_size))
            return run.result

    def run_import(self, job: Job, log: RunLog, token: CancellationToken | None = None) -> JobResult:
        """Import the archive named by *job* through the registered services."""
        run = _Run(job=job, result=JobResult(job_id=job.job_id), log=log, started_at=self._clock())

        with LogContext(job_id=job.job_id, direction=JobType.IMPORT.value):
            try:
                request = parse_import_request(job.job_object)
                archive_path = self._resolve_import_path(request.file_name)
            except (PreconditionError, ArchiveNotFoundError) as e:
                return self._precondition_failed(run, e)

            engine_version = request.schema_version or self.settings.schema_version
            run.result.add_summary("Importing Repository", archive_path.name)
            run.result.add_summary("Imported File Size", format_size(archive_path.stat().st_size))

            try:
                repository = ArchiveRepository(archive_path, read_only=True)
            except ArchiveError as e:
                return self._precondition_failed(run, e)

            try:
                try:
                    exported = repository.get_single_item(ExportRequest)
                except ArchiveError as e:
                    return self._precondition_failed(run, e)

                archive_version = exported.schema_version or "0"
                if not is_compatible(archive_version, engine_version):
                    msg = (
                        f"Exported version ({archive_version}) is newer than "
                        f"import engine version ({engine_version})"
                    )
                    log.add_note("Import NOT Possible")
                    run.result.add_summary("Import NOT Possible", msg)
                    return self._precondition_failed(run, PreconditionError(msg), note=False)

                services = list(self._services())
                checkpoints = self.checkpoints.load(job.job_id)
                logger.info(
                    "engine.started",
                    archive=archive_path.name,
                    services=len(services),
                    resumed=bool(checkpoints),
                )
                run.result.status = JobStatus.IN_PROGRESS
                self._run_levels(
                    run,
                    services=services,
                    included=resolve_for_request(exported, services),
                    repository=repository,
                    checkpoints=checkpoints,
                    payload=exported,
                    token=token,
                )
            finally:
                repository.close()

            self._finish(run)
            return run.result

    # ── level walk ────────────────────────────────────────────────

    def _run_levels(
        self,
        run: _Run,
        *,
        services: list[PortableService],
        included: CategorySet,
        repository: ArchiveRepository,
        checkpoints: dict[str, Checkpoint],
        payload: ExportRequest,
        token: CancellationToken | None,
    ) -> None:
        job, result = run.job, run.result
        token = token if token is not None else CancellationToken()
        key = job_cache_key(job)
        graph = CategoryGraph(services)
        logger.debug("engine.included_categories", included=sorted(included))

        self.cancellations.register(key, token)
        try:
            for level in graph.levels():
                if token.cancelled:
                    self._cancelled(run)
                    break

                if level.orphaned:
                    run.log.add_note("Orphaned services: " + ",".join(level.categories))
                    logger.warning("engine.orphaned_services", categories=level.categories)

                logger.debug("engine.level_started", depth=level.depth, categories=level.categories)
                for service in level.services:
                    if token.cancelled:
                        self._cancelled(run)
                        break
                    if not is_selected(service, level, included):
                        continue
                    try:
                        self._execute(run, service, repository, token, checkpoints, payload)
                    except OperationCancelled:
                        self._cancelled(run)
                        break
                    except Exception as e:
                        self._service_failed(run, service, e)
                        graph.prune(service)

                if result.status is JobStatus.CANCELLED:
                    break

            for dropped in graph.dropped:
                logger.info("engine.service_skipped", category=dropped.category, reason="parent_failed")
        finally:
            self.cancellations.unregister(key, token)

    def _execute(
        self,
        run: _Run,
        service: PortableService,
        repository: ArchiveRepository,
        token: CancellationToken,
        checkpoints: dict[str, Checkpoint],
        payload: ExportRequest,
    ) -> None:
        job = run.job
        service.result = run.result
        service.repository = repository
        service.cancellation_token = token
        service.checkpoint_callback = lambda svc: self._checkpoint_callback(run, svc)
        service.checkpoint = checkpoints.get(service.category) or Checkpoint(
            job_id=job.job_id, category=service.category
        )
        service.checkpoint.error = None
        # Record the attempt before any work is done
        service.check_point_stage()

        started = time.perf_counter()
        if job.job_type is JobType.EXPORT:
            service.export_data(job, payload)
            verb = "Exported"
        else:
            service.import_data(job, payload)
            verb = "Imported"

        run.log.add_note(f"{verb}: {service.category}")
        run.result.mark_completed(service.category)
        logger.info(
            "engine.service_completed",
            category=service.category,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    def _checkpoint_callback(self, run: _Run, service: PortableService) -> bool:
        """Persist the service's checkpoint; ``True`` once the time budget is spent."""
        if service.checkpoint is not None:
            self.checkpoints.upsert(service.checkpoint)
        elapsed = self._clock() - run.started_at
        if elapsed > self.settings.time_budget_seconds:
            if not run.result.time_budget_exceeded:
                logger.info("engine.time_budget_exceeded", elapsed_seconds=round(elapsed, 2))
            run.result.time_budget_exceeded = True
            return True
        return False

    # ── outcomes ──────────────────────────────────────────────────

    def _service_failed(self, run: _Run, service: PortableService, error: Exception) -> None:
        run.failed = True
        run.result.mark_failed(service.category)
        run.log.add_note(f"Failed: {service.category}")
        if service.checkpoint is not None:
            service.checkpoint.error = f"{type(error).__name__}: {error}"
            self.checkpoints.upsert(service.checkpoint)
        logger.error(
            "engine.service_failed",
            category=service.category,
            error=str(error),
            error_type=type(error).__name__,
            policy=self.settings.failure_policy.value,
        )

        if self.settings.failure_policy is FailurePolicy.STOP:
            run.result.status = JobStatus.DONE_FAILURE
            run.job.finish(JobStatus.DONE_FAILURE)
            raise ServiceExecutionError(service.category, error).with_context(
                job_id=run.job.job_id, direction=run.job.job_type.value
            ) from error

    def _cancelled(self, run: _Run) -> None:
        if run.result.status is not JobStatus.CANCELLED:
            run.result.status = JobStatus.CANCELLED
            run.log.add_note("Job cancelled")
            logger.info("engine.cancelled", completed=len(run.result.completed_categories))

    def _precondition_failed(self, run: _Run, error: Exception, *, note: bool = True) -> JobResult:
        message = getattr(error, "message", str(error))
        if note:
            run.log.add_note(message)
        run.result.status = JobStatus.DONE_FAILURE
        run.job.finish(JobStatus.DONE_FAILURE)
        logger.warning("engine.precondition_failed", reason=message, error_type=type(error).__name__)
        return run.result

    def _finish(self, run: _Run) -> None:
        result = run.result
        if result.status is JobStatus.IN_PROGRESS:
            result.status = JobStatus.DONE_FAILURE if run.failed else JobStatus.DONE_SUCCESS
        run.job.finish(result.status)
        logger.info(
            "engine.finished",
            status=result.status.value,
            completed=len(result.completed_categories),
            failed=len(result.failed_categories),
            time_budget_exceeded=result.time_budget_exceeded,
            duration_seconds=round(self._clock() - run.started_at, 3),
        )

    def _resolve_import_path(self, file_name: str) -> Path:
        export_dir = self.export_dir.resolve()
        path = (export_dir / file_name).resolve()
        if path.parent != export_dir:
            raise PreconditionError(f"Import file must live in the export folder: {file_name}")
        if not path.is_file():
            raise ArchiveNotFoundError(str(path))
        return path


__all__ = ["ExportImportEngine", "ServiceFactory"]
