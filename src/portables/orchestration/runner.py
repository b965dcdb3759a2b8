"""Job runner: the host-facing entry point for scheduled invocations.

Manifesto:
    The scheduler calls the runner periodically. The runner loads the job,
    hands it to the engine, and persists what the engine decided, so the
    engine never talks to the job store and scheduler code never manages
    job status itself.

    A job whose invocation ran out of time budget while some categories
    are still incomplete stays ``in_progress``; the next invocation picks
    it up and the services resume from their checkpoints.

Tags:
    portables, runner, scheduler, resume
"""

from __future__ import annotations

from portables.core.jobs import Job, JobStatus, JobStore
from portables.core.logging import get_logger
from portables.orchestration.engine import ExportImportEngine
from portables.orchestration.result import JobResult, MemoryRunLog, RunLog

log = get_logger(__name__)


class PortabilityRunner:
    """Runs stored jobs through an :class:`ExportImportEngine`."""

    def __init__(self, jobs: JobStore, engine: ExportImportEngine) -> None:
        self.jobs = jobs
        self.engine = engine

    def run_job(self, job_id: str, run_log: RunLog | None = None) -> JobResult:
        """
        Run one invocation of a stored job.

        Args:
            job_id: Id of the job to run
            run_log: Note sink for the schedule record (a fresh MemoryRunLog if omitted)

        Returns:
            The engine's JobResult

        Raises:
            JobNotFoundError: If the job does not exist
            ServiceExecutionError: Under the ``stop`` failure policy, after the
                job has been saved as failed
        """
        run_log = run_log if run_log is not None else MemoryRunLog()
        job = self.jobs.get(job_id)
        if job.status.is_terminal:
            log.warning("runner.skipped", job_id=job_id, status=job.status.value)
            run_log.add_note(f"Job already finished: {job.status.value}")
            return JobResult(job_id=job_id, status=job.status)

        job.status = JobStatus.IN_PROGRESS
        self.jobs.save(job)
        log.debug("runner.start", job_id=job_id, job_type=job.job_type.value)

        try:
            result = self.engine.run(job, run_log)
        except Exception as e:
            log.error("runner.error", job_id=job_id, error=str(e), error_type=type(e).__name__)
            if job.status is not JobStatus.DONE_FAILURE:
                job.finish(JobStatus.DONE_FAILURE)
            self.jobs.save(job)
            raise

        if self._needs_resume(job, result):
            job.status = JobStatus.IN_PROGRESS
            job.completed_at = None
            run_log.add_note("Time budget exhausted; job will resume on next run")
            log.info("runner.suspended", job_id=job_id)

        self.jobs.save(job)
        log.info("runner.completed", job_id=job_id, status=job.status.value)
        return result

    def run_pending(self) -> list[JobResult]:
        """Run every job that has not reached a terminal status, oldest first."""
        results = []
        for job in self.jobs.list():
            if job.status in (JobStatus.NOT_STARTED, JobStatus.IN_PROGRESS):
                results.append(self.run_job(job.job_id))
        return results

    def _needs_resume(self, job: Job, result: JobResult) -> bool:
        if result.status is not JobStatus.DONE_SUCCESS or not result.time_budget_exceeded:
            return False
        checkpoints = self.engine.checkpoints.get_checkpoints(job.job_id)
        return any(not cp.completed for cp in checkpoints)


__all__ = ["PortabilityRunner"]
