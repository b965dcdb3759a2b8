"""Portables Core -- errors, logging, settings, cache backends and stores.

Architecture::

    errors.py        Structured error hierarchy (PortablesError, PreconditionError)
    logging.py       structlog configuration + context binding
    settings.py      pydantic-settings configuration (PORTABLES_*)
    cache.py         CacheBackend protocol (memory / Redis) for cancellation markers
    checkpoints.py   Per-(job, category) resume markers
    jobs.py          Job records, statuses and the job store
"""

from portables.core.checkpoints import Checkpoint, CheckpointStore
from portables.core.jobs import Job, JobStatus, JobStore, JobType
from portables.core.logging import configure_logging, get_logger
from portables.core.settings import FailurePolicy, PortablesSettings, get_settings

__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "Job",
    "JobStatus",
    "JobStore",
    "JobType",
    "configure_logging",
    "get_logger",
    "FailurePolicy",
    "PortablesSettings",
    "get_settings",
]
