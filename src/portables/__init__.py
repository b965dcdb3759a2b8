"""
Portables - Two-phase export/import job orchestration.

This package provides:
- portables.core: errors, logging, settings, cache backends, checkpoint and job stores
- portables.framework: the portable service contract and service registry
- portables.orchestration: the level-by-level export/import engine and runner
- portables.cli: Typer command line interface
"""

__version__ = "0.1.0"

from portables.core.errors import PortablesError, PreconditionError
from portables.framework import PortableService, discover_services, register_service
from portables.orchestration import ExportImportEngine, JobResult, PortabilityRunner

__all__ = [
    "__version__",
    "PortablesError",
    "PreconditionError",
    "PortableService",
    "register_service",
    "discover_services",
    "ExportImportEngine",
    "JobResult",
    "PortabilityRunner",
]
