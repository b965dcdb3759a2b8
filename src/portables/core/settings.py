"""Centralized settings for portables.

All fields can be set via ``PORTABLES_*`` environment variables (e.g.
``PORTABLES_TIME_BUDGET_SECONDS=120``) or a ``.env`` file.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-job
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** Works out of the box for development

Fields
──────
export_dir           : Directory holding export archives (created at engine start)
archive_extension    : File extension appended to an export job's archive base name
database             : SQLite file for the job and checkpoint stores
time_budget_seconds  : Wall-clock budget per invocation before services are asked to stop
failure_policy       : ``stop`` (fail fast) or ``continue`` (isolate failing services)
schema_version       : Engine schema version stamped into exports / checked on import
cancellation_url     : Redis URL for the cancellation registry (memory when unset)
log_level / json_logs: Structlog configuration

Tags:
    settings, configuration, pydantic, environment, portables
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FailurePolicy(str, Enum):
    """What to do when a portable service raises."""

    STOP = "stop"  # Propagate the error and abort the run
    CONTINUE = "continue"  # Record the failure, skip its children, keep going


class PortablesSettings(BaseSettings):
    """Portables configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PORTABLES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Archives ─────────────────────────────────────────────────
    export_dir: Path = Field(
        default_factory=lambda: Path.home() / ".portables" / "exports",
        description="Directory holding export archives",
    )
    archive_extension: str = Field(default=".db")

    # ── Stores ───────────────────────────────────────────────────
    database: Path = Field(
        default_factory=lambda: Path.home() / ".portables" / "portables.db",
        description="SQLite file for jobs and checkpoints",
    )

    # ── Engine ───────────────────────────────────────────────────
    time_budget_seconds: float = Field(default=90.0)
    failure_policy: FailurePolicy = Field(default=FailurePolicy.CONTINUE)
    schema_version: str = Field(default="1.0.0")

    # ── Cancellation ─────────────────────────────────────────────
    cancellation_url: str | None = Field(default=None)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    json_logs: bool | None = Field(default=None)

    @field_validator("time_budget_seconds")
    @classmethod
    def _positive_budget(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("time_budget_seconds must be positive")
        return value

    @field_validator("archive_extension")
    @classmethod
    def _dotted_extension(cls, value: str) -> str:
        return value if value.startswith(".") else f".{value}"


# ── Settings factory with caching ────────────────────────────────────────

_settings: PortablesSettings | None = None


def get_settings(*, _force_reload: bool = False) -> PortablesSettings:
    """Load, validate, and cache a :class:`PortablesSettings` instance."""
    global _settings
    if _settings is None or _force_reload:
        _settings = PortablesSettings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None


__all__ = [
    "FailurePolicy",
    "PortablesSettings",
    "get_settings",
    "reset_settings",
]
