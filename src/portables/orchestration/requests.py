"""
Request descriptors carried by export and import jobs.

A job's ``job_object`` is the JSON form of one of these models. Parsing
failures and schema mismatches are precondition failures: the job fails
immediately and no service runs.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portables.core.errors import PreconditionError


class PageSelection(BaseModel):
    """One page picked for export, optionally with its subtree."""

    model_config = ConfigDict(extra="ignore")

    page_id: int
    include_children: bool = False


class ExportRequest(BaseModel):
    """What an export job should write into its archive.

    The same model is stored as the archive's metadata record and handed
    back to services on import. An unset ``schema_version`` is stamped
    with the engine's version when the export starts.
    """

    model_config = ConfigDict(extra="ignore")

    items_to_export: list[str] = Field(default_factory=list)
    pages: list[PageSelection] = Field(default_factory=list)
    schema_version: str | None = None
    export_name: str = ""
    description: str = ""
    include_deleted: bool = False

    @field_validator("schema_version")
    @classmethod
    def _parsable_version(cls, value: str | None) -> str | None:
        if value is not None:
            parse_version(value)
        return value


class ImportRequest(BaseModel):
    """Which archive an import job reads, and the version the importer understands.

    An unset ``schema_version`` means the engine's own version.
    """

    model_config = ConfigDict(extra="ignore")

    file_name: str = Field(min_length=1)
    schema_version: str | None = None

    @field_validator("schema_version")
    @classmethod
    def _parsable_version(cls, value: str | None) -> str | None:
        if value is not None:
            parse_version(value)
        return value


def parse_version(value: str) -> tuple[int, ...]:
    """Parse a dotted numeric version (``"1.0.0"``) into a comparable tuple.

    Trailing zero components are dropped so ``"1.0"`` equals ``"1.0.0"``.

    Raises:
        ValueError: Empty or non-numeric components.
    """
    parts = value.strip().split(".")
    if not value.strip() or any(not p.isdigit() for p in parts):
        raise ValueError(f"Invalid schema version: {value!r}")
    numbers = [int(p) for p in parts]
    while len(numbers) > 1 and numbers[-1] == 0:
        numbers.pop()
    return tuple(numbers)


def is_compatible(archive_version: str, engine_version: str) -> bool:
    """An archive can be imported only if it is not newer than the importer."""
    return parse_version(archive_version) <= parse_version(engine_version)


def parse_export_request(payload: str | None) -> ExportRequest:
    """Deserialize an export job payload.

    Raises:
        PreconditionError: Empty or malformed payload.
    """
    return _parse(ExportRequest, payload)


def parse_import_request(payload: str | None) -> ImportRequest:
    """Deserialize an import job payload.

    Raises:
        PreconditionError: Empty or malformed payload.
    """
    return _parse(ImportRequest, payload)


def _parse(model: type[BaseModel], payload: str | None):
    if not payload or not payload.strip():
        raise PreconditionError(f"Empty {model.__name__} payload")
    try:
        return model.model_validate_json(payload)
    except ValidationError as e:
        raise PreconditionError(
            f"Invalid {model.__name__} payload: {e.error_count()} error(s)",
            value=payload,
            cause=e,
        ) from e


__all__ = [
    "PageSelection",
    "ExportRequest",
    "ImportRequest",
    "parse_version",
    "is_compatible",
    "parse_export_request",
    "parse_import_request",
]
