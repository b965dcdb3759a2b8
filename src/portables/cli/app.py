"""
Root Typer application for the portables CLI.

Jobs and checkpoints live in the SQLite file named by
``PORTABLES_DATABASE``; archives live in ``PORTABLES_EXPORT_DIR``.
Portable services are loaded from the ``portables.services`` entry point
group before any command that runs or lists them.
"""

from __future__ import annotations

import typer
from typer import Typer

from portables.cli.utils import console, fail, make_context, output_json, output_table
from portables.core.errors import JobNotFoundError, PortablesError
from portables.core.jobs import JobStatus
from portables.orchestration.requests import ExportRequest, ImportRequest, PageSelection

app = Typer(
    name="portables",
    help="portables: two-phase export/import job orchestration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from portables import __version__

        typer.echo(f"portables {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Submit, run, inspect and cancel export/import jobs."""


# ── Submission ───────────────────────────────────────────────────────────


@app.command("export")
def submit_export(
    items: list[str] = typer.Option(..., "--item", "-i", help="Category to export (repeatable)"),
    pages: list[int] = typer.Option([], "--page", "-p", help="Page id to export with its subtree"),
    name: str = typer.Option("", "--name", "-n"),
    export_file: str | None = typer.Option(None, "--file", help="Archive base name"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create an export job."""
    ctx = make_context()
    request = ExportRequest(
        items_to_export=items,
        pages=[PageSelection(page_id=p, include_children=True) for p in pages],
        schema_version=ctx.settings.schema_version,
        export_name=name,
    )
    job = ctx.jobs.create_export(request.model_dump_json(), name=name, export_file=export_file)
    if json_out:
        output_json({"job_id": job.job_id, "export_file": job.export_file})
    else:
        console.print(f"Export job [bold]{job.job_id}[/bold] created ({job.export_file})")


@app.command("import")
def submit_import(
    file_name: str = typer.Argument(..., help="Archive file name inside the export folder"),
    name: str = typer.Option("", "--name", "-n"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create an import job."""
    ctx = make_context()
    request = ImportRequest(file_name=file_name, schema_version=ctx.settings.schema_version)
    job = ctx.jobs.create_import(request.model_dump_json(), name=name)
    if json_out:
        output_json({"job_id": job.job_id})
    else:
        console.print(f"Import job [bold]{job.job_id}[/bold] created")


# ── Execution ────────────────────────────────────────────────────────────


def _runner(ctx):
    from portables.framework.registry import load_entry_points
    from portables.orchestration.engine import ExportImportEngine
    from portables.orchestration.runner import PortabilityRunner

    load_entry_points()
    engine = ExportImportEngine(
        ctx.settings, checkpoints=ctx.checkpoints, cancellations=ctx.cancellations
    )
    return PortabilityRunner(ctx.jobs, engine)


@app.command()
def run(
    job_id: str = typer.Argument(..., help="Job ID"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run one invocation of a job."""
    from portables.orchestration.result import MemoryRunLog

    ctx = make_context()
    run_log = MemoryRunLog()
    try:
        result = _runner(ctx).run_job(job_id, run_log)
    except PortablesError as e:
        fail(e.message)

    if json_out:
        output_json({**result.to_dict(), "notes": run_log.notes})
        return
    for note in run_log.notes:
        console.print(f"  {note}")
    output_table(
        f"Job {job_id}: {result.status.value}",
        ["Summary", "Detail"],
        [[s.label, s.detail] for s in result.summary],
    )


@app.command("run-pending")
def run_pending() -> None:
    """Run every job that is not finished yet."""
    ctx = make_context()
    results = _runner(ctx).run_pending()
    output_table(
        "Pending jobs",
        ["Job", "Status", "Completed", "Failed"],
        [
            [r.job_id, r.status.value, len(r.completed_categories), len(r.failed_categories)]
            for r in results
        ],
    )


@app.command()
def cancel(job_id: str = typer.Argument(..., help="Job ID")) -> None:
    """Request cooperative cancellation of a running job."""
    from portables.orchestration.cancellation import job_cache_key

    ctx = make_context()
    try:
        job = ctx.jobs.get(job_id)
    except JobNotFoundError as e:
        fail(e.message)
    if not ctx.cancellations.cancel(job_cache_key(job)):
        hint = "" if ctx.settings.cancellation_url else " (set PORTABLES_CANCELLATION_URL to reach other processes)"
        fail(f"Job {job_id} is not running{hint}")
    console.print(f"Cancellation requested for {job_id}")


# ── Inspection ───────────────────────────────────────────────────────────


@app.command()
def jobs(
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status, e.g. in_progress"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List jobs."""
    wanted = None
    if status is not None:
        try:
            wanted = JobStatus(status)
        except ValueError:
            fail(f"Unknown status {status!r}; expected one of: " + ", ".join(s.value for s in JobStatus))
    ctx = make_context()
    found = ctx.jobs.list(wanted)
    if json_out:
        output_json(
            [
                {
                    "job_id": j.job_id,
                    "type": j.job_type.value,
                    "status": j.status.value,
                    "name": j.name,
                    "completed_at": j.completed_at,
                }
                for j in found
            ]
        )
        return
    output_table(
        "Jobs",
        ["Job", "Type", "Status", "Name", "Completed"],
        [[j.job_id, j.job_type.value, j.status.value, j.name, j.completed_at] for j in found],
    )


@app.command()
def checkpoints(
    job_id: str = typer.Argument(..., help="Job ID"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the checkpoints recorded for a job."""
    ctx = make_context()
    found = ctx.checkpoints.get_checkpoints(job_id)
    if json_out:
        output_json(
            [
                {
                    "category": cp.category,
                    "stage": cp.stage,
                    "progress": cp.progress,
                    "completed": cp.completed,
                    "error": cp.error,
                }
                for cp in found
            ]
        )
        return
    output_table(
        f"Checkpoints: {job_id}",
        ["Category", "Stage", "Progress", "Items", "Completed", "Error"],
        [
            [
                cp.category,
                cp.stage,
                f"{cp.progress:.0f}%",
                f"{cp.processed_items}/{cp.total_items}",
                cp.completed,
                cp.error,
            ]
            for cp in found
        ],
    )


@app.command()
def services() -> None:
    """List registered portable services."""
    from portables.framework.registry import list_service_types, load_entry_points

    load_entry_points()
    types = list_service_types()
    output_table(
        "Portable services",
        ["Category", "Parent", "Priority", "Type"],
        [[t.category, t.parent_category or "-", t.priority, f"{t.__module__}.{t.__qualname__}"] for t in types],
    )
