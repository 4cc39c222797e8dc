"""Job Commands - inspect and repair summary jobs"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import typer
from rich.console import Console

from summaryq.config.settings import get_settings
from summaryq.core.exceptions import StoreUnavailableError
from summaryq.infra.database import Database
from summaryq.jobs.models import ContentKind
from summaryq.jobs.store import JobStore

from ..utils.formatting import (
    create_job_panel,
    create_stats_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

console = Console()
app = typer.Typer(name="jobs", help="Summary job inspection and recovery")

T = TypeVar("T")


def run_with_store(operation: Callable[[JobStore], Awaitable[T]]) -> T:
    """Run an async store operation with a short-lived engine."""
    settings = get_settings()

    async def _run() -> T:
        database = Database(settings)
        try:
            store = JobStore(database, stale_lock_ms=settings.summary_stale_lock_ms)
            return await operation(store)
        finally:
            await database.close()

    try:
        return asyncio.run(_run())
    except StoreUnavailableError as e:
        print_error(f"Job store unavailable: {e.message}")
        raise typer.Exit(1) from None


@app.command("status")
def job_status(
    kind: ContentKind = typer.Argument(..., help="Content kind"),
    target_id: str = typer.Argument(..., help="Content item ID"),
):
    """🔎 Show the latest summary job for a content item"""
    job = run_with_store(lambda store: store.get_latest_by_target(kind, target_id))
    if job is None:
        print_warning(f"No summary job found for {kind.value}:{target_id}")
        raise typer.Exit(1)

    console.print(create_job_panel(job))


@app.command("retry")
def retry_job(
    job_id: int = typer.Argument(..., help="Job ID to retry"),
):
    """🔁 Reset a failed or dead job so workers pick it up again"""

    async def _retry(store: JobStore) -> Any:
        job = await store.retry_job(job_id)
        current = job or await store.get_job(job_id)
        return job, current

    job, current = run_with_store(_retry)
    if job is not None:
        print_success(f"Job {job_id} re-queued")
        console.print(create_job_panel(job))
        return

    if current is None:
        print_error(f"Job {job_id} not found")
    else:
        print_error(
            f"Job {job_id} is {current.status}; only failed or dead jobs can be retried"
        )
    raise typer.Exit(1)


@app.command("recover")
def recover_jobs(
    kind: ContentKind | None = typer.Argument(None, help="Content kind (all if omitted)"),
    stale_ms: int | None = typer.Option(
        None, "--stale-ms", help="Lock age threshold in ms (defaults to settings)"
    ),
):
    """🧹 Requeue jobs whose worker lock has gone stale"""
    recovered = run_with_store(lambda store: store.recover_stale(stale_ms, kind=kind))
    if recovered:
        print_success(f"Recovered {recovered} stale job(s)")
    else:
        print_info("No stale jobs found")


@app.command("stats")
def job_stats(
    kind: ContentKind | None = typer.Argument(None, help="Content kind (all if omitted)"),
):
    """📊 Show queue statistics"""
    stats = run_with_store(lambda store: store.get_stats(kind))
    console.print(create_stats_table(stats))
