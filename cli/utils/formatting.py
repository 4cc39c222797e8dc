"""Rich Formatting Utilities for CLI Output"""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from summaryq.jobs.schemas import JobResponse, JobStatsResponse

console = Console()

STATUS_STYLES = {
    "queued": "yellow",
    "running": "cyan",
    "succeeded": "green",
    "failed": "red",
    "dead": "magenta",
}


def print_success(message: str):
    """Print success message with green styling"""
    console.print(f"[green]✓ {message}[/green]")


def print_error(message: str):
    """Print error message with red styling"""
    console.print(f"[red]✗ {message}[/red]")


def print_warning(message: str):
    """Print warning message with yellow styling"""
    console.print(f"[yellow]⚠ {message}[/yellow]")


def print_info(message: str):
    """Print info message with blue styling"""
    console.print(f"[blue]ℹ {message}[/blue]")


def format_status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def create_job_panel(job: JobResponse) -> Panel:
    """Create a detail panel for a single job"""
    lines = [
        f"• Job ID: [cyan]{job.id}[/cyan]",
        f"• Kind: [magenta]{job.kind}[/magenta]",
        f"• Target: [blue]{job.target_id}[/blue]",
        f"• Status: {format_status(job.status)}",
        f"• Attempts: [yellow]{job.attempt_count}/{job.max_attempts}[/yellow]",
        f"• Next run: {job.next_run_at.isoformat()}",
    ]
    if job.locked_by:
        locked_at = job.locked_at.isoformat() if job.locked_at else "—"
        lines.append(f"• Locked by: {job.locked_by} at {locked_at}")
    if job.error_code or job.error_message:
        lines.append(
            f"• Error: [red]{job.error_code or '—'}[/red] {job.error_message or ''}"
        )
    if job.result_summary:
        preview = job.result_summary
        if len(preview) > 200:
            preview = preview[:197] + "..."
        lines.append(f"\n[dim]{preview}[/dim]")

    return Panel(
        "\n".join(lines),
        title="Summary Job",
        border_style=STATUS_STYLES.get(job.status, "blue"),
    )


def create_stats_table(stats: JobStatsResponse) -> Table:
    """Create formatted table for queue statistics"""
    title = f"Summary Jobs ({stats.kind})" if stats.kind else "Summary Jobs"
    table = Table(title=title, box=box.ROUNDED)

    table.add_column("Status", justify="left", style="cyan")
    table.add_column("Count", justify="right", style="yellow")

    for status in STATUS_STYLES:
        table.add_row(format_status(status), str(stats.by_status.get(status, 0)))

    table.add_section()
    table.add_row("[bold]Total[/bold]", str(stats.total_jobs))
    table.add_row("Queue depth", str(stats.queue_depth))
    table.add_row("Stale running", str(stats.stale_running))

    return table
