"""summaryq admin CLI - Main Entry Point"""

import typer
from rich.console import Console
from rich.panel import Panel

from summaryq.config.settings import get_settings

# Import command modules
from .commands import jobs
from .commands.jobs import run_with_store

console = Console()

# Create main Typer app
app = typer.Typer(
    name="summaryq-admin",
    help="🗂 summaryq - durable summary job queue administration",
    rich_markup_mode="rich",
)

# Add command subapps
app.add_typer(jobs.app, name="jobs")


@app.command()
def status():
    """📊 Check job store connectivity"""
    settings = get_settings()

    try:
        stats = run_with_store(lambda store: store.get_stats())
    except typer.Exit:
        console.print(Panel(
            f"🚫 [red]Job store unreachable[/red]\n\n"
            f"Check the DATABASE_URL setting for environment "
            f"[yellow]{settings.environment}[/yellow].",
            title="Connection Error",
            border_style="red"
        ))
        raise

    console.print(Panel(
        f"🚀 [green]Connected Successfully![/green]\n\n"
        f"• Environment: [yellow]{settings.environment}[/yellow]\n"
        f"• Prompt version: [cyan]{settings.summary_prompt_version}[/cyan]\n"
        f"• Jobs stored: [blue]{stats.total_jobs}[/blue]\n"
        f"• Queue depth: [blue]{stats.queue_depth}[/blue]",
        title="System Status",
        border_style="green"
    ))


@app.command()
def version():
    """📎 Show version information"""
    settings = get_settings()

    console.print(Panel(
        f"🗂 [bold cyan]summaryq[/bold cyan]\n\n"
        f"• Version: [green]{settings.version}[/green]\n"
        f"• Type: [yellow]Job queue administration CLI[/yellow]",
        title="Version Info",
        border_style="cyan"
    ))


def version_callback(value: bool):
    """Print the version and exit before any command runs"""
    if value:
        console.print(f"summaryq v{get_settings().version}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    🗂 summaryq admin CLI

    Inspect summary jobs, retry dead-lettered work and recover stale locks.
    Connection settings come from the same environment as the workers.
    """


if __name__ == "__main__":
    app()
