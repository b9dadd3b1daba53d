"""
pingwarden CLI Main Entry Point

The main Typer application that assembles all command groups.
"""

import asyncio
from typing import Annotated

import structlog
import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pingwarden import __version__
from pingwarden.cli.common import build_monitor, console, format_time
from pingwarden.config import get_settings
from pingwarden.heartbeat.errors import NotFoundError
from pingwarden.logging import configure_logging

logger = structlog.get_logger(__name__)

# Create the main app
app = typer.Typer(
    name="pingwarden",
    help="pingwarden - dead-man's-switch heartbeat monitoring",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(
            Panel(
                Text.from_markup(
                    f"[bold cyan]pingwarden[/bold cyan] v{__version__}\n"
                    "[dim]Dead-man's-switch heartbeat monitoring[/dim]"
                ),
                title="Version",
                border_style="cyan",
            )
        )
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
) -> None:
    """
    pingwarden - know when your cron jobs stop running.

    Jobs ping a unique URL when they finish; pingwarden alerts you when
    a ping is late or missing.
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, settings.json_logs)


# Import and register sub-commands
from pingwarden.cli.jobs import app as jobs_app
from pingwarden.cli.channels import app as channels_app

app.add_typer(jobs_app, name="jobs", help="Manage monitored jobs")
app.add_typer(channels_app, name="channels", help="Manage notification channels")


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address")] = "",
    port: Annotated[int, typer.Option(help="Bind port")] = 0,
) -> None:
    """Run the ping API and the recurring late-job scan."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pingwarden.api.main:build_default_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=settings.debug,
    )


@app.command()
def scan() -> None:
    """Run one late-job scan now and print the result."""
    async def _scan():
        monitor = build_monitor()
        try:
            return await monitor.scanner.scan()
        finally:
            await monitor.stop()

    report = asyncio.run(_scan())

    table = Table(title="Scan Result", show_header=False, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Time", format_time(report.started_at))
    table.add_row("Overdue", str(report.checked))
    table.add_row("Marked late", f"[yellow]{report.marked_late}[/yellow]")
    table.add_row("Marked errored", f"[red]{report.marked_errored}[/red]")
    table.add_row("Skipped (pinged mid-scan)", str(report.skipped))
    table.add_row("Failed", str(report.failed))
    console.print(table)


@app.command()
def ping(
    token: Annotated[str, typer.Argument(help="Job ping token")],
) -> None:
    """Record a ping for a job locally (same as hitting its ping URL)."""
    async def _ping():
        monitor = build_monitor()
        try:
            return await monitor.ingestor.process_ping(token)
        finally:
            await monitor.stop()

    try:
        job = asyncio.run(_ping())
    except NotFoundError:
        console.print("[red]Job not found for this token.[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓ Ping recorded[/green] for {job.name}; "
        f"next expected {format_time(job.expected_next_ping_at, 'unknown')}"
    )


@app.command()
def info() -> None:
    """Show information about pingwarden."""
    settings = get_settings()

    table = Table(title="pingwarden Information", show_header=False, border_style="cyan")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Version", __version__)
    table.add_row("Scan interval", f"{settings.scan_interval_seconds}s")
    table.add_row("Escalation", f"{settings.escalation_multiplier:g} x (grace + period)")
    table.add_row("Store", str(settings.store_path or "default CLI store"))

    console.print(table)


if __name__ == "__main__":
    app()
