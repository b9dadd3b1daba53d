"""
Job CLI Commands

Commands for managing monitored jobs.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import structlog
import typer
from rich.panel import Panel
from rich.table import Table

from pingwarden.cli.common import (
    STATUS_STYLES,
    build_monitor,
    console,
    format_time,
    resolve_job,
)
from pingwarden.heartbeat.errors import NotFoundError, ValidationError
from pingwarden.heartbeat.models import ScheduleType

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="jobs",
    help="Manage monitored jobs",
    no_args_is_help=True,
)

OwnerOption = Annotated[str, typer.Option("--owner", "-o", help="Owning account")]


@app.command("create")
def create_job(
    name: Annotated[str, typer.Argument(help="Job name")],
    schedule: Annotated[str, typer.Argument(help='Cron expression or interval such as "5m", "1h"')],
    schedule_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Schedule type: cron or interval"),
    ] = "interval",
    grace: Annotated[int, typer.Option("--grace", "-g", help="Grace period in seconds")] = 60,
    owner: OwnerOption = "local",
) -> None:
    """
    Create a new monitored job.

    Examples:
        pingwarden jobs create backup 1d
        pingwarden jobs create nightly "0 0 * * *" -t cron -g 300
    """
    if schedule_type not in {t.value for t in ScheduleType}:
        console.print(f"[red]Invalid schedule type: {schedule_type}[/red]")
        raise typer.Exit(1)

    async def _create():
        monitor = build_monitor()
        return await monitor.jobs.create_job(owner, name, schedule_type, schedule, grace)

    try:
        job = asyncio.run(_create())
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[green]✓ Job created[/green]\n\n"
        f"[cyan]ID:[/cyan] {job.id}\n"
        f"[cyan]Schedule:[/cyan] {job.schedule_type.value} ({job.schedule_value})\n"
        f"[cyan]Grace:[/cyan] {job.grace_period_seconds}s\n"
        f"[cyan]Expected:[/cyan] {format_time(job.expected_next_ping_at)}\n"
        f"[cyan]Ping token:[/cyan] {job.webhook_token}",
        title="New Job",
        border_style="green",
    ))


@app.command("update")
def update_job(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="New job name")] = None,
    schedule: Annotated[str | None, typer.Option("--schedule", "-s", help="New cron expression or interval")] = None,
    schedule_type: Annotated[
        str | None,
        typer.Option("--type", "-t", help="New schedule type: cron or interval"),
    ] = None,
    grace: Annotated[int | None, typer.Option("--grace", "-g", help="New grace period in seconds")] = None,
    owner: OwnerOption = "local",
) -> None:
    """
    Edit a job. Changing the schedule recomputes the expected ping time.

    Examples:
        pingwarden jobs update 3f2a --grace 120
        pingwarden jobs update 3f2a -s "*/15 * * * *" -t cron
    """
    async def _update():
        monitor = build_monitor()
        job = await resolve_job(monitor, owner, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return await monitor.jobs.update_job(
            owner,
            job.id,
            name=name,
            schedule_type=schedule_type,
            schedule_value=schedule,
            grace_period_seconds=grace,
        )

    try:
        job = asyncio.run(_update())
    except (NotFoundError, ValidationError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[green]✓ Job {job.name} updated[/green] "
        f"({job.schedule_type.value} {job.schedule_value}, grace {job.grace_period_seconds}s, "
        f"expected {format_time(job.expected_next_ping_at)})"
    )


@app.command("list")
def list_jobs(owner: OwnerOption = "local") -> None:
    """List monitored jobs."""
    async def _list():
        monitor = build_monitor()
        return await monitor.jobs.list_jobs(owner)

    jobs = asyncio.run(_list())
    if not jobs:
        console.print("[dim]No jobs found.[/dim]")
        return

    table = Table(title="Jobs", border_style="cyan")
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Schedule")
    table.add_column("Status", justify="center")
    table.add_column("Last Ping")
    table.add_column("Expected")

    for job in jobs:
        table.add_row(
            job.id[:12],
            job.name[:30],
            f"{job.schedule_type.value} {job.schedule_value}",
            STATUS_STYLES.get(job.status, job.status.value),
            format_time(job.last_pinged_at, "never"),
            format_time(job.expected_next_ping_at),
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(jobs)} jobs[/dim]")


def _change_state(job_id: str, owner: str, action: str) -> None:
    async def _run():
        monitor = build_monitor()
        job = await resolve_job(monitor, owner, job_id)
        if job is None:
            return None
        if action == "pause":
            return await monitor.jobs.pause_job(owner, job.id)
        if action == "resume":
            return await monitor.jobs.resume_job(owner, job.id)
        await monitor.jobs.delete_job(owner, job.id)
        return job

    job = asyncio.run(_run())
    if job is None:
        console.print(f"[red]Job not found: {job_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Job {job.name} {action}d[/green]")


@app.command("pause")
def pause_job(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    owner: OwnerOption = "local",
) -> None:
    """Pause lateness detection for a job."""
    _change_state(job_id, owner, "pause")


@app.command("resume")
def resume_job(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    owner: OwnerOption = "local",
) -> None:
    """Resume a paused job."""
    _change_state(job_id, owner, "resume")


@app.command("delete")
def delete_job(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    owner: OwnerOption = "local",
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete a job with its history and channel bindings."""
    if not force and not typer.confirm(f"Delete job {job_id}?"):
        raise typer.Abort()
    _change_state(job_id, owner, "delete")


@app.command("history")
def job_history(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    limit: Annotated[int, typer.Option("--limit", "-l", help="Entries to show")] = 20,
    owner: OwnerOption = "local",
) -> None:
    """Show the execution log of a job."""
    async def _history():
        monitor = build_monitor()
        job = await resolve_job(monitor, owner, job_id)
        if job is None:
            return None, []
        return job, await monitor.jobs.list_executions(owner, job.id, limit=limit)

    job, executions = asyncio.run(_history())
    if job is None:
        console.print(f"[red]Job not found: {job_id}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"History: {job.name}", border_style="cyan")
    table.add_column("When")
    table.add_column("Status", justify="center")
    table.add_column("Log")

    status_colors = {"success": "green", "late": "yellow", "errored": "red", "failed": "red"}
    for execution in executions:
        color = status_colors.get(execution.status.value, "white")
        table.add_row(
            format_time(execution.started_at),
            f"[{color}]{execution.status.value}[/{color}]",
            (execution.output_log or "")[:80],
        )

    console.print(table)
