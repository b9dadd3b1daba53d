"""Shared helpers for CLI commands."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console

from pingwarden.app import Monitor
from pingwarden.config import get_persistent_settings
from pingwarden.heartbeat.models import JobStatus, MonitoredJob

console = Console()

STATUS_STYLES = {
    JobStatus.ACTIVE: "[cyan]○[/cyan] active",
    JobStatus.HEALTHY: "[green]●[/green] healthy",
    JobStatus.LATE: "[yellow]◐[/yellow] late",
    JobStatus.ERRORED: "[red]✗[/red] errored",
    JobStatus.PAUSED: "[dim]‖[/dim] paused",
}


def build_monitor() -> Monitor:
    """Monitor backed by the same store file the server uses."""
    return Monitor(settings=get_persistent_settings())


def format_time(value: datetime | None, default: str = "-") -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else default


async def resolve_job(monitor: Monitor, owner: str, job_id: str) -> MonitoredJob | None:
    """Find an owned job by full or partial ID."""
    for job in await monitor.jobs.list_jobs(owner):
        if job.id.startswith(job_id):
            return job
    return None
