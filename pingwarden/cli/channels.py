"""
Channel CLI Commands

Commands for notification channels and job bindings.
"""

from __future__ import annotations

import asyncio
import json
from typing import Annotated

import typer
from rich.table import Table

from pingwarden.cli.common import build_monitor, console, resolve_job
from pingwarden.heartbeat.errors import NotFoundError, ValidationError

app = typer.Typer(
    name="channels",
    help="Manage notification channels",
    no_args_is_help=True,
)

OwnerOption = Annotated[str, typer.Option("--owner", "-o", help="Owning account")]


@app.command("create")
def create_channel(
    channel_type: Annotated[str, typer.Argument(help="email, slack, pagerduty or webhook")],
    name: Annotated[str, typer.Argument(help="Channel name")],
    config: Annotated[
        str,
        typer.Option("--config", "-c", help='Configuration as JSON, e.g. \'{"email": "ops@example.com"}\''),
    ],
    owner: OwnerOption = "local",
) -> None:
    """
    Create a notification channel.

    Examples:
        pingwarden channels create slack ops -c '{"webhookUrl": "https://hooks.slack.com/services/..."}'
        pingwarden channels create email oncall -c '{"email": "oncall@example.com"}'
    """
    try:
        details = json.loads(config)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON config: {e}[/red]")
        raise typer.Exit(1)

    async def _create():
        monitor = build_monitor()
        return await monitor.channels.create_channel(owner, channel_type, name, details)

    try:
        channel = asyncio.run(_create())
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    verified = "[green]verified[/green]" if channel.is_verified else "[yellow]unverified[/yellow]"
    console.print(f"[green]✓ Channel created[/green] {channel.id} ({verified})")


@app.command("list")
def list_channels(owner: OwnerOption = "local") -> None:
    """List notification channels."""
    async def _list():
        monitor = build_monitor()
        return await monitor.channels.list_channels(owner)

    channels = asyncio.run(_list())
    if not channels:
        console.print("[dim]No channels found.[/dim]")
        return

    table = Table(title="Channels", border_style="cyan")
    table.add_column("ID", style="dim", width=12)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Verified", justify="center")

    for channel in channels:
        table.add_row(
            channel.id[:12],
            channel.name,
            channel.type.value,
            "[green]✓[/green]" if channel.is_verified else "[yellow]✗[/yellow]",
        )

    console.print(table)


@app.command("verify")
def verify_channel(
    channel_id: Annotated[str, typer.Argument(help="Channel ID")],
    owner: OwnerOption = "local",
) -> None:
    """Mark a channel as verified."""
    async def _verify():
        monitor = build_monitor()
        return await monitor.channels.verify_channel(owner, channel_id)

    try:
        channel = asyncio.run(_verify())
    except NotFoundError:
        console.print(f"[red]Channel not found: {channel_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Channel {channel.name} verified[/green]")


@app.command("bind")
def bind_channel(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    channel_id: Annotated[str, typer.Argument(help="Channel ID")],
    failure: Annotated[bool, typer.Option("--failure/--no-failure", help="Notify on failure")] = True,
    lateness: Annotated[bool, typer.Option("--lateness/--no-lateness", help="Notify on lateness")] = True,
    recovery: Annotated[bool, typer.Option("--recovery/--no-recovery", help="Notify on recovery")] = False,
    owner: OwnerOption = "local",
) -> None:
    """Bind a channel to a job (re-binding updates the trigger flags)."""
    async def _bind():
        monitor = build_monitor()
        job = await resolve_job(monitor, owner, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return await monitor.channels.bind(
            owner,
            job.id,
            channel_id,
            notify_on_failure=failure,
            notify_on_lateness=lateness,
            notify_on_recovery=recovery,
        )

    try:
        setting = asyncio.run(_bind())
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Bound[/green] (setting {setting.id})")


@app.command("update")
def update_channel(
    channel_id: Annotated[str, typer.Argument(help="Channel ID")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="New channel name")] = None,
    config: Annotated[str | None, typer.Option("--config", "-c", help="New configuration as JSON")] = None,
    owner: OwnerOption = "local",
) -> None:
    """
    Rename a channel or replace its configuration.

    A new address on an email channel has to be verified again.
    """
    details = None
    if config is not None:
        try:
            details = json.loads(config)
        except json.JSONDecodeError as e:
            console.print(f"[red]Invalid JSON config: {e}[/red]")
            raise typer.Exit(1)

    async def _update():
        monitor = build_monitor()
        return await monitor.channels.update_channel(
            owner, channel_id, name=name, configuration_details=details
        )

    try:
        channel = asyncio.run(_update())
    except (NotFoundError, ValidationError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    verified = "[green]verified[/green]" if channel.is_verified else "[yellow]unverified[/yellow]"
    console.print(f"[green]✓ Channel {channel.name} updated[/green] ({verified})")


@app.command("delete")
def delete_channel(
    channel_id: Annotated[str, typer.Argument(help="Channel ID")],
    owner: OwnerOption = "local",
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
) -> None:
    """Delete a channel and every binding that uses it."""
    if not force and not typer.confirm(f"Delete channel {channel_id}?"):
        raise typer.Abort()

    async def _delete():
        monitor = build_monitor()
        await monitor.channels.delete_channel(owner, channel_id)

    try:
        asyncio.run(_delete())
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Channel {channel_id} deleted[/green]")


@app.command("bindings")
def list_bindings(
    job_id: Annotated[str, typer.Argument(help="Job ID (or partial ID)")],
    owner: OwnerOption = "local",
) -> None:
    """List the channels bound to a job."""
    async def _list():
        monitor = build_monitor()
        job = await resolve_job(monitor, owner, job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return await monitor.channels.list_bindings(owner, job.id)

    try:
        settings = asyncio.run(_list())
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not settings:
        console.print("[dim]No channels bound.[/dim]")
        return

    def flag(value: bool) -> str:
        return "[green]✓[/green]" if value else "[dim]-[/dim]"

    table = Table(title="Bindings", border_style="cyan")
    table.add_column("Setting ID", style="dim")
    table.add_column("Channel ID", style="dim")
    table.add_column("Failure", justify="center")
    table.add_column("Lateness", justify="center")
    table.add_column("Recovery", justify="center")

    for setting in settings:
        table.add_row(
            setting.id,
            setting.channel_id,
            flag(setting.notify_on_failure),
            flag(setting.notify_on_lateness),
            flag(setting.notify_on_recovery),
        )

    console.print(table)


@app.command("unbind")
def unbind_channel(
    setting_id: Annotated[str, typer.Argument(help="Setting ID printed by bind or bindings")],
    owner: OwnerOption = "local",
) -> None:
    """Remove one channel binding from a job."""
    async def _unbind():
        monitor = build_monitor()
        await monitor.channels.unbind(owner, setting_id)

    try:
        asyncio.run(_unbind())
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Unbound[/green] (setting {setting_id})")
