"""CLI entry point for clinic-client.

Invoked as::

    clinic-client [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m clinic_client.cli.main

Commands
--------
- version       — Show version information
- login         — Sign in and store the session
- logout        — Sign out and clear the session
- whoami        — Show the signed-in user
- appointments  — List upcoming (or all) appointments
- queue         — Inspect or replay bookings queued while offline

Queue sub-commands
------------------
- queue list    — Show pending bookings
- queue replay  — Submit pending bookings now
- queue clear   — Drop pending bookings
"""
from __future__ import annotations

import asyncio
import sys
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich.console import Console
from rich.table import Table

from clinic_client.client import ApiClient
from clinic_client.config import ClientConfig, load_config
from clinic_client.errors import ClassifiedError

console = Console()

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Client factory
# ---------------------------------------------------------------------------


def _make_client(config: ClientConfig) -> ApiClient:
    """Build the client used by every command.

    Parameters
    ----------
    config:
        Resolved settings.

    Returns
    -------
    ApiClient
        A client backed by the durable SQLite store under ``config.data_dir``.
    """
    from clinic_client.convenience import create_client

    return create_client(config)


def _run(ctx: click.Context, action: Callable[[ApiClient], Awaitable[T]]) -> T:
    """Run ``action`` against a fresh client, exiting 1 on a classified error.

    The client is closed before the event loop shuts down.
    """
    client = _make_client(ctx.obj["config"])

    async def run_and_close() -> T:
        async with client:
            return await action(client)

    try:
        return asyncio.run(run_and_close())
    except ClassifiedError as error:
        console.print(f"[red]{error.message}[/red]")
        sys.exit(1)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file.",
)
@click.option("--base-url", default=None, help="Override the API base URL.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, base_url: str | None) -> None:
    """Patient app API client"""
    ctx.ensure_object(dict)
    config = load_config(config_path)
    if base_url:
        config = config.model_copy(update={"base_url": base_url.rstrip("/")})
    ctx.obj["config"] = config


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from clinic_client import __version__

    console.print(f"[bold]clinic-client[/bold] v{__version__}")


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------


@cli.command(name="login")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, help="Account password.")
@click.option("--role", default="patient", show_default=True, help="Expected account role.")
@click.pass_context
def login_command(ctx: click.Context, email: str, password: str, role: str) -> None:
    """Sign in as EMAIL and store the session."""
    data = _run(ctx, lambda client: client.login(email, password, role))
    user = data.get("user") or {}
    console.print(f"[green]Signed in:[/green] {user.get('email', email)}")


@cli.command(name="logout")
@click.pass_context
def logout_command(ctx: click.Context) -> None:
    """Sign out and clear the stored session."""
    _run(ctx, lambda client: client.logout())
    console.print("[green]Signed out.[/green]")


@cli.command(name="whoami")
@click.pass_context
def whoami_command(ctx: click.Context) -> None:
    """Show the signed-in user."""
    user = _run(ctx, lambda client: client.get_current_user())

    table = Table(title="Current user", show_lines=True)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")
    for field in ("id", "username", "email", "role", "clinic_id"):
        if field in user:
            table.add_row(field, str(user[field]))
    console.print(table)


# ---------------------------------------------------------------------------
# appointments
# ---------------------------------------------------------------------------


@cli.command(name="appointments")
@click.option("--all", "show_all", is_flag=True, help="Include past and closed appointments.")
@click.pass_context
def appointments_command(ctx: click.Context, show_all: bool) -> None:
    """List upcoming appointments."""
    if show_all:
        appointments = _run(ctx, lambda client: client.get_all_appointments())
    else:
        appointments = _run(ctx, lambda client: client.get_upcoming_appointments())

    if not appointments:
        console.print("[yellow]No appointments found.[/yellow]")
        return

    table = Table(title="Appointments")
    table.add_column("ID", style="cyan")
    table.add_column("When")
    table.add_column("Doctor", style="green")
    table.add_column("Status")
    for appointment in appointments:
        table.add_row(
            str(appointment.get("id", "-")),
            str(appointment.get("scheduled_datetime", "-")),
            str(appointment.get("doctor_name") or appointment.get("doctor_id", "-")),
            str(appointment.get("status", "-")),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# queue command group
# ---------------------------------------------------------------------------


@cli.group(name="queue")
def queue_group() -> None:
    """Bookings queued while offline."""


def _require_queue(client: ApiClient) -> Any:
    queue = client.pipeline.queue
    if queue is None:
        console.print("[red]This client has no offline queue.[/red]")
        sys.exit(1)
    return queue


@queue_group.command(name="list")
@click.pass_context
def queue_list(ctx: click.Context) -> None:
    """Show pending bookings, oldest first."""

    async def action(client: ApiClient) -> list[Any]:
        return await _require_queue(client).entries()

    entries = _run(ctx, action)
    if not entries:
        console.print("[yellow]No queued bookings.[/yellow]")
        return

    table = Table(title="Queued bookings")
    table.add_column("#", justify="right")
    table.add_column("Queued at")
    table.add_column("Doctor", style="green")
    table.add_column("When")
    for position, entry in enumerate(entries, start=1):
        table.add_row(
            str(position),
            entry.enqueued_at.strftime("%Y-%m-%d %H:%M"),
            str(entry.payload.get("doctor_id", "-")),
            str(entry.payload.get("scheduled_datetime", "-")),
        )
    console.print(table)


@queue_group.command(name="replay")
@click.option(
    "--drop-rejected",
    is_flag=True,
    help="Drop bookings the server rejects as invalid instead of stopping.",
)
@click.pass_context
def queue_replay(ctx: click.Context, drop_rejected: bool) -> None:
    """Submit pending bookings now, stopping at the first failure.

    A booking the server rejects (for example a slot that is no longer
    free) stays at the head of the queue and blocks later bookings.  Use
    --drop-rejected to drop such bookings, or 'queue clear'.
    """
    delivered = _run(ctx, lambda client: client.replay_queued_bookings(drop_rejected))
    console.print(f"[green]Delivered {delivered} queued booking(s).[/green]")


@queue_group.command(name="clear")
@click.confirmation_option(prompt="Drop all queued bookings?")
@click.pass_context
def queue_clear(ctx: click.Context) -> None:
    """Drop every pending booking."""

    async def action(client: ApiClient) -> None:
        await _require_queue(client).clear()

    _run(ctx, action)
    console.print("[green]Queue cleared.[/green]")


if __name__ == "__main__":
    cli()
