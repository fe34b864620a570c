"""Unsent queue inspection and flushing."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from beacon.cli.helpers import console, fail, instance_key, open_options, open_store
from beacon.client import TelemetryClient
from beacon.config import ClientOptions
from beacon.delivery import HttpxTransport
from beacon.events import EventQueue
from beacon.identity import IdentityState
from beacon.storage import FileStore

app = typer.Typer(
    name="queue",
    help="Inspect and flush persisted unsent entries.",
    no_args_is_help=True,
)


def _format_timestamp(value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _load_queue(store: FileStore, api_key: str, options: ClientOptions, name: str) -> EventQueue:
    identity = IdentityState(store, api_key, options.cookie_name, options.session_timeout, name)
    queue = EventQueue(
        store,
        identity,
        api_key,
        unsent_key=options.unsent_key,
        unsent_identify_key=options.unsent_identify_key,
        instance_name=name,
    )
    queue.load()
    return queue


def show_command(store_dir: Path, api_key: str, instance: str | None, config: Path | None) -> None:
    """List unsent entries in delivery order."""
    options = open_options(config)
    store = open_store(store_dir, options)
    queue = _load_queue(store, api_key, options, instance_key(instance))

    if not queue.unsent_count:
        console.print("[dim]No unsent entries[/dim]")
        return

    table = Table(title=f"Unsent entries ({queue.unsent_count})")
    table.add_column("Seq", justify="right")
    table.add_column("Kind")
    table.add_column("Event Type", style="cyan")
    table.add_column("ID", justify="right")
    table.add_column("Timestamp (UTC)")

    for entry in queue.entries():
        table.add_row(
            "-" if entry.sequence_number is None else str(entry.sequence_number),
            entry.kind.value,
            str(entry.event_type),
            str(entry.event_id),
            _format_timestamp(entry.payload.get("timestamp")),
        )
    console.print(table)


@app.command(name="show")
def show_cmd(
    store: Path = typer.Option(..., "--store", help="Store directory"),
    api_key: str = typer.Option(..., "--api-key", help="Project API key"),
    instance: Optional[str] = typer.Option(None, "--instance", help="Client instance name"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML or TOML options file"),
) -> None:
    """Show unsent entries."""
    show_command(store, api_key, instance, config)


def flush_command(store_dir: Path, api_key: str, instance: str | None, config: Path | None) -> None:
    """Upload persisted entries until the queue is empty or an upload fails."""
    options = open_options(config)
    store = open_store(store_dir, options)
    # Immediate mode: the blocking transport drains the queue inside init.
    options = options.model_copy(update={"batch_events": False})

    with HttpxTransport() as transport:
        client = TelemetryClient(instance_key(instance), store=store, transport=transport)
        before = _load_queue(store, api_key, options, client.instance_name).unsent_count
        if not before:
            console.print("[dim]No unsent entries[/dim]")
            return

        client.init(api_key, options=options)
        if not client.initialized:
            fail("Client could not be initialized")

        remaining = client.unsent_count()
        while remaining and client.flush():
            if client.unsent_count() >= remaining:
                break
            remaining = client.unsent_count()

    delivered = before - remaining
    console.print(f"✅ Delivered [bold]{delivered}[/bold] of {before} entries")
    if remaining:
        console.print(f"[yellow]{remaining} entries remain queued[/yellow]")
        raise typer.Exit(1)


@app.command(name="flush")
def flush_cmd(
    store: Path = typer.Option(..., "--store", help="Store directory"),
    api_key: str = typer.Option(..., "--api-key", help="Project API key"),
    instance: Optional[str] = typer.Option(None, "--instance", help="Client instance name"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML or TOML options file"),
) -> None:
    """Upload unsent entries now."""
    flush_command(store, api_key, instance, config)
