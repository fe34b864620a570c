"""Persisted identity inspection."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel

from beacon.cli.helpers import console, fail, instance_key, open_options, open_store
from beacon.identity import IdentityState

app = typer.Typer(
    name="identity",
    help="Inspect the persisted device/user/session record.",
    no_args_is_help=True,
)


def show_command(store_dir: Path, api_key: str, instance: str | None, config: Path | None) -> None:
    options = open_options(config)
    store = open_store(store_dir, options)
    state = IdentityState(
        store, api_key, options.cookie_name, options.session_timeout, instance_key(instance)
    )
    if not state.exists():
        fail(f"No identity record for API key {api_key[:6]}... in {store_dir}")

    record = state.load()
    lines = [
        f"[cyan]Device ID:[/cyan] {record.device_id}",
        f"[cyan]User ID:[/cyan] {record.user_id or '(none)'}",
        f"[cyan]Opted out:[/cyan] {'yes' if record.opt_out else 'no'}",
        f"[cyan]Session ID:[/cyan] {record.session_id}",
        f"[cyan]Last event time:[/cyan] {record.last_event_time}",
        f"[cyan]Event ID:[/cyan] {record.event_id}",
        f"[cyan]Identify ID:[/cyan] {record.identify_id}",
        f"[cyan]Sequence number:[/cyan] {record.sequence_number}",
    ]
    console.print(Panel("\n".join(lines), title=f"Identity {state.storage_key}"))


@app.command(name="show")
def show_cmd(
    store: Path = typer.Option(..., "--store", help="Store directory"),
    api_key: str = typer.Option(..., "--api-key", help="Project API key"),
    instance: Optional[str] = typer.Option(None, "--instance", help="Client instance name"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML or TOML options file"),
) -> None:
    """Show the persisted identity record."""
    show_command(store, api_key, instance, config)
