"""Shared CLI helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from beacon.config import ClientOptions, load_options, load_options_file
from beacon.errors import BeaconError
from beacon.registry import normalize_instance_name
from beacon.storage import FileStore

console = Console()


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]❌ {message}[/red]")
    raise typer.Exit(1)


def open_options(config: Optional[Path]) -> ClientOptions:
    if config is None:
        return load_options()
    try:
        return load_options_file(config)
    except BeaconError as e:
        fail(str(e))


def open_store(store: Path, options: ClientOptions) -> FileStore:
    if not store.is_dir():
        fail(f"Store directory not found: {store}")
    return FileStore(store, path=options.path, expiration_days=options.cookie_expiration)


def instance_key(instance: Optional[str]) -> str:
    return normalize_instance_name(instance)
