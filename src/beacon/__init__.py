"""
beacon - client-side telemetry buffering and delivery.

Events and identifies are queued with stable ordering metadata, persisted
across restarts, and uploaded in batches with size-based backoff and at most
one upload in flight.

Usage::

    import beacon

    client = beacon.get_instance()
    client.init("API_KEY")
    client.log_event("Clicked Button", {"color": "blue"})
    client.identify(beacon.Identify().set("plan", "pro"))
"""

from beacon.client import TelemetryClient
from beacon.commands import Command, CommandName, CommandQueue
from beacon.config import ClientOptions, TrackingOptions, load_options, load_options_file
from beacon.constants import LIBRARY_VERSION
from beacon.errors import BeaconError, ConfigError, StorageError, TransportError
from beacon.events import Identify
from beacon.registry import ClientRegistry, default_registry, get_instance
from beacon.storage import FileStore, MemoryStore

__version__ = LIBRARY_VERSION

__all__ = [
    "BeaconError",
    "ClientOptions",
    "ClientRegistry",
    "Command",
    "CommandName",
    "CommandQueue",
    "ConfigError",
    "FileStore",
    "Identify",
    "MemoryStore",
    "StorageError",
    "TelemetryClient",
    "TrackingOptions",
    "TransportError",
    "default_registry",
    "get_instance",
    "load_options",
    "load_options_file",
]
