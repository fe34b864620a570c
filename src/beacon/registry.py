"""Named client instances."""

from __future__ import annotations

import logging
from typing import Callable

from beacon.client import TelemetryClient
from beacon.constants import DEFAULT_INSTANCE

logger = logging.getLogger(__name__)


def normalize_instance_name(name: str | None) -> str:
    if not name:
        return DEFAULT_INSTANCE
    return name.lower()


class ClientRegistry:
    """
    Maps normalized instance names to clients.

    Clients are created on first lookup and live as long as the registry.
    Names are case-insensitive; ``None`` and ``""`` select the default
    instance.
    """

    def __init__(self, factory: Callable[[str], TelemetryClient] | None = None) -> None:
        self._factory = factory or TelemetryClient
        self._instances: dict[str, TelemetryClient] = {}

    def get_instance(self, name: str | None = None) -> TelemetryClient:
        key = normalize_instance_name(name)
        client = self._instances.get(key)
        if client is None:
            logger.debug("Creating client instance %s", key)
            client = self._factory(key)
            self._instances[key] = client
        return client

    def instances(self) -> dict[str, TelemetryClient]:
        return dict(self._instances)

    def __contains__(self, name: object) -> bool:
        return (name is None or isinstance(name, str)) and normalize_instance_name(name) in self._instances

    def __len__(self) -> int:
        return len(self._instances)


default_registry = ClientRegistry()


def get_instance(name: str | None = None) -> TelemetryClient:
    """Client registered under ``name`` in the process-wide registry."""
    return default_registry.get_instance(name)
