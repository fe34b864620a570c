"""Exception hierarchy used inside the pipeline.

None of these escape :class:`beacon.client.TelemetryClient`; they mark the
seams where a failure is caught and turned into a log line, a callback, or a
retry on the next flush trigger.
"""


class BeaconError(Exception):
    """Base class for beacon errors."""


class StorageError(BeaconError):
    """Durable store read or write failed (quota, permissions, disk)."""


class TransportError(BeaconError):
    """Upload could not be performed at the network level."""


class ConfigError(BeaconError):
    """Configuration file could not be read or parsed."""
