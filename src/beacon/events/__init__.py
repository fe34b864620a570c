"""
Queued entries and the unsent-entry queue.

- models: QueuedEntry and the cross-buffer merge
- identify: Identify builder and identify input resolution
- sanitize: property and group sanitization
- queue: EventQueue (buffers + persistence)
"""

from beacon.events.identify import Identify, IdentifyInput, ResolvedIdentify, resolve_identify
from beacon.events.models import EntryKind, QueuedEntry, merge_batch
from beacon.events.queue import EventQueue, unsent_storage_key
from beacon.events.sanitize import Sanitized, sanitize, sanitize_groups

__all__ = [
    "EntryKind",
    "EventQueue",
    "Identify",
    "IdentifyInput",
    "QueuedEntry",
    "ResolvedIdentify",
    "Sanitized",
    "merge_batch",
    "resolve_identify",
    "sanitize",
    "sanitize_groups",
    "unsent_storage_key",
]
