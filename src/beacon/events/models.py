"""Queued entry model and cross-buffer ordering."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EntryKind(str, Enum):
    """Which buffer an entry lives in."""

    EVENT = "event"
    IDENTIFY = "identify"


@dataclass(eq=False)
class QueuedEntry:
    """
    One event or identify waiting for delivery.

    ``payload`` is the upload-ready event object (snake_case keys) and is
    never mutated once queued. ``event_id`` holds the event id for events and
    the identify id for identifies. ``sequence_number`` is None only for
    entries persisted by releases that predated sequencing.

    Entries compare by identity: two entries with equal payloads are still
    distinct queue positions.
    """

    kind: EntryKind
    payload: dict[str, Any] = field(repr=False)
    event_id: int
    sequence_number: int | None

    @property
    def event_type(self) -> str | None:
        return self.payload.get("event_type")

    def to_record(self) -> dict[str, Any]:
        """Persisted form: the payload itself, which carries both ids."""
        return self.payload

    @classmethod
    def from_record(cls, kind: EntryKind, record: dict[str, Any]) -> "QueuedEntry":
        """
        Rebuild an entry from its persisted payload.

        Args:
            kind: Buffer the record was loaded from
            record: Persisted payload dict

        Returns:
            QueuedEntry; missing or non-integer ``sequence_number`` loads as None
        """
        sequence_number = record.get("sequence_number")
        if isinstance(sequence_number, bool) or not isinstance(sequence_number, int):
            sequence_number = None
        event_id = record.get("event_id")
        if isinstance(event_id, bool) or not isinstance(event_id, int):
            event_id = 0
        return cls(kind=kind, payload=record, event_id=event_id, sequence_number=sequence_number)


def _takes_event_first(event: QueuedEntry, identify: QueuedEntry) -> bool:
    # Legacy entries (no sequence number) sort before sequenced ones.
    if event.sequence_number is None:
        return True
    if identify.sequence_number is None:
        return False
    return event.sequence_number < identify.sequence_number


def merge_batch(
    events: list[QueuedEntry], identifies: list[QueuedEntry], limit: int
) -> list[QueuedEntry]:
    """
    Interleave both buffers by ascending sequence number, up to ``limit`` entries.

    Each buffer is already in enqueue order, so this is a two-way merge of
    their prefixes.

    Args:
        events: Pending events in buffer order
        identifies: Pending identifies in buffer order
        limit: Maximum entries in the batch

    Returns:
        Batch in delivery order
    """
    batch: list[QueuedEntry] = []
    total = min(limit, len(events) + len(identifies))
    event_index = identify_index = 0

    while len(batch) < total:
        if identify_index >= len(identifies):
            take_event = True
        elif event_index >= len(events):
            take_event = False
        else:
            take_event = _takes_event_first(events[event_index], identifies[identify_index])

        if take_event:
            batch.append(events[event_index])
            event_index += 1
        else:
            batch.append(identifies[identify_index])
            identify_index += 1

    return batch
