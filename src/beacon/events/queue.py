"""Unsent event/identify buffers with durable persistence."""

from __future__ import annotations

import json
import logging
from typing import Any

from beacon.constants import DEFAULT_INSTANCE
from beacon.errors import StorageError
from beacon.events.models import EntryKind, QueuedEntry, merge_batch
from beacon.identity import IdentityState
from beacon.storage import KeyValueStore

logger = logging.getLogger(__name__)


def unsent_storage_key(base: str, api_key: str, instance_name: str = DEFAULT_INSTANCE) -> str:
    key = f"{base}_{api_key}"
    if instance_name != DEFAULT_INSTANCE:
        key += f"_{instance_name}"
    return key


class EventQueue:
    """
    Pending events and pending identifies.

    Entries are appended in enqueue order and leave the queue only through
    ``remove`` (delivered or dropped). Both buffers are written back to the
    store after every change unless persistence is off (``save_events=False``)
    or suspended (deferred initialization).
    """

    def __init__(
        self,
        store: KeyValueStore,
        identity: IdentityState,
        api_key: str,
        unsent_key: str,
        unsent_identify_key: str,
        instance_name: str = DEFAULT_INSTANCE,
        save_events: bool = True,
    ) -> None:
        """
        Initialize EventQueue.

        Args:
            store: Durable store for the unsent buffers
            identity: Source of event/identify ids and sequence numbers
            api_key: Project API key (namespaces the storage keys)
            unsent_key: Base key of the event buffer
            unsent_identify_key: Base key of the identify buffer
            instance_name: Normalized client instance name
            save_events: Persist buffers at all
        """
        self.store = store
        self.identity = identity
        self.save_events = save_events
        self.keys = {
            EntryKind.EVENT: unsent_storage_key(unsent_key, api_key, instance_name),
            EntryKind.IDENTIFY: unsent_storage_key(unsent_identify_key, api_key, instance_name),
        }
        self.events: list[QueuedEntry] = []
        self.identifies: list[QueuedEntry] = []

    def _buffer(self, kind: EntryKind) -> list[QueuedEntry]:
        return self.events if kind is EntryKind.EVENT else self.identifies

    @property
    def unsent_count(self) -> int:
        return len(self.events) + len(self.identifies)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_buffer(self, kind: EntryKind) -> list[QueuedEntry]:
        key = self.keys[kind]
        try:
            raw = self.store.get(key)
        except StorageError as e:
            logger.warning("Failed to read unsent buffer %s: %s", key, e)
            return []
        if not raw:
            return []
        try:
            records = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupted unsent buffer %s", key)
            return []
        if not isinstance(records, list):
            logger.warning("Discarding unsent buffer %s: not a list", key)
            return []
        return [
            QueuedEntry.from_record(kind, record)
            for record in records
            if isinstance(record, dict)
        ]

    def load(self) -> int:
        """
        Replace both buffers with the persisted ones.

        Returns:
            Number of entries loaded
        """
        if not self.save_events:
            return 0
        self.events = self._load_buffer(EntryKind.EVENT)
        self.identifies = self._load_buffer(EntryKind.IDENTIFY)
        if self.unsent_count:
            logger.info("Loaded %d unsent entries", self.unsent_count)
        return self.unsent_count

    def save(self) -> bool:
        """Write both buffers to the store. Failures are logged, never raised."""
        if not self.save_events:
            return False
        try:
            for kind in EntryKind:
                records = [entry.to_record() for entry in self._buffer(kind)]
                self.store.set(self.keys[kind], json.dumps(records))
        except StorageError as e:
            logger.warning("Failed to persist unsent entries: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def _append(self, kind: EntryKind, payload: dict[str, Any]) -> QueuedEntry:
        if kind is EntryKind.EVENT:
            event_id = self.identity.next_event_id()
        else:
            event_id = self.identity.next_identify_id()
        sequence_number = self.identity.next_sequence_number()

        payload = {**payload, "event_id": event_id, "sequence_number": sequence_number}
        entry = QueuedEntry(kind, payload, event_id, sequence_number)
        self._buffer(kind).append(entry)
        self.save()
        return entry

    def append_event(self, payload: dict[str, Any]) -> QueuedEntry:
        """
        Assign the next event id and sequence number, buffer and persist.

        Args:
            payload: Upload-ready event object without ids

        Returns:
            The queued entry
        """
        return self._append(EntryKind.EVENT, payload)

    def append_identify(self, payload: dict[str, Any]) -> QueuedEntry:
        return self._append(EntryKind.IDENTIFY, payload)

    def snapshot(self, limit: int) -> list[QueuedEntry]:
        """Up to ``limit`` entries in delivery order. The buffers are not modified."""
        return merge_batch(self.events, self.identifies, limit)

    def remove(self, entries: list[QueuedEntry]) -> None:
        """Remove delivered or dropped entries and persist the pruned buffers."""
        gone = {id(entry) for entry in entries}
        self.events = [entry for entry in self.events if id(entry) not in gone]
        self.identifies = [entry for entry in self.identifies if id(entry) not in gone]
        self.save()

    def entries(self) -> list[QueuedEntry]:
        """All pending entries in delivery order."""
        return self.snapshot(self.unsent_count)

    def sequence_numbers(self) -> list[int | None]:
        return [entry.sequence_number for entry in self.events + self.identifies]
