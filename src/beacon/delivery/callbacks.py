"""Completion callbacks for enqueued entries."""

from __future__ import annotations

import logging
from typing import Callable

from beacon.events import EventQueue, QueuedEntry

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[int, str], None]


def invoke(callback: ResponseCallback | None, status: int, body: str) -> None:
    """Run a caller-supplied callback; its exceptions are logged, not propagated."""
    if callback is None:
        return
    try:
        callback(status, body)
    except Exception:
        logger.exception("Response callback raised")


class CallbackReconciler:
    """
    Pending callbacks keyed by the sequence number of the entry they were
    registered with.

    A callback covers its own entry and every entry queued before it. It fires
    once no pending entry at or below its sequence number remains, possibly
    several round trips after registration. Entries without a sequence number
    are older than any sequenced entry, so while one is pending nothing fires.
    """

    def __init__(self) -> None:
        self._pending: list[tuple[int, ResponseCallback]] = []

    def __len__(self) -> int:
        return len(self._pending)

    def register(self, sequence_number: int, callback: ResponseCallback) -> None:
        self._pending.append((sequence_number, callback))

    def _take(self, predicate: Callable[[int], bool]) -> list[ResponseCallback]:
        ready = [(seq, cb) for seq, cb in self._pending if predicate(seq)]
        self._pending = [(seq, cb) for seq, cb in self._pending if not predicate(seq)]
        return [cb for _, cb in sorted(ready, key=lambda item: item[0])]

    def resolve(self, queue: EventQueue, status: int, body: str) -> int:
        """
        Fire every callback whose covered range is fully acknowledged or dropped.

        Args:
            queue: Queue after the delivered/dropped entries were removed
            status: Status of the response that completed the range
            body: Body of that response

        Returns:
            Number of callbacks fired
        """
        remaining = queue.sequence_numbers()
        if any(seq is None for seq in remaining):
            return 0
        low = min(remaining) if remaining else None

        ready = self._take(lambda seq: low is None or seq < low)
        for callback in ready:
            invoke(callback, status, body)
        return len(ready)

    def fail(self, batch: list[QueuedEntry], status: int, body: str) -> int:
        """Fire the callbacks of entries in a failed batch with the raw response."""
        attempted = {entry.sequence_number for entry in batch}
        failed = self._take(lambda seq: seq in attempted)
        for callback in failed:
            invoke(callback, status, body)
        return len(failed)
