"""Shared fixtures for beacon tests.

The pipeline is driven deterministically: ``FakeTransport`` holds every
upload until the test responds to it, and ``ManualClock`` advances time and
fires timers only when told to.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

import pytest

from beacon.client import TelemetryClient
from beacon.delivery import UploadRequest, UploadResponse
from beacon.storage import MemoryStore

API_KEY = "0123456789abcdef0123456789abcdef"
START_TIME = 1_700_000_000_000


class ManualClock:
    """Epoch-ms clock and timer that only move when ``tick`` is called."""

    def __init__(self, now: int = START_TIME) -> None:
        self.now = now
        self._timers: list[tuple[int, Callable[[], None]]] = []

    def __call__(self) -> int:
        return self.now

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> bool:
        self._timers.append((self.now + delay_ms, callback))
        return True

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    def tick(self, ms: int) -> None:
        self.now += ms
        due = [t for t in self._timers if t[0] <= self.now]
        self._timers = [t for t in self._timers if t[0] > self.now]
        for _, callback in sorted(due, key=lambda t: t[0]):
            callback()


class FakeTransport:
    """Records uploads; ``respond`` answers the oldest unanswered one."""

    def __init__(self) -> None:
        self.requests: list[UploadRequest] = []
        self._pending: list[Callable[[UploadResponse], None]] = []

    def send(self, request: UploadRequest, on_response: Callable[[UploadResponse], None]) -> None:
        self.requests.append(request)
        self._pending.append(on_response)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def respond(self, status: int = 200, body: str = "success") -> None:
        on_response = self._pending.pop(0)
        on_response(UploadResponse(status, body))

    def events(self, index: int) -> list[dict[str, Any]]:
        return json.loads(self.requests[index].data["e"])


class CallbackRecorder:
    """Response callback that remembers every invocation."""

    def __init__(self) -> None:
        self.calls: list[tuple[int, str]] = []

    def __call__(self, status: int, body: str) -> None:
        self.calls.append((status, body))

    @property
    def count(self) -> int:
        return len(self.calls)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def recorder():
    return CallbackRecorder()


@pytest.fixture
def make_client(store, transport, clock):
    """Factory for initialized clients sharing the test's store/transport/clock."""

    def _make(options: dict | None = None, user_id=None, instance_name: str = "$default_instance"):
        client = TelemetryClient(
            instance_name, store=store, transport=transport, timer=clock, clock=clock
        )
        client.init(API_KEY, user_id, options or {})
        return client

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture(autouse=True)
def _reset_log_level():
    """Client init sets the package log level; keep it from leaking between tests."""
    logger = logging.getLogger("beacon")
    level = logger.level
    yield
    logger.setLevel(level)
