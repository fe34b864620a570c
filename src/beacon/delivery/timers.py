"""Delayed-flush timers."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class Timer(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> bool:
        """Schedule ``callback`` once after ``delay_ms``. Returns False if it could not be armed."""
        ...


class AsyncioTimer:
    """Timer backed by ``loop.call_later`` on the running (or given) event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> bool:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop, delayed flush not scheduled")
                return False
        loop.call_later(delay_ms / 1000, callback)
        return True
