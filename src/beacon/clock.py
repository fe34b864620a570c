"""Wall-clock source. Everything time-dependent takes a ``Clock`` so tests can drive it."""

import time
from typing import Callable

Clock = Callable[[], int]


def now_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)
