"""
Identifier generation.

Ids are opaque strings, unique within a project for its lifetime. The
default generator is random; the clock generator reproduces the historical
``d<nanoseconds>`` format and stays strictly increasing within a process.
"""

import threading
import time
import uuid
from typing import Callable

IdFactory = Callable[[], str]


def random_id() -> str:
    """Random 32-character hex id."""
    return uuid.uuid4().hex


class ClockIds:
    """Monotonic clock-based ids: ``d`` followed by a nanosecond count.

    A reading that is not greater than the last one issued (clock stall or
    rollback) is bumped to last + 1.
    """

    def __init__(self, prefix: str = "d"):
        self._prefix = prefix
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            now = time.time_ns()
            if now <= self._last:
                now = self._last + 1
            self._last = now
        return f"{self._prefix}{now}"


GENERATORS = ("uuid", "clock")


def id_factory_for(name: str) -> IdFactory:
    """Resolve a configured generator name to an id factory."""
    if name == "uuid":
        return random_id
    if name == "clock":
        return ClockIds()
    raise ValueError(f"Unknown id generator {name!r} (expected one of {', '.join(GENERATORS)})")
