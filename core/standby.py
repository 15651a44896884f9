"""
Stand-By Gate
Lets the dispatcher (or anything outside the think cycle) pause the think
cycle until some event has been handled.

enter() / leave() nest: the think cycle stays paused until every enter()
has been balanced by a leave().
"""

import threading
from contextlib import contextmanager
from typing import Optional


class StandByGate:
    """Reference-counted pause with a single waiting thread."""

    def __init__(self):
        self._condition = threading.Condition()
        self._count = 0
        self._closed = False

    @property
    def count(self) -> int:
        with self._condition:
            return self._count

    @property
    def active(self) -> bool:
        return self.count > 0

    def enter(self):
        with self._condition:
            self._count += 1

    def leave(self):
        """Drop one level. Reaching zero wakes the waiting think cycle."""
        with self._condition:
            if self._count > 0:
                self._count -= 1
            if self._count == 0:
                self._condition.notify()

    @contextmanager
    def hold(self):
        """Keep the think cycle paused for the duration of a with-block."""
        self.enter()
        try:
            yield self
        finally:
            self.leave()

    def wait_if_standby(self, timeout: Optional[float] = None) -> bool:
        """
        Block while the gate is held.
        Returns False if the wait timed out or the gate was closed.
        """
        with self._condition:
            ready = self._condition.wait_for(lambda: self._count == 0 or self._closed, timeout)
            return bool(ready) and not self._closed

    def close(self):
        """Release the waiter for good (drone shutting down)."""
        with self._condition:
            self._closed = True
            self._condition.notify_all()
