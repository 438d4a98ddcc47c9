"""Cancellation scopes: parent cancel events plus an optional deadline."""

from __future__ import annotations

import threading
import time

# Upper bound on a single blocking wait, so every scope re-checks all of its
# events and its deadline at least this often.
_WAIT_SLICE = 0.02


class CancelScope:
    """Composes one or more cancel events with an optional deadline.

    ``is_set()`` mirrors threading.Event so a scope can be passed anywhere a
    cancel signal is accepted.
    """

    def __init__(
        self,
        *events: threading.Event,
        timeout: float | None = None,
        deadline: float | None = None,
    ) -> None:
        self._events = events
        if timeout is not None:
            timeout_deadline = time.monotonic() + timeout
            deadline = timeout_deadline if deadline is None else min(deadline, timeout_deadline)
        self._deadline = deadline

    @property
    def cancelled(self) -> bool:
        """True once any parent event fired."""
        return any(event.is_set() for event in self._events)

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def is_set(self) -> bool:
        return self.cancelled or self.timed_out

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def child(self, timeout: float | None = None) -> CancelScope:
        """A scope sharing these events, bounded by the tighter deadline."""
        return CancelScope(*self._events, timeout=timeout, deadline=self._deadline)

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True early if the scope ends."""
        end = time.monotonic() + seconds
        while True:
            if self.is_set():
                return True
            now = time.monotonic()
            left = end - now
            if left <= 0:
                return False
            step = min(left, _WAIT_SLICE)
            if self._deadline is not None:
                step = min(step, max(self._deadline - now, 0.0))
            if self._events:
                self._events[0].wait(step)
            else:
                time.sleep(step)
