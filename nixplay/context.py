from __future__ import annotations

import threading
import time

from nixplay.errors import CancelledError


class RequestContext:
    """Cancellation and deadline shared by a chain of remote calls.

    Pass the same context to every call that belongs to one logical operation.
    Calling :meth:`cancel` from another thread makes the next remote call in
    the chain fail with :class:`CancelledError`; a request already in flight
    runs until its timeout, which is capped by the remaining deadline.
    """

    def __init__(self, timeout: float | None = None):
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def check(self):
        if self.cancelled:
            raise CancelledError("context cancelled")
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise CancelledError("context deadline exceeded")

    def timeout(self, default: float | None) -> float | None:
        remaining = self.remaining()
        if remaining is None:
            return default
        if default is None:
            return remaining
        return min(default, remaining)
