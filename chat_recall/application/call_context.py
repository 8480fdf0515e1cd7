"""Caller-supplied deadline and cancellation signal.

A CallContext travels with every ingestion or search call down to the adapters.
Adapters bound each network call by the remaining budget and poll the cancel
event while waiting, so an abort never leaves a retry loop running.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from chat_recall.domain.errors import Cancelled, Timeout


class CallContext:
    def __init__(
        self,
        timeout_s: float | None = None,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cancel_event = cancel_event or threading.Event()
        self.timeout_s = timeout_s
        self.deadline = None if timeout_s is None else clock() + timeout_s

    @classmethod
    def background(cls) -> CallContext:
        """No deadline, cancellable only through cancel()."""
        return cls()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0

    def budget(self, per_call_timeout_s: float | None) -> float | None:
        """Effective timeout for one network call: the tighter of both limits."""
        remaining = self.remaining()
        if remaining is None:
            return per_call_timeout_s
        if per_call_timeout_s is None:
            return remaining
        return min(remaining, per_call_timeout_s)

    def check(self, what: str = "operation") -> None:
        if self.cancelled:
            raise Cancelled(f"{what} cancelled by caller")
        if self.expired():
            raise Timeout(f"{what} exceeded deadline of {self.timeout_s}s")

    def sleep(self, delay_s: float, what: str = "operation") -> None:
        """Backoff sleep that wakes up immediately on cancellation."""
        if delay_s > 0:
            remaining = self.remaining()
            if remaining is not None and delay_s >= remaining:
                # backoff would outlive the deadline
                raise Timeout(f"{what} exceeded deadline of {self.timeout_s}s")
            self._cancel_event.wait(delay_s)
        self.check(what)
