"""Bounded retry with exponential backoff, plus deadline/cancel-aware calls.

Shared by the embedding and vector-index adapters. Library exceptions are
classified into domain errors by the adapter; only errors flagged retryable
are retried, and Timeout/Cancelled always surface immediately.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TypeVar

from chat_recall.application.call_context import CallContext
from chat_recall.domain.errors import Cancelled, DomainError, Timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

_POLL_S = 0.05

# Network calls run here so the caller can stop waiting on cancel/deadline.
_IO_POOL = ThreadPoolExecutor(max_workers=32, thread_name_prefix="chat-recall-io")


@dataclass(frozen=True)
class RetryPolicy:
    """max_attempts counts the first call; delay = base * 2**(attempt-1), capped."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    jitter: float = 0.0  # fraction of the delay added at random

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0 or self.max_delay_s < 0 or self.jitter < 0:
            raise ValueError("backoff parameters must be >= 0")

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter:
            delay += delay * self.jitter * rng()
        return delay


def call_bounded(
    fn: Callable[[], T],
    ctx: CallContext,
    timeout_s: float | None,
    what: str,
    executor: Executor | None = None,
) -> T:
    """Run fn on a worker thread, giving up on cancellation or when the budget runs out.

    An abandoned call keeps its worker until the client's own timeout fires;
    the caller is released right away either way.
    """
    ctx.check(what)
    budget = ctx.budget(timeout_s)
    future = (executor or _IO_POOL).submit(fn)
    end = None if budget is None else time.monotonic() + budget
    while True:
        wait_s = _POLL_S if end is None else max(0.0, min(_POLL_S, end - time.monotonic()))
        done, _ = wait([future], timeout=wait_s)
        if done:
            return future.result()
        if ctx.cancelled:
            future.cancel()
            raise Cancelled(f"{what} cancelled by caller")
        if end is not None and time.monotonic() >= end:
            future.cancel()
            raise Timeout(f"{what} timed out after {budget:.2f}s")


def retry_call(
    op: Callable[[], T],
    *,
    policy: RetryPolicy,
    ctx: CallContext,
    classify: Callable[[Exception], DomainError],
    what: str,
) -> T:
    for attempt in range(1, policy.max_attempts + 1):
        ctx.check(what)
        try:
            return op()
        except DomainError:
            raise
        except Exception as ex:  # noqa: BLE001
            err = classify(ex)
            if not err.retryable or attempt >= policy.max_attempts:
                err.with_context(attempts=attempt)
                raise err from ex
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                what,
                attempt,
                policy.max_attempts,
                err,
                delay,
            )
            ctx.sleep(delay, what)
    raise AssertionError("unreachable")  # pragma: no cover
