"""Tests for CallContext deadlines and cancellation."""

import threading

import pytest

from chat_recall.application.call_context import CallContext
from chat_recall.domain.errors import Cancelled, Timeout


class FakeMonotonic:
    def __init__(self) -> None:
        self.t = 100.0

    def __call__(self) -> float:
        return self.t


def test_background_context_never_expires():
    ctx = CallContext.background()
    assert ctx.remaining() is None
    assert not ctx.expired()
    assert ctx.budget(5.0) == 5.0
    ctx.check()


def test_remaining_and_budget_follow_the_clock():
    clock = FakeMonotonic()
    ctx = CallContext(timeout_s=10.0, clock=clock)

    clock.t += 4.0
    assert ctx.remaining() == pytest.approx(6.0)
    assert ctx.budget(30.0) == pytest.approx(6.0)
    assert ctx.budget(2.0) == pytest.approx(2.0)
    assert ctx.budget(None) == pytest.approx(6.0)


def test_check_raises_timeout_after_deadline():
    clock = FakeMonotonic()
    ctx = CallContext(timeout_s=1.0, clock=clock)
    clock.t += 1.5

    with pytest.raises(Timeout):
        ctx.check("search")


def test_check_raises_cancelled_when_event_set():
    event = threading.Event()
    ctx = CallContext(cancel_event=event)
    event.set()

    assert ctx.cancelled
    with pytest.raises(Cancelled):
        ctx.check("ingest")


def test_sleep_refuses_to_outlive_deadline():
    clock = FakeMonotonic()
    ctx = CallContext(timeout_s=1.0, clock=clock)

    with pytest.raises(Timeout):
        ctx.sleep(5.0, "backoff")


def test_sleep_wakes_up_on_cancel():
    ctx = CallContext()
    timer = threading.Timer(0.05, ctx.cancel)
    timer.start()
    try:
        with pytest.raises(Cancelled):
            ctx.sleep(10.0, "backoff")
    finally:
        timer.cancel()
