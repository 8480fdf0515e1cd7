"""Tests for bounded retry and deadline-bounded calls."""

import threading
import time

import pytest

from chat_recall.application.call_context import CallContext
from chat_recall.domain.errors import Cancelled, IndexUnavailable, InvalidInput, SchemaMismatch, Timeout
from chat_recall.infrastructure.retry import RetryPolicy, call_bounded, retry_call

NO_WAIT = RetryPolicy(max_attempts=3, base_delay_s=0.0)


class Flaky:
    """Raises `error` for the first `failures` calls, then returns "ok"."""

    def __init__(self, failures: int, error: Exception) -> None:
        self.failures = failures
        self.error = error
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


def classify(ex: Exception):
    if isinstance(ex, ConnectionError):
        return IndexUnavailable(str(ex))
    return IndexUnavailable(str(ex), retryable=False)


class TestRetryPolicy:
    def test_delay_doubles_and_caps(self) -> None:
        policy = RetryPolicy(base_delay_s=1.0, max_delay_s=5.0)
        assert [policy.delay_for(a) for a in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_adds_at_most_the_fraction(self) -> None:
        policy = RetryPolicy(base_delay_s=2.0, jitter=0.5)
        assert policy.delay_for(1, rng=lambda: 0.0) == 2.0
        assert policy.delay_for(1, rng=lambda: 1.0) == 3.0

    def test_invalid_parameters_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay_s=-1.0)


class TestRetryCall:
    def test_transient_errors_are_retried(self) -> None:
        op = Flaky(2, ConnectionError("refused"))
        result = retry_call(op, policy=NO_WAIT, ctx=CallContext(), classify=classify, what="op")
        assert result == "ok"
        assert op.calls == 3

    def test_exhaustion_raises_classified_error(self) -> None:
        op = Flaky(10, ConnectionError("refused"))
        with pytest.raises(IndexUnavailable) as exc_info:
            retry_call(op, policy=NO_WAIT, ctx=CallContext(), classify=classify, what="op")

        assert op.calls == 3
        assert exc_info.value.context["attempts"] == 3
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_non_retryable_fails_on_first_attempt(self) -> None:
        op = Flaky(10, RuntimeError("bad request"))
        with pytest.raises(IndexUnavailable):
            retry_call(op, policy=NO_WAIT, ctx=CallContext(), classify=classify, what="op")
        assert op.calls == 1

    def test_domain_errors_pass_through_unchanged(self) -> None:
        op = Flaky(10, SchemaMismatch("dim 3 != 4"))
        with pytest.raises(SchemaMismatch):
            retry_call(op, policy=NO_WAIT, ctx=CallContext(), classify=classify, what="op")
        assert op.calls == 1

    def test_cancelled_context_stops_before_first_attempt(self) -> None:
        ctx = CallContext()
        ctx.cancel()
        op = Flaky(0, ConnectionError())
        with pytest.raises(Cancelled):
            retry_call(op, policy=NO_WAIT, ctx=ctx, classify=classify, what="op")
        assert op.calls == 0

    def test_backoff_longer_than_deadline_times_out(self) -> None:
        op = Flaky(10, ConnectionError("refused"))
        policy = RetryPolicy(max_attempts=5, base_delay_s=60.0)
        with pytest.raises(Timeout):
            retry_call(op, policy=policy, ctx=CallContext(timeout_s=1.0), classify=classify, what="op")
        assert op.calls == 1


class TestCallBounded:
    def test_returns_result(self) -> None:
        assert call_bounded(lambda: 42, CallContext(), 1.0, "answer") == 42

    def test_propagates_exceptions(self) -> None:
        def boom():
            raise InvalidInput("nope")

        with pytest.raises(InvalidInput):
            call_bounded(boom, CallContext(), 1.0, "boom")

    def test_slow_call_times_out(self) -> None:
        release = threading.Event()
        started = time.monotonic()
        try:
            with pytest.raises(Timeout):
                call_bounded(lambda: release.wait(5.0), CallContext(), 0.1, "slow")
        finally:
            release.set()
        assert time.monotonic() - started < 2.0

    def test_cancel_releases_caller(self) -> None:
        release = threading.Event()
        ctx = CallContext()
        timer = threading.Timer(0.1, ctx.cancel)
        timer.start()
        try:
            with pytest.raises(Cancelled):
                call_bounded(lambda: release.wait(5.0), ctx, None, "slow")
        finally:
            release.set()
            timer.cancel()
