"""Resilience tests: circuit breaker, bounded calls, retry."""

from __future__ import annotations

import threading
import time

import pytest

from solguard.resilience import (
    CircuitBreaker,
    OperationCancelled,
    OperationTimeout,
    call_with_timeout,
    retry,
)


# ---------------------------------------------------------------------------
# Circuit breaker
# ---------------------------------------------------------------------------

class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker(failure_threshold=3)
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.allow() is True

    def test_opens_after_threshold(self):
        cb = CircuitBreaker(failure_threshold=2)
        cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN
        assert cb.allow() is False

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=2)
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED

    def test_half_open_after_recovery(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        assert cb.state == CircuitBreaker.HALF_OPEN
        cb.record_success()
        assert cb.state == CircuitBreaker.CLOSED

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0.05)
        cb.record_failure()
        time.sleep(0.1)
        assert cb.state == CircuitBreaker.HALF_OPEN
        cb.record_failure()
        assert cb._state == CircuitBreaker.OPEN

    def test_reset(self):
        cb = CircuitBreaker(failure_threshold=1)
        cb.record_failure()
        cb.reset()
        assert cb.state == CircuitBreaker.CLOSED


# ---------------------------------------------------------------------------
# call_with_timeout
# ---------------------------------------------------------------------------

class TestCallWithTimeout:
    def test_returns_result(self):
        assert call_with_timeout(lambda a, b: a + b, 1.0, 2, b=3) == 5

    def test_raises_on_deadline(self):
        release = threading.Event()
        try:
            with pytest.raises(OperationTimeout):
                call_with_timeout(release.wait, 0.05, 2)
        finally:
            release.set()

    def test_propagates_exception(self):
        def boom():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            call_with_timeout(boom, 1.0)

    def test_cancel_stops_waiting(self):
        release = threading.Event()
        cancelled = threading.Event()
        threading.Timer(0.05, cancelled.set).start()
        started = time.monotonic()
        try:
            with pytest.raises(OperationCancelled):
                call_with_timeout(release.wait, 5.0, 5, cancelled=cancelled)
        finally:
            release.set()
        assert time.monotonic() - started < 2.0


# ---------------------------------------------------------------------------
# retry
# ---------------------------------------------------------------------------

class TestRetry:
    def test_succeeds_after_failures(self):
        calls = []

        @retry(max_attempts=3, base_delay=0.01)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("again")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_raises_last_error(self):
        @retry(max_attempts=2, base_delay=0.01)
        def always():
            raise ConnectionError("down")

        with pytest.raises(ConnectionError, match="down"):
            always()

    def test_only_listed_exceptions_retried(self):
        calls = []

        @retry(max_attempts=3, base_delay=0.01, exceptions=(ConnectionError,))
        def wrong():
            calls.append(1)
            raise ValueError("no retry")

        with pytest.raises(ValueError):
            wrong()
        assert len(calls) == 1
