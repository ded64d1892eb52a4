"""Resilience primitives: circuit breaker, bounded calls, retry with backoff.

No external dependencies.  ``call_with_timeout`` bounds each detector
run; the breaker and ``retry`` guard calls to the external AI service.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from typing import Any, Callable, TypeVar

from solguard.defaults import AI_CANCEL_POLL_SECONDS

log = logging.getLogger("solguard.resilience")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Circuit Breaker
# ---------------------------------------------------------------------------

class CircuitBreaker:
    """Consecutive-failure breaker for a flaky dependency.

    After *failure_threshold* failures in a row the breaker opens and
    ``allow()`` refuses calls.  Once *recovery_timeout* seconds have passed
    it turns half-open: the next outcome either closes it again or
    re-opens it for another full timeout.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        name: str = "default",
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._state = self.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    def _set(self, state: str) -> None:
        if state != self._state:
            log.info("Circuit breaker '%s': %s -> %s", self.name, self._state, state)
            self._state = state

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == self.OPEN and time.monotonic() - self._opened_at >= self.recovery_timeout:
                self._set(self.HALF_OPEN)
            return self._state

    def allow(self) -> bool:
        return self.state != self.OPEN

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._set(self.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == self.HALF_OPEN or self._failures >= self.failure_threshold:
                self._opened_at = time.monotonic()
                self._set(self.OPEN)

    def reset(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = self.CLOSED


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------

class OperationTimeout(Exception):
    """Raised when an operation exceeds its configured timeout."""
    pass


class OperationCancelled(Exception):
    """Raised when the caller abandoned an operation before it finished."""
    pass


def call_with_timeout(
    func: Callable[..., T],
    seconds: float,
    *args: Any,
    cancelled: threading.Event | None = None,
    **kwargs: Any,
) -> T:
    """Run *func* in a daemon thread and wait at most *seconds* for it.

    Raises ``OperationTimeout`` when the deadline passes and
    ``OperationCancelled`` as soon as *cancelled* is set.  The worker thread
    is abandoned in both cases; its eventual result is dropped.
    Note: this only stops waiting; it cannot interrupt the running call.
    """
    result: list[Any] = []
    exception: list[BaseException] = []
    done = threading.Event()

    def target() -> None:
        try:
            result.append(func(*args, **kwargs))
        except BaseException as e:
            exception.append(e)
        finally:
            done.set()

    thread = threading.Thread(target=target, daemon=True, name=f"timeout-{getattr(func, '__name__', 'call')}")
    thread.start()

    deadline = time.monotonic() + seconds
    while not done.is_set():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise OperationTimeout(
                f"{getattr(func, '__name__', 'call')} exceeded timeout of {seconds}s"
            )
        if cancelled is None:
            done.wait(remaining)
            continue
        if cancelled.is_set():
            raise OperationCancelled(f"{getattr(func, '__name__', 'call')} was cancelled")
        done.wait(min(remaining, AI_CANCEL_POLL_SECONDS))

    if exception:
        raise exception[0]
    return result[0]


# ---------------------------------------------------------------------------
# Retry with exponential backoff
# ---------------------------------------------------------------------------

def retry(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable:
    """Decorator retrying *exceptions* up to *max_attempts* times in total.

    The delay starts at *base_delay* and grows by *backoff_factor*, capped
    at *max_delay*.  The last error propagates unchanged.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delays = _backoff(base_delay, max_delay, backoff_factor)
            for attempt in range(1, max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays)
                    log.warning(
                        "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                        func.__name__, attempt, max_attempts, e, delay,
                    )
                    time.sleep(delay)
            return func(*args, **kwargs)

        return wrapper
    return decorator


def _backoff(base: float, cap: float, factor: float):
    delay = base
    while True:
        yield min(delay, cap)
        delay *= factor
