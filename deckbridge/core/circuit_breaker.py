"""
Circuit breaker for deck platform fetches.

When a platform (Moxfield, Archidekt, ...) keeps failing, URL imports for
that platform fail fast instead of waiting on the network each time. The
breaker tries again automatically once the recovery timeout has passed.
"""
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


class CircuitState(Enum):
    CLOSED = "closed"      # Requests pass through
    OPEN = "open"          # Failing fast
    HALF_OPEN = "half_open"  # Probing recovery


class CircuitOpenError(Exception):
    """Raised when a platform's circuit is open and the fetch should not be attempted."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit {name} is open. Retry after {retry_after:.1f}s")


def _always(exc: BaseException) -> bool:
    return True


@dataclass
class CircuitBreaker:
    """
    Circuit breaker guarding calls to one platform.

    States:
    - CLOSED: requests pass through
    - OPEN: platform unhealthy, fail fast without calling
    - HALF_OPEN: a limited number of probes are let through

    ``is_failure`` decides which exceptions count against the platform.
    Client-side problems (a 404 for a deleted deck) should not trip the
    breaker, so the fetcher passes a predicate that ignores them.

    Usage:
        breaker = CircuitBreaker(name="moxfield")

        async with breaker:
            response = await client.get(url)
    """
    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0   # Seconds before trying half-open
    half_open_requests: int = 1      # Successful probes needed to close
    is_failure: Callable[[BaseException], bool] = field(default=_always, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    success_count: int = field(default=0)
    last_failure_time: Optional[float] = field(default=None)

    async def __aenter__(self):
        self.before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.record_success()
        elif exc_val is not None and self.is_failure(exc_val):
            self.record_failure()
        return False

    def before_call(self):
        """Raise CircuitOpenError if the call must not go out."""
        if self.state != CircuitState.OPEN:
            return
        if self._should_attempt_recovery():
            self.state = CircuitState.HALF_OPEN
            self.success_count = 0
            logger.info("Circuit entering half-open state", circuit=self.name)
            return
        raise CircuitOpenError(self.name, self._time_until_recovery())

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN and not self._should_attempt_recovery()

    def _should_attempt_recovery(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self.clock() - self.last_failure_time >= self.recovery_timeout

    def _time_until_recovery(self) -> float:
        if self.last_failure_time is None:
            return 0
        elapsed = self.clock() - self.last_failure_time
        return max(0, self.recovery_timeout - elapsed)

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = self.clock()

        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.OPEN
            logger.warning("Circuit reopened after half-open failure", circuit=self.name)
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit opened",
                circuit=self.name,
                failures=self.failure_count,
            )

    def record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_requests:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                logger.info("Circuit closed after recovery", circuit=self.name)
        else:
            self.failure_count = 0

    def reset(self):
        """Manually reset the breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time = None
        logger.debug("Circuit manually reset", circuit=self.name)


class CircuitBreakerPool:
    """
    One breaker per platform, created on first use.

    All breakers in a pool share the same thresholds and failure predicate.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        is_failure: Callable[[BaseException], bool] = _always,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.is_failure = is_failure
        self.clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        """Get or create the breaker for a platform."""
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=name,
                    failure_threshold=self.failure_threshold,
                    recovery_timeout=self.recovery_timeout,
                    is_failure=self.is_failure,
                    clock=self.clock,
                )
                self._breakers[name] = breaker
            return breaker

    def states(self) -> dict[str, CircuitState]:
        with self._lock:
            return {name: b.state for name, b in self._breakers.items()}

    def reset_all(self):
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()

    def clear(self):
        with self._lock:
            self._breakers.clear()
