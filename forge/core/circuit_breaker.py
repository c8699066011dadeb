"""Circuit breaker protecting repeatedly failing operations.

States:
- CLOSED: calls pass through; ``failure_threshold`` consecutive failures open
  the circuit.
- OPEN: calls are rejected without being invoked until ``timeout`` seconds
  have passed since the last failure; the next call becomes a probe.
- HALF_OPEN: one probe at a time; ``success_threshold`` consecutive
  successes close the circuit, any failure reopens it.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, TypeVar

from pydantic import BaseModel, Field

from .exceptions import CircuitOpenError

T = TypeVar("T")

TransitionListener = Callable[["CircuitState", "CircuitState", str], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5
    """Consecutive failures before the circuit opens"""

    timeout: float = 60.0
    """Seconds to wait after the last failure before probing"""

    success_threshold: int = 2
    """Consecutive probe successes needed to close the circuit"""


class CircuitBreakerMetrics(BaseModel):
    """Snapshot of the breaker record."""

    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = Field(default=0, ge=0)
    consecutive_successes: int = Field(default=0, ge=0)
    last_failure_time: Optional[float] = Field(
        default=None, description="Epoch seconds of the last failure"
    )


class CircuitBreaker:
    """Thread-safe circuit breaker.

    Callers either use :meth:`call`, or drive the breaker by hand with
    :meth:`before_call` followed by :meth:`record_success` or
    :meth:`record_failure` when "failure" is more than an exception.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the breaker in the CLOSED state.

        Args:
            config: Thresholds and timeout (uses defaults if None)
            clock: Returns the current time in seconds, injectable for tests
        """
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: List[TransitionListener] = []

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._last_failure_time: Optional[float] = None
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def metrics(self) -> CircuitBreakerMetrics:
        with self._lock:
            return CircuitBreakerMetrics(
                state=self._state,
                consecutive_failures=self._failures,
                consecutive_successes=self._successes,
                last_failure_time=self._last_failure_time,
            )

    def restore(self, metrics: CircuitBreakerMetrics) -> None:
        """Load a previously saved record without notifying listeners."""
        with self._lock:
            self._state = metrics.state
            self._failures = metrics.consecutive_failures
            self._successes = metrics.consecutive_successes
            self._last_failure_time = metrics.last_failure_time
            self._probe_in_flight = False

    def add_listener(self, listener: TransitionListener) -> None:
        """
        Add a listener for state transitions.

        Args:
            listener: Callback function(from_state, to_state, reason)
        """
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def before_call(self) -> None:
        """Admit or reject a call.

        Raises:
            CircuitOpenError: If the circuit is OPEN and the timeout has not
                elapsed, or a HALF_OPEN probe is already running
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._timeout_elapsed():
                    raise CircuitOpenError()
                self._transition(CircuitState.HALF_OPEN, "timeout elapsed, probing")

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError("Circuit breaker is HALF_OPEN, probe in progress")
                self._probe_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._failures = 0
                    self._successes = 0
                    self._last_failure_time = None
                    self._transition(
                        CircuitState.CLOSED,
                        f"{self.config.success_threshold} consecutive probe successes",
                    )
            elif self._state == CircuitState.CLOSED:
                self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._probe_in_flight = False
                self._successes = 0
                self._transition(CircuitState.OPEN, "probe failed")
            elif (
                self._state == CircuitState.CLOSED
                and self._failures >= self.config.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN, f"{self._failures} consecutive failures"
                )

    def call(self, operation: Callable[[], T]) -> T:
        """
        Execute an operation with circuit breaker protection.

        Args:
            operation: Zero-argument callable

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the call was rejected
            Exception: Whatever the operation raised, after recording it
        """
        self.before_call()
        try:
            result = operation()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self, reason: str = "manual reset") -> None:
        """Force the circuit CLOSED and zero its counters."""
        with self._lock:
            self._failures = 0
            self._successes = 0
            self._last_failure_time = None
            self._probe_in_flight = False
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED, reason)

    def seconds_until_probe(self) -> Optional[float]:
        """Remaining cool-down while OPEN, None in any other state."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._last_failure_time is None:
                return None
            remaining = self.config.timeout - (self._clock() - self._last_failure_time)
            return max(remaining, 0.0)

    def _timeout_elapsed(self) -> bool:
        if self._last_failure_time is None:
            return True
        return self._clock() - self._last_failure_time >= self.config.timeout

    def _transition(self, to_state: CircuitState, reason: str) -> None:
        from_state = self._state
        self._state = to_state
        for listener in list(self._listeners):
            listener(from_state, to_state, reason)
