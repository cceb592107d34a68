"""Three-state circuit breaker around provider dispatch."""

import time
from enum import Enum
from typing import Callable, Optional

from copilot_edge.core.errors import CircuitOpenError
from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling a provider that keeps failing.

    closed -> open after ``failure_threshold`` consecutive failures.
    open -> half_open once ``recovery_timeout`` seconds have passed.
    half_open admits a single trial call: success closes the circuit,
    failure reopens it.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._cooled_down():
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    def before_call(self) -> None:
        """Admit or refuse a call.

        Raises:
            CircuitOpenError: while open, or while a half-open trial is running.
        """
        state = self.state
        if state == CircuitState.CLOSED:
            return

        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return

        raise CircuitOpenError(self._retry_after())

    def record_success(self) -> None:
        self._trial_in_flight = False
        self._failures = 0
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        self._trial_in_flight = False
        self._failures += 1
        self._last_failure_at = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def release_trial(self) -> None:
        """Free the half-open slot without recording an outcome."""
        self._trial_in_flight = False

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_at = None
        self._trial_in_flight = False

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "failures": self._failures,
            "threshold": self.failure_threshold,
        }

    def _cooled_down(self) -> bool:
        if self._last_failure_at is None:
            return True
        return self._clock() - self._last_failure_at >= self.recovery_timeout

    def _retry_after(self) -> float:
        if self._last_failure_at is None:
            return self.recovery_timeout
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.recovery_timeout - elapsed)

    def _transition(self, new_state: CircuitState) -> None:
        logger.warning(f"Circuit breaker {self._state.value} -> {new_state.value}")
        self._state = new_state
