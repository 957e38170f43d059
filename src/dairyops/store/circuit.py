"""Circuit breaker in front of the PostgREST store."""

import time
from enum import Enum
from typing import Any

from dairyops.common.logging import get_logger
from dairyops.common.metrics import update_circuit_breaker_state

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """The store is cooling down; no request was sent."""

    def __init__(self, message: str = "Store circuit is open", retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitBreaker:
    """
    Trips after consecutive store outages and lets a bounded number of
    trial requests through once the cool-down has elapsed.

    Every admitted request must report exactly one outcome:
    ``record_success``, ``record_failure`` or ``release``.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
    ):
        """
        Args:
            failure_threshold: Consecutive outages that open the circuit
            recovery_timeout: Cool-down in seconds before trial requests
            half_open_max_calls: Trial requests admitted at once, and the
                successes needed to close again
        """
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._trial_limit = half_open_max_calls

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._trials_in_flight = 0
        self._trial_successes = 0

    def _move_to(self, state: CircuitState) -> None:
        self._state = state
        self._trials_in_flight = 0
        self._trial_successes = 0
        if state is CircuitState.OPEN:
            self._opened_at = time.monotonic()
        update_circuit_breaker_state(state.value)

    def _cooldown_left(self) -> float:
        return max(0.0, self._recovery_timeout - (time.monotonic() - self._opened_at))

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._cooldown_left() == 0.0:
            logger.info("Store circuit cooled down, admitting trial requests")
            self._move_to(CircuitState.HALF_OPEN)
        return self._state

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self._consecutive_failures,
            "trials_in_flight": self._trials_in_flight,
        }

    def can_execute(self) -> bool:
        state = self.state
        if state is CircuitState.OPEN:
            return False
        if state is CircuitState.HALF_OPEN:
            return self._trials_in_flight < self._trial_limit
        return True

    def before_call(self) -> None:
        """
        Admit one request or raise.

        Raises:
            CircuitBreakerOpen: While cooling down, or when every trial
                slot of the half-open state is taken
        """
        if not self.can_execute():
            retry_after = self._cooldown_left() if self._state is CircuitState.OPEN else 0.0
            raise CircuitBreakerOpen(
                f"Store circuit is {self._state.value}", retry_after=retry_after
            )
        if self._state is CircuitState.HALF_OPEN:
            self._trials_in_flight += 1

    def release(self) -> None:
        """Give back an admitted slot without an outcome (cancelled call)."""
        if self._state is CircuitState.HALF_OPEN and self._trials_in_flight:
            self._trials_in_flight -= 1

    def record_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self.release()
            self._trial_successes += 1
            if self._trial_successes >= self._trial_limit:
                logger.info("Store circuit closed", trial_successes=self._trial_successes)
                self._consecutive_failures = 0
                self._move_to(CircuitState.CLOSED)
        else:
            self._consecutive_failures = 0

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state is CircuitState.HALF_OPEN:
            logger.warning("Store trial request failed, reopening circuit")
            self._move_to(CircuitState.OPEN)
        elif (
            self._state is CircuitState.CLOSED
            and self._consecutive_failures >= self._failure_threshold
        ):
            logger.warning(
                "Store circuit opened",
                failure_count=self._consecutive_failures,
                threshold=self._failure_threshold,
            )
            self._move_to(CircuitState.OPEN)
