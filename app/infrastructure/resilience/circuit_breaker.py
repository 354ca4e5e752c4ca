"""Circuit breaker for outbound delivery providers.

A provider (SMS gateway, email gateway) that keeps failing transiently is
cut off for ``timeout_seconds`` so every dispatch does not spend its retry
budget on it:

- CLOSED: calls pass through; consecutive failures are counted
- OPEN: calls are rejected with CircuitBreakerOpenError
- HALF_OPEN: the cooldown elapsed; a single trial call is let through and
  its result closes or reopens the circuit
"""

import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from infrastructure.logging import get_module_logger

logger = get_module_logger()


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit rejects a call.

    Attributes:
        name: Circuit that rejected the call
        retry_after: Seconds until a trial call will be let through
    """

    def __init__(self, name: str, retry_after: int = 0):
        self.name = name
        self.retry_after = retry_after
        message = f"Circuit breaker '{name}' is OPEN."
        if retry_after:
            message += f" Retry in {retry_after} seconds."
        else:
            message += " Trial call in progress."
        super().__init__(message)


class CircuitBreaker:
    """Consecutive failure breaker around one provider.

    Args:
        name: Name of the circuit (typically the channel/provider name)
        failure_threshold: Consecutive failures before opening
        timeout_seconds: Cooldown before a trial call is allowed
        clock: Callable returning the current time in epoch seconds
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        timeout_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout_seconds = timeout_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run ``func`` through the circuit.

        Raises:
            CircuitBreakerOpenError: If the circuit rejects the call
            Exception: Any exception raised by func, after it was counted
        """
        trial = self._admit()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._record_failure(e, trial)
            raise
        self._record_success(trial)
        return result

    def reset(self) -> None:
        """Close the circuit and forget past failures."""
        with self._lock:
            self._close()
        logger.info("circuit_breaker_manual_reset", name=self.name)

    def _current_state(self) -> CircuitState:
        # Caller holds the lock
        if (
            self._state == CircuitState.OPEN
            and self._clock() - self._opened_at >= self.timeout_seconds
        ):
            return CircuitState.HALF_OPEN
        return self._state

    def _admit(self) -> bool:
        """Let a call through; returns True when it is the trial call."""
        with self._lock:
            state = self._current_state()
            if state == CircuitState.CLOSED:
                return False
            if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            retry_after = 0
            if state == CircuitState.OPEN:
                elapsed = self._clock() - self._opened_at
                retry_after = max(1, int(self.timeout_seconds - elapsed))
            failure_count = self._failure_count

        logger.warning(
            "circuit_breaker_rejected",
            name=self.name,
            failure_count=failure_count,
            retry_in_seconds=retry_after,
        )
        raise CircuitBreakerOpenError(self.name, retry_after=retry_after)

    def _record_success(self, trial: bool) -> None:
        with self._lock:
            if trial:
                self._close()
            else:
                self._failure_count = 0
        if trial:
            logger.info("circuit_breaker_closed", name=self.name)

    def _record_failure(self, exception: Exception, trial: bool) -> None:
        with self._lock:
            self._failure_count += 1
            failure_count = self._failure_count
            opened = trial or (
                self._state == CircuitState.CLOSED
                and failure_count >= self.failure_threshold
            )
            if opened:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                self._trial_in_flight = False

        if opened:
            logger.error(
                "circuit_breaker_opened",
                name=self.name,
                failure_count=failure_count,
                trial_call=trial,
                timeout_seconds=self.timeout_seconds,
                error=str(exception),
            )
        else:
            logger.warning(
                "circuit_breaker_failure",
                name=self.name,
                failure_count=failure_count,
                threshold=self.failure_threshold,
                error=str(exception),
            )

    def _close(self) -> None:
        # Caller holds the lock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._trial_in_flight = False
