"""
CircuitBreaker - Stops calling the upstream vault after repeated failures.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Upstream is failing, requests are blocked
- HALF_OPEN: Cooldown elapsed, requests pass through to probe recovery

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are recorded
- OPEN → HALF_OPEN: Once reset_timeout has elapsed (checked on every state read)
- HALF_OPEN → CLOSED: On successful request
- HALF_OPEN → OPEN: On failed request, restarting the cooldown
"""

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Callable

from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half-open"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    reset_timeout: timedelta = timedelta(seconds=30)  # Time before half-open


class CircuitBreaker:
    """
    Circuit breaker guarding a single upstream service.

    Usage:
        cb = CircuitBreaker("vault")

        if not cb.allow_request():
            raise CircuitOpenError(...)

        try:
            result = await make_request()
            cb.record_success()
            return result
        except Exception:
            cb.record_failure()
            raise

    The ``state`` property is the only place the OPEN → HALF_OPEN check
    happens; every other method reads state through it.
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._cooldown_elapsed():
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN"
                )
            return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    def allow_request(self) -> bool:
        """Check if a request is allowed."""
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        """Record a successful request. Any success closes the circuit."""
        with self._lock:
            if self.state != CircuitState.CLOSED:
                self._close()
            else:
                # Failures do not accumulate across successes
                self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed request."""
        with self._lock:
            self._failure_count += 1
            current_state = self.state

            if current_state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._open()
                logger.warning(
                    f"Circuit breaker '{self.service_id}' re-OPENED after failed probe"
                )
            elif (
                current_state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._open()
                logger.warning(
                    f"Circuit breaker '{self.service_id}' OPENED after "
                    f"{self._failure_count} failures"
                )

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._opened_at = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        with self._lock:
            if self.state != CircuitState.OPEN or self._opened_at is None:
                return None
            elapsed = self._clock() - self._opened_at
            return max(0.0, self.config.reset_timeout.total_seconds() - elapsed)

    def _cooldown_elapsed(self) -> bool:
        if self._opened_at is None:
            return False
        elapsed = self._clock() - self._opened_at
        return elapsed >= self.config.reset_timeout.total_seconds()

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")
