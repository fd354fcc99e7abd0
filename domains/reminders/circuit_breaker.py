"""Circuit breaker for intent provider calls.

Skips a provider that keeps failing so the cascade does not pay its full
timeout on every message.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Provider is down, calls are skipped (counted as a fall-through)
- HALF_OPEN: Testing recovery, one call allowed through

Transitions:
- CLOSED → OPEN: After PROVIDER_FAILURE_THRESHOLD consecutive failures
- OPEN → HALF_OPEN: After PROVIDER_RECOVERY_TIMEOUT seconds
- HALF_OPEN → CLOSED: On successful call
- HALF_OPEN → OPEN: On failed call
"""

import threading
import time
from enum import Enum
from typing import Callable, Optional

from logger import logger
from . import config


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Thread-safe circuit breaker guarding one provider.

    Usage:
        breaker = CircuitBreaker(name="openai")

        if breaker.allow_request():
            try:
                result = await adapter.parse(message, tz)
                breaker.record_success()
            except Exception:
                breaker.record_failure()
    """

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[float] = None,
        name: str = "provider",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening (default from config)
            recovery_timeout: Seconds before testing recovery (default from config)
            name: Provider name for logging
            clock: Monotonic seconds source, replaceable in tests
        """
        self.failure_threshold = failure_threshold or config.PROVIDER_FAILURE_THRESHOLD
        self.recovery_timeout = recovery_timeout or config.PROVIDER_RECOVERY_TIMEOUT
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._lock = threading.Lock()

        self._total_successes = 0
        self._total_failures = 0
        self._times_opened = 0

    @property
    def state(self) -> CircuitState:
        """Current state, checking for the OPEN → HALF_OPEN transition."""
        with self._lock:
            return self._get_state_locked()

    def _get_state_locked(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if self._opened_at is not None and (self._clock() - self._opened_at) >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Provider breaker [{self.name}]: OPEN → HALF_OPEN (testing recovery)")

        return self._state

    def allow_request(self) -> bool:
        """True unless the circuit is open."""
        with self._lock:
            return self._get_state_locked() != CircuitState.OPEN

    def record_success(self) -> None:
        with self._lock:
            self._total_successes += 1

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._opened_at = None
                logger.info(f"Provider breaker [{self.name}]: HALF_OPEN → CLOSED (provider recovered)")
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._total_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                logger.warning(f"Provider breaker [{self.name}]: HALF_OPEN → OPEN (recovery failed)")

            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
                self._times_opened += 1
                logger.warning(
                    f"Provider breaker [{self.name}]: CLOSED → OPEN "
                    f"(after {self._failure_count} consecutive failures)"
                )

    def get_stats(self) -> dict:
        """Breaker statistics for health reporting."""
        with self._lock:
            state = self._get_state_locked()
            return {
                "name": self.name,
                "state": state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "total_successes": self._total_successes,
                "total_failures": self._total_failures,
                "times_opened": self._times_opened,
            }
