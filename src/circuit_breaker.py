"""
Circuit breaker for calls to the language-model oracle.
Stops hammering the upstream API while it is failing and lets a single trial call
through once the cool-down has passed.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitBreakerOpenError(RuntimeError):
    """Raised when circuit breaker blocks execution."""


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Three-state breaker.

    - CLOSED -> OPEN after ``failure_threshold`` consecutive failures
    - OPEN -> HALF_OPEN once ``timeout`` seconds passed since the last failure
    - HALF_OPEN -> CLOSED when the trial call succeeds, back to OPEN when it fails

    Wraps coroutine functions through ``call_async``.
    """

    def __init__(self, failure_threshold: int = 5, timeout: int = 60, name: str = "CircuitBreaker"):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.name = name

        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self.last_failure_time: float | None = None

        logger.info(
            f"CircuitBreaker '{name}' initialized: "
            f"threshold={failure_threshold}, timeout={timeout}s"
        )

    def _before_call(self) -> None:
        if self.state != CircuitState.OPEN:
            return
        if self._cooldown_elapsed():
            logger.info(f"CircuitBreaker '{self.name}': OPEN -> HALF_OPEN")
            self.state = CircuitState.HALF_OPEN
            return
        raise CircuitBreakerOpenError(f"CircuitBreaker '{self.name}' is OPEN. Service unavailable.")

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"CircuitBreaker '{self.name}': HALF_OPEN -> CLOSED")
        self.reset()

    def _on_failure(self, error: BaseException) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        logger.error(
            f"CircuitBreaker '{self.name}' failure "
            f"({self.failure_count}/{self.failure_threshold}): {error}"
        )

        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(f"CircuitBreaker '{self.name}': {self.state.name} -> OPEN")
            self.state = CircuitState.OPEN

    async def call_async(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Await ``func`` under breaker protection; failures are recorded and re-raised."""
        self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _cooldown_elapsed(self) -> bool:
        if self.last_failure_time is None:
            return True
        return time.time() - self.last_failure_time >= self.timeout

    def reset(self) -> None:
        self.failure_count = 0
        self.state = CircuitState.CLOSED
        self.last_failure_time = None

    def get_state(self) -> dict:
        """Get current circuit breaker state for monitoring."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "last_failure_time": self.last_failure_time,
        }
