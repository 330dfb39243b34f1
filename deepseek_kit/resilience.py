"""Failure handling shared by the client: error classification, backoff
delays and a circuit breaker.

Circuit breaker states::

    closed --(failure_threshold consecutive failures)--> open
    open --(reset_timeout elapsed)--> half_open
    half_open --(success_threshold successes)--> closed
    half_open --(any failure)--> open

Only recoverable errors (transport, rate limit, server side) count as
failures. A rejected key or a malformed request says nothing about the
health of the service.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TypeVar

from deepseek_kit.errors import (
    APIError,
    CircuitOpenError,
    HTTPStatusError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    SourceError,
    StreamingError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_DELAY = 30.0  # seconds

_RECOVERABLE = (
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    StreamingError,
)


def is_recoverable(error: BaseException | None) -> bool:
    """Return True if retrying the same request may succeed.

    ``SourceError`` is unwrapped to the error that failed the stream.
    Server-side ``APIError`` (type ``server_error``) and 5xx
    ``HTTPStatusError`` are recoverable; everything else is not.
    """
    if isinstance(error, SourceError):
        error = error.cause
    if isinstance(error, _RECOVERABLE):
        return True
    if isinstance(error, HTTPStatusError):
        return error.status_code >= 500
    if isinstance(error, APIError):
        return error.type == "server_error"
    return False


def retry_delay(attempt: int, *, jitter: bool = True) -> float:
    """Exponential backoff for the 1-based ``attempt``, capped at 30 s."""
    delay = 2.0 ** (attempt - 1)
    if jitter:
        delay += random.uniform(0.0, 1.0)
    return min(delay, MAX_RETRY_DELAY)


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Rejects calls after repeated service failures until a cool-down passes.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Successes in half-open state that close it.
        reset_timeout: Seconds the circuit stays open before a trial call.
        clock: Zero-argument callable returning the current time in seconds.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 3,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1 or success_threshold < 1:
            raise ValueError("thresholds must be at least 1")
        if reset_timeout <= 0:
            raise ValueError("reset_timeout must be positive")
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float | None = None
        self.rejected = 0

    @property
    def state(self) -> CircuitState:
        """Current state. An open circuit reads half-open once the timeout passes."""
        if self._state == CircuitState.OPEN and self.retry_after == 0.0:
            return CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def retry_after(self) -> float:
        """Seconds until an open circuit admits a trial call."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.reset_timeout - self._clock())

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.HALF_OPEN and self._state == CircuitState.OPEN:
            self._transition(CircuitState.HALF_OPEN)
        return state != CircuitState.OPEN

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        else:
            self._failures = 0

    def record_failure(self) -> None:
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN:
            logger.warning("Trial call failed, reopening circuit")
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            logger.warning(
                "Opening circuit after %d consecutive failures", self._failures
            )
            self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        self._transition(CircuitState.CLOSED)

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open. ``func`` is not called.
        """
        if not self.allow_request():
            self.rejected += 1
            raise CircuitOpenError(
                f"Circuit open after repeated failures; retry in {self.retry_after:.0f}s",
                retry_after=self.retry_after,
            )
        try:
            result = await func()
        except Exception as e:
            if is_recoverable(e):
                self.record_failure()
            raise
        self.record_success()
        return result

    def _transition(self, state: CircuitState) -> None:
        if state != self._state:
            logger.info("Circuit %s -> %s", self._state, state)
        self._state = state
        self._successes = 0
        if state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif state == CircuitState.CLOSED:
            self._failures = 0
            self._opened_at = None
