"""Tests for deepseek_kit.resilience — error classification, backoff, circuit breaker."""

from unittest.mock import AsyncMock, patch

import pytest

from deepseek_kit.errors import (
    APIError,
    CircuitOpenError,
    HTTPStatusError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    InvalidRequestError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    SourceError,
    StreamingError,
)
from deepseek_kit.resilience import (
    MAX_RETRY_DELAY,
    CircuitBreaker,
    CircuitState,
    is_recoverable,
    retry_delay,
)


class FakeClock:
    def __init__(self, start: float = 500.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(failure_threshold=3, success_threshold=2, reset_timeout=30, clock=clock)


class TestIsRecoverable:
    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("reset"),
            RateLimitError(),
            RequestTimeoutError("slow"),
            ServiceUnavailableError(),
            StreamingError("dropped"),
            HTTPStatusError(502),
            APIError("boom", type="server_error"),
        ],
    )
    def test_recoverable(self, error):
        assert is_recoverable(error)

    @pytest.mark.parametrize(
        "error",
        [
            InvalidAPIKeyError(),
            InsufficientBalanceError(),
            InvalidRequestError("bad"),
            HTTPStatusError(404),
            APIError("nope", type="invalid_request_error"),
            ValueError("local bug"),
            None,
        ],
    )
    def test_not_recoverable(self, error):
        assert not is_recoverable(error)

    def test_source_error_unwrapped(self):
        assert is_recoverable(SourceError("failed", cause=NetworkError("reset")))
        assert not is_recoverable(SourceError("failed", cause=InvalidAPIKeyError()))


class TestRetryDelay:
    def test_exponential_without_jitter(self):
        assert [retry_delay(n, jitter=False) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        assert retry_delay(10, jitter=False) == MAX_RETRY_DELAY
        assert retry_delay(10) == MAX_RETRY_DELAY

    def test_jitter_adds_up_to_one_second(self):
        with patch("deepseek_kit.resilience.random.uniform", return_value=0.5):
            assert retry_delay(2) == 2.5


class TestCircuitBreaker:
    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            CircuitBreaker(failure_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreaker(reset_timeout=0)

    def test_defaults(self):
        breaker = CircuitBreaker()
        assert breaker.failure_threshold == 5
        assert breaker.success_threshold == 3
        assert breaker.reset_timeout == 60.0
        assert breaker.state == CircuitState.CLOSED

    def test_opens_after_threshold(self, breaker):
        for _ in range(2):
            breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()
        assert breaker.retry_after == 30

    def test_success_resets_failure_count(self, breaker):
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        assert breaker.failure_count == 0
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_timeout(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(29.9)
        assert breaker.state == CircuitState.OPEN
        clock.advance(0.1)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

    def test_closes_after_successful_trials(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(30)
        assert breaker.allow_request()
        breaker.record_success()
        assert breaker.state == CircuitState.HALF_OPEN
        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    def test_trial_failure_reopens(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()
        clock.advance(30)
        breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert breaker.retry_after == 30

    def test_reset(self, breaker):
        for _ in range(3):
            breaker.record_failure()
        breaker.reset()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()


class TestCircuitBreakerCall:
    @pytest.mark.asyncio
    async def test_passes_result_through(self, breaker):
        func = AsyncMock(return_value="ok")
        assert await breaker.call(func) == "ok"
        func.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejects_while_open(self, breaker):
        func = AsyncMock(side_effect=NetworkError("down"))
        for _ in range(3):
            with pytest.raises(NetworkError):
                await breaker.call(func)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(func)
        assert exc_info.value.retry_after == 30
        assert func.await_count == 3
        assert breaker.rejected == 1

    @pytest.mark.asyncio
    async def test_non_recoverable_errors_not_counted(self, breaker):
        func = AsyncMock(side_effect=InvalidRequestError("bad"))
        for _ in range(5):
            with pytest.raises(InvalidRequestError):
                await breaker.call(func)
        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED
