"""
Tests for the oracle circuit breaker.
"""

import asyncio
import time

import pytest

from src.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError, CircuitState


def call(cb, func, *args):
    return asyncio.run(cb.call_async(func, *args))


async def failing_func():
    raise RuntimeError("upstream down")


async def echo(value):
    return value


def open_breaker(cb):
    for _ in range(cb.failure_threshold):
        with pytest.raises(RuntimeError):
            call(cb, failing_func)


class TestCircuitBreaker:
    def test_initial_state_closed(self):
        cb = CircuitBreaker(failure_threshold=3, timeout=5)
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_successful_call_passes_through(self):
        cb = CircuitBreaker(failure_threshold=3)
        assert call(cb, echo, 42) == 42
        assert cb.state == CircuitState.CLOSED

    def test_single_failure_stays_closed(self):
        cb = CircuitBreaker(failure_threshold=3)

        with pytest.raises(RuntimeError):
            call(cb, failing_func)

        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 1

    def test_success_clears_failure_count(self):
        cb = CircuitBreaker(failure_threshold=3)
        with pytest.raises(RuntimeError):
            call(cb, failing_func)

        call(cb, echo, "ok")

        assert cb.failure_count == 0

    def test_threshold_failures_opens_circuit(self):
        cb = CircuitBreaker(failure_threshold=3)
        open_breaker(cb)

        assert cb.state == CircuitState.OPEN
        assert cb.failure_count == 3

    def test_open_circuit_blocks_calls(self):
        cb = CircuitBreaker(failure_threshold=2, timeout=60)
        open_breaker(cb)
        called = []

        async def record():
            called.append(True)

        with pytest.raises(CircuitBreakerOpenError):
            call(cb, record)

        assert called == []

    def test_half_open_success_closes_circuit(self):
        cb = CircuitBreaker(failure_threshold=2, timeout=1)
        open_breaker(cb)

        time.sleep(1.1)

        assert call(cb, echo, "recovered") == "recovered"
        assert cb.state == CircuitState.CLOSED
        assert cb.failure_count == 0

    def test_half_open_failure_reopens_circuit(self):
        cb = CircuitBreaker(failure_threshold=2, timeout=1)
        open_breaker(cb)

        time.sleep(1.1)

        with pytest.raises(RuntimeError):
            call(cb, failing_func)

        assert cb.state == CircuitState.OPEN

    def test_reset_closes_circuit(self):
        cb = CircuitBreaker(failure_threshold=1, timeout=60)
        open_breaker(cb)

        cb.reset()

        assert cb.state == CircuitState.CLOSED
        assert cb.last_failure_time is None

    def test_get_state_returns_dict(self):
        cb = CircuitBreaker(failure_threshold=5, name="TestBreaker")

        state = cb.get_state()

        assert state["name"] == "TestBreaker"
        assert state["state"] == "closed"
        assert state["failure_count"] == 0
        assert state["failure_threshold"] == 5
