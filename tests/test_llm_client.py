"""
Tests for the oracle client retry, timeout and breaker behaviour.
The ADK runner is never started; either ``_run_once`` is patched or the
runner is replaced by a stub.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from src.circuit_breaker import CircuitBreakerOpenError, CircuitState
from src.llm_client import APP_NAME, ORACLE_USER, LlmClient, OracleUnavailableError


def run(coro):
    return asyncio.run(coro)


class TestGenerate:
    def test_returns_model_text(self):
        client = LlmClient(max_retries=1)

        with patch.object(client, "_run_once", AsyncMock(return_value='{"ai_message": "hi"}')):
            assert run(client.generate("prompt")) == '{"ai_message": "hi"}'

    def test_single_retry_then_success(self):
        client = LlmClient(max_retries=1)
        mock_run = AsyncMock(side_effect=[ConnectionError("reset"), "ok"])

        with patch.object(client, "_run_once", mock_run):
            assert run(client.generate("prompt")) == "ok"

        assert mock_run.await_count == 2
        assert client.circuit_breaker.failure_count == 0

    def test_exhausted_retries_raise(self):
        client = LlmClient(max_retries=1)
        mock_run = AsyncMock(side_effect=ConnectionError("refused"))

        with patch.object(client, "_run_once", mock_run):
            with pytest.raises(OracleUnavailableError):
                run(client.generate("prompt"))

        assert mock_run.await_count == 2
        assert client.circuit_breaker.failure_count == 1

    def test_timeout_counts_as_failure(self):
        client = LlmClient(timeout_seconds=0.05, max_retries=0)

        async def slow(prompt):
            await asyncio.sleep(1)
            return "late"

        with patch.object(client, "_run_once", slow):
            with pytest.raises(OracleUnavailableError, match="1 attempt"):
                run(client.generate("prompt"))

    def test_open_breaker_skips_model(self):
        client = LlmClient(max_retries=0)
        client.circuit_breaker.state = CircuitState.OPEN
        client.circuit_breaker.last_failure_time = 10**12
        mock_run = AsyncMock(return_value="never")

        with patch.object(client, "_run_once", mock_run):
            with pytest.raises(CircuitBreakerOpenError):
                run(client.generate("prompt"))

        mock_run.assert_not_awaited()

    def test_runner_created_lazily(self):
        client = LlmClient()
        assert client.runner is None
        assert client.get_circuit_breaker_state()["name"] == "OracleCircuitBreaker"


def make_runner(events=None, error=None):
    """Stub ADK runner yielding ``events``, then raising ``error`` if given."""

    async def run_async(**kwargs):
        for event in events or []:
            yield event
        if error is not None:
            raise error

    runner = Mock()
    runner.session_service.create_session = AsyncMock(return_value=SimpleNamespace(id="sess-1"))
    runner.session_service.delete_session = AsyncMock()
    runner.run_async = run_async
    return runner


def final_event(text):
    return SimpleNamespace(
        is_final_response=lambda: True,
        content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
    )


class TestRunOnce:
    def test_returns_final_response_text(self):
        client = LlmClient()
        client.runner = make_runner(events=[final_event('{"ai_message": "hi"}')])

        assert run(client._run_once("prompt")) == '{"ai_message": "hi"}'

        client.runner.session_service.delete_session.assert_awaited_once_with(
            app_name=APP_NAME, user_id=ORACLE_USER, session_id="sess-1"
        )

    def test_session_deleted_when_model_raises(self):
        client = LlmClient()
        client.runner = make_runner(error=RuntimeError("stream broke"))

        with pytest.raises(RuntimeError, match="stream broke"):
            run(client._run_once("prompt"))

        client.runner.session_service.delete_session.assert_awaited_once_with(
            app_name=APP_NAME, user_id=ORACLE_USER, session_id="sess-1"
        )

    def test_no_final_response_gives_empty_text(self):
        client = LlmClient()
        client.runner = make_runner(events=[])

        assert run(client._run_once("prompt")) == ""
        client.runner.session_service.delete_session.assert_awaited_once()
