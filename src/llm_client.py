"""
Oracle client: one JSON-producing language model call per user turn.

Uses Google ADK with a LiteLLM-backed model so any provider LiteLLM supports
can sit behind the same agent (Gemini by default).
"""

import asyncio
import logging

from google.adk import Agent
from google.adk.models.lite_llm import LiteLlm
from google.adk.runners import InMemoryRunner
from google.genai import types

from src.circuit_breaker import CircuitBreaker
from src.config import settings
from src.observability import trace_span
from src.prompts import COUNSELOR_INSTRUCTION

logger = logging.getLogger(__name__)

APP_NAME = "form_intake"
ORACLE_USER = "intake_service"


class OracleUnavailableError(RuntimeError):
    """The language model could not be reached or kept failing."""


class LlmClient:
    """
    Thin wrapper around an ADK runner.

    Each ``generate`` call runs in its own throwaway ADK session, so the
    model sees exactly the prompt we build and nothing from earlier turns.
    The runner is created lazily on first use.
    """

    def __init__(
        self,
        model: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
    ):
        self.model_name = model or settings.litellm_model
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        self.max_retries = settings.llm_max_retries if max_retries is None else max_retries
        self.runner: InMemoryRunner | None = None

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout,
            name="OracleCircuitBreaker",
        )

    def _get_runner(self) -> InMemoryRunner:
        if self.runner is None:
            logger.info(f"Initializing oracle agent with model {self.model_name}")
            agent = Agent(
                name="admissions_intake",
                model=LiteLlm(model=self.model_name, api_key=settings.gemini_api_key),
                description="Extracts form fields from a conversation and asks for the next one",
                instruction=COUNSELOR_INSTRUCTION,
                generate_content_config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    temperature=0.2,
                ),
            )
            self.runner = InMemoryRunner(agent=agent, app_name=APP_NAME)
        return self.runner

    async def _run_once(self, prompt: str) -> str:
        runner = self._get_runner()
        session = await runner.session_service.create_session(
            app_name=APP_NAME, user_id=ORACLE_USER
        )
        content = types.Content(role="user", parts=[types.Part(text=prompt)])

        final_text = None
        try:
            async for event in runner.run_async(
                user_id=ORACLE_USER, session_id=session.id, new_message=content
            ):
                if event.is_final_response():
                    if event.content and event.content.parts:
                        final_text = event.content.parts[0].text
                    break
        finally:
            await runner.session_service.delete_session(
                app_name=APP_NAME, user_id=ORACLE_USER, session_id=session.id
            )

        return final_text or ""

    async def _generate_with_retry(self, prompt: str) -> str:
        attempts = self.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                with trace_span("oracle_call", attempt=attempt, model=self.model_name):
                    return await asyncio.wait_for(self._run_once(prompt), self.timeout_seconds)
            except asyncio.TimeoutError as e:
                last_error = e
                logger.warning(
                    f"Oracle call timed out after {self.timeout_seconds}s "
                    f"(attempt {attempt}/{attempts})"
                )
            except Exception as e:
                last_error = e
                logger.warning(f"Oracle call failed (attempt {attempt}/{attempts}): {e}")

        raise OracleUnavailableError(
            f"Oracle failed after {attempts} attempt(s): {last_error}"
        ) from last_error

    async def generate(self, prompt: str) -> str:
        """
        Send one prompt and return the model's raw reply text.

        Raises:
            CircuitBreakerOpenError: upstream has been failing; no call made
            OracleUnavailableError: every attempt failed or timed out
        """
        return await self.circuit_breaker.call_async(self._generate_with_retry, prompt)

    def get_circuit_breaker_state(self) -> dict:
        return self.circuit_breaker.get_state()


# Global client instance
llm_client = LlmClient()
