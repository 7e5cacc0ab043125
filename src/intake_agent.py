"""
Conversation orchestration for form intake.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from data.admissions_form import build_admissions_fields
from src.callbacks import UnsafeInputError, redact_record, screen_user_message
from src.config import settings
from src.field_tracker import DataRecord, FieldTracker
from src.llm_client import LlmClient, llm_client
from src.observability import trace_span
from src.prompts import build_turn_prompt, question_for
from src.response_parser import parse_oracle_reply

logger = logging.getLogger(__name__)

BLOCKED_MESSAGE = "I can only help with your counseling details. Could you rephrase that?"
CLOSING_MESSAGE = "Thank you! I have everything I need. Our team will be in touch with you soon."


@dataclass
class TurnResult:
    ai_message: str
    record: DataRecord
    next_field: str | None
    complete: bool
    missing: list[str] = field(default_factory=list)


class IntakeAgent:
    """
    Deterministic wrapper around a probabilistic language model.

    Responsibilities:
    - build the turn prompt from the tracker's view of what is missing
    - merge the model's extraction into the record
    - override the model's completion claim with the tracker's verdict
    - remember each session's record so callers may omit it

    The LLM extracts values and writes the reply.
    What is missing, and whether the form is done, is decided here.
    """

    def __init__(self, tracker: FieldTracker | None = None, client: LlmClient | None = None):
        logger.info("Initializing IntakeAgent")
        self.tracker = tracker or FieldTracker(build_admissions_fields(settings.parent_name_policy))
        self.client = client or llm_client

        # Session store.
        # OrderedDict used so oldest sessions can be evicted deterministically.
        # Each session contains:
        #    ts: last access timestamp
        #    record: last normalized record
        #    ai_message: last reply sent to the user
        self.conversations: OrderedDict[str, dict[str, Any]] = OrderedDict()

        logger.info(
            f"IntakeAgent ready: {len(self.tracker.fields)} fields, "
            f"parent_name_policy={settings.parent_name_policy}"
        )

    def _prune_sessions(self) -> None:
        """Drop sessions past their TTL, then the oldest ones beyond capacity."""
        now = time.time()

        expired = [
            sid
            for sid, meta in self.conversations.items()
            if now - meta["ts"] > settings.session_ttl_seconds
        ]
        for sid in expired:
            del self.conversations[sid]

        while len(self.conversations) > settings.max_sessions:
            self.conversations.popitem(last=False)

    def _resolve_record(
        self, tracker: FieldTracker, existing_data: Mapping[str, Any] | None, session_id: str | None
    ) -> DataRecord:
        if existing_data is not None:
            return tracker.normalize(existing_data)
        session = self.get_session(session_id)
        return tracker.normalize(session["record"] if session else {})

    def _remember(self, session_id: str | None, record: DataRecord, ai_message: str) -> None:
        if not session_id:
            return
        self.conversations[session_id] = {
            "ts": time.time(),
            "record": dict(record),
            "ai_message": ai_message,
        }
        self.conversations.move_to_end(session_id)
        self._prune_sessions()

    async def chat(
        self,
        message: str,
        existing_data: Mapping[str, Any] | None = None,
        last_ai_message: str | None = None,
        session_id: str | None = None,
        start: bool = False,
        tracker: FieldTracker | None = None,
    ) -> TurnResult:
        """
        Run one conversation turn.

        Args:
            message: what the user just said (may be empty on start)
            existing_data: record held by the caller; wins over the session store
            last_ai_message: the question the user is answering
            session_id: optional key for server-side record storage
            start: True for the opening turn, before the user has spoken
            tracker: form to collect; defaults to the admissions form

        Returns:
            TurnResult with the merged record and the tracker's verdict

        Raises:
            CircuitBreakerOpenError, OracleUnavailableError: upstream failures
        """
        tracker = tracker or self.tracker
        message = message or ""

        self._prune_sessions()
        record = self._resolve_record(tracker, existing_data, session_id)
        session = self.get_session(session_id)
        if last_ai_message is None and session:
            last_ai_message = session["ai_message"]

        try:
            screen_user_message(message)
        except UnsafeInputError:
            logger.warning(f"Blocked user message (session={session_id})")
            current = tracker.apply_turn(record, None)
            return TurnResult(
                ai_message=BLOCKED_MESSAGE,
                record=current.record,
                next_field=current.next_field,
                complete=current.complete,
                missing=current.missing,
            )

        with trace_span("intake_turn", session=session_id or "-") as span:
            prompt = build_turn_prompt(
                fields=tracker.fields,
                record=record,
                missing=tracker.missing_fields(record),
                next_field=tracker.next_missing_field(record),
                user_message=message,
                last_ai_message=last_ai_message,
                start=start,
            )

            raw = await self.client.generate(prompt)
            reply = parse_oracle_reply(raw)
            result = tracker.apply_turn(record, reply.extracted)

            if not reply.parsed:
                logger.warning(
                    f"Unusable oracle reply, asking the user to repeat (session={session_id})"
                )

            ai_message = reply.ai_message
            if result.complete and not reply.claimed_complete:
                # the model may still be asking for a field the tracker already has
                ai_message = CLOSING_MESSAGE
            elif reply.claimed_complete and not result.complete:
                logger.warning(
                    f"Oracle claimed completion but fields are missing: {result.missing} "
                    f"(session={session_id})"
                )
                ai_message = ""

            if not ai_message:
                next_field = tracker.get_field(result.next_field) if result.next_field else None
                ai_message = question_for(next_field) if next_field else CLOSING_MESSAGE

            span["parsed"] = reply.parsed
            span["extracted"] = len(reply.extracted)
            span["complete"] = result.complete

        logger.info(
            f"Turn processed: next_field={result.next_field} complete={result.complete} "
            f"record={redact_record(result.record)}"
        )

        self._remember(session_id, result.record, ai_message)

        return TurnResult(
            ai_message=ai_message,
            record=result.record,
            next_field=result.next_field,
            complete=result.complete,
            missing=result.missing,
        )

    def reset_conversation(self, session_id: str) -> None:
        """Forget the stored record for a session."""
        if session_id in self.conversations:
            del self.conversations[session_id]
            logger.info(f"Conversation reset for session {session_id}")

    def get_session(self, session_id: str | None) -> dict[str, Any] | None:
        if not session_id:
            return None
        return self.conversations.get(session_id)


# Global agent instance
intake_agent = None


def get_agent() -> IntakeAgent:
    """Get or create global agent instance."""
    global intake_agent
    if intake_agent is None:
        intake_agent = IntakeAgent()
    return intake_agent
