"""
FastAPI application serving the conversational form intake agent.
Provides REST API endpoints for chat and monitoring.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, field_validator

from data.admissions_form import build_custom_fields
from src.circuit_breaker import CircuitBreakerOpenError
from src.config import settings
from src.field_tracker import FIELD_TYPES, FieldTracker
from src.intake_agent import TurnResult, get_agent
from src.llm_client import OracleUnavailableError, llm_client

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Pydantic models for API
class ChatRequest(BaseModel):
    """Request model for the admissions chat endpoint."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_message": "I'm Meera and I'm in 11th grade",
                "existing_data": {"form_filler_type": "Student"},
                "ai_message": "Great! What's your name?",
                "session_id": "session_123",
            }
        }
    )

    user_message: str = Field("", description="What the user just said")
    existing_data: dict[str, Any] | None = Field(
        None, description="Data collected so far; omit to use the session's stored record"
    )
    ai_message: str | None = Field(None, description="The last question shown to the user")
    session_id: str | None = Field(None, description="Optional session for server-side state")
    start: bool = Field(False, description="True for the opening turn")


class FieldSpec(BaseModel):
    """One caller-defined form field."""

    name: str
    datatype: str = "string"
    description: str = ""


class AskRequest(ChatRequest):
    """Chat request that carries its own field definitions."""

    fields: list[FieldSpec] = Field(..., description="Ordered field definitions to collect")

    @field_validator("fields")
    @classmethod
    def validate_fields(cls, fields: list[FieldSpec]) -> list[FieldSpec]:
        named = [f for f in fields if f.name.strip()]
        if not named:
            raise ValueError("At least one named field is required")

        names = [f.name.strip() for f in named]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names: {', '.join(duplicates)}")
        return named


class ChatResponse(BaseModel):
    """Response model for chat endpoints."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ai_message": "Great to meet you, Meera! Which school do you attend?",
                "existing_data": {"form_filler_type": "Student", "student_name": "Meera"},
                "next_field": "current_grade",
                "is_complete": False,
                "missing_fields": ["current_grade", "phone_number"],
                "session_id": "session_123",
            }
        }
    )

    ai_message: str = Field(..., description="Counselor reply to show the user")
    existing_data: dict[str, Any] = Field(..., description="Merged, normalized record")
    next_field: str | None = Field(None, description="Next field to collect, null when done")
    is_complete: bool = Field(..., description="True once every required field is filled")
    missing_fields: list[str] = Field(default_factory=list)
    session_id: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    environment: str
    oracle_circuit_breaker: dict


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting Form Intake API")
    logger.info(f"Environment: {settings.environment}")

    try:
        get_agent()
        logger.info("Agent initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize agent: {e}")

    yield

    logger.info("Shutting down Form Intake API")


# Create FastAPI app
app = FastAPI(
    title="Form Intake API",
    description="Collects form fields through a conversation with an admissions counselor bot",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _to_response(result: TurnResult, session_id: str | None) -> ChatResponse:
    return ChatResponse(
        ai_message=result.ai_message,
        existing_data=result.record,
        next_field=result.next_field,
        is_complete=result.complete,
        missing_fields=result.missing,
        session_id=session_id,
    )


async def _run_turn(request: ChatRequest, tracker: FieldTracker | None = None) -> ChatResponse:
    try:
        logger.info(f"Chat request: session={request.session_id} start={request.start}")

        agent = get_agent()
        result = await agent.chat(
            message=request.user_message,
            existing_data=request.existing_data,
            last_ai_message=request.ai_message,
            session_id=request.session_id,
            start=request.start,
            tracker=tracker,
        )
        return _to_response(result, request.session_id)

    except CircuitBreakerOpenError as e:
        logger.error(f"Oracle circuit open: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The assistant is temporarily unavailable. Please try again shortly.",
        ) from e
    except OracleUnavailableError as e:
        logger.error(f"Oracle unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="I'm having trouble connecting. Please try again.",
        ) from e
    except Exception as e:
        logger.error(f"Error processing chat turn: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred processing your request. Please try again.",
        ) from e


# API Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {"message": "Form Intake API", "version": "1.0.0", "docs": "/docs"}


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Service status plus the oracle circuit breaker state."""
    return HealthResponse(
        status="healthy",
        environment=settings.environment,
        oracle_circuit_breaker=llm_client.get_circuit_breaker_state(),
    )


@app.get("/ready")
def ready():
    return {"status": "ready"}


@app.get("/fields", tags=["Forms"])
async def list_fields():
    """Admissions form definitions in asking order."""
    agent = get_agent()
    return {
        "parent_name_policy": settings.parent_name_policy,
        "datatypes": list(FIELD_TYPES),
        "fields": [f.as_prompt_dict() for f in agent.tracker.fields],
    }


@app.post("/chat", response_model=ChatResponse, tags=["Chat"])
async def chat(request: ChatRequest):
    """
    One turn of the admissions intake conversation.

    Send the user's message and the data collected so far (or a session_id
    to let the server remember it). The response carries the merged record,
    the next field the counselor will ask for, and the completion verdict.

    Example request:
    ```json
    {
        "user_message": "I'm the student, my name is Meera",
        "existing_data": {},
        "session_id": "user123"
    }
    ```

    Example response:
    ```json
    {
        "ai_message": "Lovely to meet you, Meera! Which grade are you in?",
        "existing_data": {"form_filler_type": "Student", "student_name": "Meera", "...": ""},
        "next_field": "current_grade",
        "is_complete": false,
        "missing_fields": ["current_grade", "phone_number", "..."],
        "session_id": "user123"
    }
    ```
    """
    return await _run_turn(request)


@app.post("/ask", response_model=ChatResponse, tags=["Chat"])
async def ask(request: AskRequest):
    """
    One turn against a caller-defined form.

    Every field in ``fields`` is required; they are asked for in list order.
    """
    tracker = FieldTracker(build_custom_fields(f.model_dump() for f in request.fields))
    return await _run_turn(request, tracker=tracker)


@app.post("/reset-conversation/{session_id}", tags=["Chat"])
async def reset_conversation(session_id: str):
    """Forget the stored record for a session."""
    try:
        agent = get_agent()
        agent.reset_conversation(session_id)

        return {"message": f"Conversation reset for session {session_id}", "session_id": session_id}

    except Exception as e:
        logger.error(f"Error resetting conversation: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Error resetting conversation"
        ) from e


@app.get("/metrics", tags=["Monitoring"])
async def metrics():
    """Circuit breaker state and active session count."""
    agent = get_agent()

    return {
        "circuit_breaker": llm_client.get_circuit_breaker_state(),
        "active_conversations": len(agent.conversations),
        "environment": settings.environment,
    }


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8080)),
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
