"""
Configuration management using Pydantic Settings.
Reads from environment variables (and a local .env file when present).
"""

from typing import Annotated, Any

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings."""

    model_config = ConfigDict(env_file=".env", case_sensitive=False, populate_by_name=True)

    # LLM Configuration
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    litellm_model: str = Field(default="gemini/gemini-2.0-flash", alias="LITELLM_MODEL")
    llm_timeout_seconds: float = Field(default=30.0, alias="LLM_TIMEOUT_SECONDS")
    llm_max_retries: int = Field(default=1, alias="LLM_MAX_RETRIES")

    # Form rules
    # conditional | always | sentinel
    parent_name_policy: str = Field(default="conditional", alias="PARENT_NAME_POLICY")

    # Session memory controls
    max_sessions: int = Field(default=1000, alias="MAX_SESSIONS")
    session_ttl_seconds: int = Field(default=1800, alias="SESSION_TTL_SECONDS")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    # Comma-separated in the environment, e.g. "http://localhost:5173,https://app.example.com"
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(
        default=["*"], alias="CORS_ALLOW_ORIGINS"
    )

    # Circuit Breaker Configuration
    circuit_breaker_failure_threshold: int = Field(
        default=5, alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_timeout: int = Field(default=60, alias="CIRCUIT_BREAKER_TIMEOUT")

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def split_origins(cls, value: Any) -> Any:
        if isinstance(value, str):
            origins = [origin.strip() for origin in value.split(",") if origin.strip()]
            return origins or ["*"]
        return value


# Global settings instance
settings = Settings()
