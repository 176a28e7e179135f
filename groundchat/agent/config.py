"""Model adapter configuration with environment variable loading.

Pydantic-based configuration for the Gemini streaming adapter.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from groundchat.models.schemas import ModelType

# Load environment variables from .env file
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_api_key() -> str:
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY", "")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


class AgentConfig(BaseModel):
    """Configuration for the Gemini model adapter.

    Attributes:
        api_key: Gemini API key.
        model_name: Default model used when a request names none.
        temperature: Sampling temperature (0.0 = deterministic, 2.0 = creative).
        enable_grounded_search: Attach the Google Search tool so responses
            carry grounding sources.
        stream_timeout: Seconds to wait for each stream event before failing.

    Defaults read from the environment are validated like explicit values,
    so a bad LLM_MODEL or STREAM_TIMEOUT raises ValidationError.
    """

    model_config = ConfigDict(validate_default=True)

    api_key: str = Field(
        default_factory=_env_api_key,
        description="API key for the Gemini API",
    )
    model_name: ModelType = Field(
        default_factory=lambda: os.getenv("LLM_MODEL", ModelType.FLASH.value),
        description="Default model",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for response generation",
    )
    enable_grounded_search: bool = Field(
        default_factory=lambda: _env_flag("GROUNDED_SEARCH", True),
        description="Ground responses with Google Search",
    )
    stream_timeout: float = Field(
        default_factory=lambda: os.getenv("STREAM_TIMEOUT", "60"),
        gt=0.0,
        description="Per-event stream timeout in seconds",
    )

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: str) -> str:
        """Validate that API key is provided and non-empty."""
        if not v or not v.strip():
            raise ValueError("API key required. Set GEMINI_API_KEY in .env")
        return v.strip()

    @field_validator("model_name", "stream_timeout", mode="before")
    @classmethod
    def strip_env_text(cls, v: object) -> object:
        """Trim whitespace that often trails values in .env files."""
        return v.strip() if isinstance(v, str) else v


def get_agent_config() -> AgentConfig:
    """Create adapter configuration from environment.

    Returns:
        Configured AgentConfig instance.

    Raises:
        ValueError: If no API key is set.
    """
    return AgentConfig()
