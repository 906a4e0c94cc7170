"""Agent configuration settings.

Provides settings for the planner backend, loop limits and logging.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentSettings(BaseSettings):
    """Settings for agent runs, read from ``REPLAN_*`` variables."""

    # Planner backend
    model: str = Field(
        default="gpt-4o-mini",
        description="LiteLLM model name used by the planner",
    )
    temperature: float = Field(default=0.3, ge=0.0, le=2.0, description="Planner temperature")
    api_base: str | None = Field(default=None, description="Optional custom API base URL")
    api_key: str | None = Field(default=None, description="Optional explicit API key")
    json_mode: bool = Field(
        default=True,
        description="Request a JSON object response (disable for models without support)",
    )

    # Loop limits
    max_iterations: int = Field(
        default=10,
        ge=1,
        description="Maximum number of plans per run before it fails",
    )
    tool_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Limit for a single tool call (None waits indefinitely)",
    )
    intervention_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Limit for a single human response (None waits indefinitely)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    model_config = SettingsConfigDict(
        env_prefix="REPLAN_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_agent_settings() -> AgentSettings:
    """Get cached agent settings."""
    return AgentSettings()
