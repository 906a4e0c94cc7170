"""Planner completion schemas.

Pydantic models exchanged between the planner and the LiteLLM client.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One conversation turn, also used as the agent's memory entry."""

    role: Literal["system", "user", "assistant"]
    content: str


class LLMRequest(BaseModel):
    """Completion request for one planning iteration."""

    model: str
    messages: list[ChatMessage]
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int | None = None
    api_base: str | None = None
    api_key: str | None = None
    # Maps to response_format={"type": "json_object"}
    json_mode: bool = False


class UsageInfo(BaseModel):
    """Token usage reported for a planning call."""

    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)


class LLMResponse(BaseModel):
    """Completion returned to the planner; ``content`` holds the plan JSON."""

    content: str
    usage: UsageInfo
    model: str
    finish_reason: str | None = None
