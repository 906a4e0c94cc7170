"""LLM client layer.

Lightweight LiteLLM wrapper for unified multi-provider LLM access.
"""

from .client import LiteLLMClient
from .schemas import ChatMessage, LLMRequest, LLMResponse, UsageInfo

__all__ = [
    "ChatMessage",
    "LiteLLMClient",
    "LLMRequest",
    "LLMResponse",
    "UsageInfo",
]
