"""Prompt management for planner templates."""

from .keys import ReplanPrompts
from .manager import PromptManager

__all__ = [
    "PromptManager",
    "ReplanPrompts",
]
