"""Unconstrained conversation memory.

Holds the chat history a run starts from. Runs work on a copy, so a
memory can be reused to resume or fork a conversation.
"""

from __future__ import annotations

from collections.abc import Iterable

from replan_agent.llm.schemas import ChatMessage


class ConversationMemory:
    """Ordered list of chat messages without size limits."""

    def __init__(self, messages: Iterable[ChatMessage] | None = None) -> None:
        self._messages: list[ChatMessage] = list(messages or [])

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def add(self, message: ChatMessage) -> None:
        self._messages.append(message)

    def add_many(self, messages: Iterable[ChatMessage]) -> None:
        self._messages.extend(messages)

    def last_user_message(self) -> ChatMessage | None:
        """Get the most recent message if it came from the user."""
        if self._messages and self._messages[-1].role == "user":
            return self._messages[-1]
        return None

    def copy(self) -> ConversationMemory:
        return ConversationMemory(message.model_copy() for message in self._messages)
