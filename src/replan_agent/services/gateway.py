"""Human input gateways.

A gateway represents the single attention channel of one human operator.
Only the InterventionCoordinator drives it, one prompt at a time.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

import structlog
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from replan_agent.events.types import InterventionType

logger = structlog.get_logger()

PromptCallback = Callable[[str, InterventionType], Awaitable[str] | str]


@runtime_checkable
class HumanInputGateway(Protocol):
    """Interface to the human operator.

    ``prompt`` may block for unbounded time and must stay cancellable by
    cancelling the task awaiting it.
    """

    async def prompt(self, message: str, kind: InterventionType) -> str: ...


class ConsoleHumanGateway:
    """Gateway that asks the operator on the terminal."""

    def __init__(self, console: Console | None = None, label: str = "User 👤 ") -> None:
        """Initialize console gateway.

        Args:
            console: Rich console to write to (defaults to a new console)
            label: Prompt label shown before the answer
        """
        self.console = console or Console()
        self.label = label

    async def prompt(self, message: str, kind: InterventionType) -> str:
        """Show the message and read one line from the operator.

        The blocking read runs in a worker thread. Cancelling the awaiting
        task abandons the read; the thread finishes on the next line typed.
        """
        self.console.print(Panel(message, title=f"Intervention: {kind.value}", expand=False))
        answer = await asyncio.to_thread(Prompt.ask, self.label, console=self.console)
        logger.debug("console_prompt_answered", kind=kind.value, length=len(answer))
        return answer.strip()


class CallbackHumanGateway:
    """Gateway delegating to a sync or async callable.

    Useful for embedding the agent in another UI and for tests.
    """

    def __init__(self, callback: PromptCallback) -> None:
        self._callback = callback

    async def prompt(self, message: str, kind: InterventionType) -> str:
        result = self._callback(message, kind)
        if inspect.isawaitable(result):
            result = await result
        return str(result)
