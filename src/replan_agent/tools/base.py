"""Tool capability and per-call execution context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from replan_agent.events.bus import EventBus
from replan_agent.events.types import (
    EventType,
    InterventionCancelled,
    InterventionRequest,
    InterventionResponse,
    InterventionType,
)
from replan_agent.exceptions import InterventionTimeoutError
from replan_agent.services.cancellation import CancellationToken
from replan_agent.services.correlation import CorrelationRegistry, new_correlation_id

if TYPE_CHECKING:
    from replan_agent.loop.state import ToolCallSpec

logger = structlog.get_logger()


@dataclass
class ToolRunContext:
    """Everything a tool may touch while it runs.

    Attributes:
        call: The call being executed
        emitter: Bus view scoped to this tool inside the current run
        token: Per-call cancellation token
        registry: Registry for request/response correlation
        intervention_timeout: Optional limit for a single intervention wait
    """

    call: ToolCallSpec
    emitter: EventBus
    token: CancellationToken
    registry: CorrelationRegistry
    intervention_timeout: float | None = None

    async def request_intervention(
        self,
        kind: InterventionType | str,
        message: str,
    ) -> InterventionResponse:
        """Ask the human operator and suspend until they answer.

        Emits ``intervention_requested`` and waits for the matching
        ``intervention_completed``. If the wait is cancelled or times out,
        the request is withdrawn with ``intervention_cancelled`` before the
        error propagates.

        Args:
            kind: validation, correction or clarification
            message: Text shown to the operator

        Returns:
            The operator's response

        Raises:
            CancellationError: If the call or run was cancelled
            InterventionTimeoutError: If the wait exceeded its limit
            InterventionError: If the human channel failed
        """
        request = InterventionRequest(
            correlation_id=new_correlation_id(),
            type=InterventionType(kind),
            message=message,
        )
        future = self.registry.register(request.correlation_id)

        logger.info(
            "intervention_requested",
            tool_name=self.call.tool_name,
            correlation_id=request.correlation_id,
            type=request.type.value,
        )

        try:
            await self.emitter.emit(EventType.INTERVENTION_REQUESTED, request)
            response: InterventionResponse = await self.token.guard(
                future,
                timeout=self.intervention_timeout,
                timeout_error=InterventionTimeoutError(
                    f"No human response within {self.intervention_timeout}s"
                ),
            )
        except BaseException as e:
            self.registry.discard(request.correlation_id)
            if self.token.cancelled:
                reason = self.token.reason or "Cancelled"
            else:
                reason = str(e) or type(e).__name__
            await self.emitter.emit(
                EventType.INTERVENTION_CANCELLED,
                InterventionCancelled(correlation_id=request.correlation_id, reason=reason),
            )
            raise

        return response


class Tool(ABC):
    """Base class for tools the loop can dispatch.

    Subclasses set ``name``, ``description`` and ``input_schema`` and
    implement ``run``. Raising ToolError (or any exception) fails the call.
    """

    name: str
    description: str
    input_schema: type[BaseModel]

    @abstractmethod
    async def run(self, tool_input: Any, context: ToolRunContext) -> Any:
        """Execute the tool.

        Args:
            tool_input: Instance of ``input_schema``
            context: Per-call execution context

        Returns:
            Tool output (any JSON-serializable value)
        """

    def describe(self) -> dict[str, Any]:
        """Describe the tool for planners."""
        return {
            "name": self.name,
            "description": self.description.strip(),
            "input_schema": self.input_schema.model_json_schema(),
        }
