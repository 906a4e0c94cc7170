"""Tool invoker.

Wraps tool execution with ``tool:start`` / ``tool:success`` /
``tool:error`` emissions and propagates cancellation into the call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from replan_agent.events.bus import EventBus
from replan_agent.events.types import (
    EventType,
    ToolErrorPayload,
    ToolStartPayload,
    ToolSuccessPayload,
)
from replan_agent.exceptions import (
    CancellationError,
    InterventionTimeoutError,
    ReplanAgentError,
    ToolExecutionError,
    ToolTimeoutError,
)
from replan_agent.services.cancellation import CancellationToken
from replan_agent.services.correlation import CorrelationRegistry

from .base import Tool, ToolRunContext

if TYPE_CHECKING:
    from replan_agent.loop.state import ToolCallSpec

logger = structlog.get_logger()

# Errors that keep their own kind instead of becoming ToolExecutionError
_PASSTHROUGH_ERRORS = (CancellationError, InterventionTimeoutError, ToolTimeoutError)


class ToolInvoker:
    """Dispatches tool calls for the loop.

    Each call gets a child of the run token so a timeout stays scoped to
    that call while run cancellation still reaches it.
    """

    def __init__(
        self,
        registry: CorrelationRegistry,
        tool_timeout: float | None = None,
        intervention_timeout: float | None = None,
    ) -> None:
        """Initialize invoker.

        Args:
            registry: Correlation registry handed to tool contexts
            tool_timeout: Optional limit in seconds for one tool call
            intervention_timeout: Optional limit for one intervention wait
        """
        self.registry = registry
        self.tool_timeout = tool_timeout
        self.intervention_timeout = intervention_timeout

    async def invoke(
        self,
        tool: Tool,
        call: ToolCallSpec,
        emitter: EventBus,
        token: CancellationToken,
    ) -> Any:
        """Run a tool call.

        Args:
            tool: Tool to run
            call: Call specification from the plan step
            emitter: Bus view of the current run
            token: Run cancellation token

        Returns:
            Tool output

        Raises:
            ToolExecutionError: If the tool failed or its input was invalid
            CancellationError: If the call was cancelled
            ToolTimeoutError: If the call exceeded ``tool_timeout``
            InterventionTimeoutError: If an intervention wait timed out
        """
        tool_emitter = emitter.child("tool", tool.name)
        start = ToolStartPayload(
            tool_name=tool.name,
            correlation_id=call.correlation_id,
            input=call.input,
        )

        logger.info("tool_call_start", tool_name=tool.name, correlation_id=call.correlation_id)
        await tool_emitter.emit(EventType.TOOL_START, start)

        call_token = token.child()
        try:
            tool_input = tool.input_schema.model_validate(call.input)
            context = ToolRunContext(
                call=call,
                emitter=tool_emitter,
                token=call_token,
                registry=self.registry,
                intervention_timeout=self.intervention_timeout,
            )
            output = await call_token.guard(
                tool.run(tool_input, context),
                timeout=self.tool_timeout,
                timeout_error=ToolTimeoutError(
                    f"Tool {tool.name} did not finish within {self.tool_timeout}s"
                ),
            )
        except Exception as e:
            error = self._wrap_error(tool, e)
            logger.warning(
                "tool_call_failed",
                tool_name=tool.name,
                correlation_id=call.correlation_id,
                error=error.message,
                error_type=error.kind,
            )
            await tool_emitter.emit(
                EventType.TOOL_ERROR,
                ToolErrorPayload(
                    **start.model_dump(),
                    error=error.message,
                    error_type=error.kind,
                ),
            )
            if error is e:
                raise
            raise error from e

        logger.info("tool_call_success", tool_name=tool.name, correlation_id=call.correlation_id)
        await tool_emitter.emit(
            EventType.TOOL_SUCCESS,
            ToolSuccessPayload(**start.model_dump(), output=output),
        )
        return output

    def _wrap_error(self, tool: Tool, error: Exception) -> ReplanAgentError:
        if isinstance(error, _PASSTHROUGH_ERRORS):
            return error
        if isinstance(error, ValidationError):
            return ToolExecutionError(
                f"Invalid input for {tool.name}: {error.error_count()} validation error(s)",
                tool_name=tool.name,
                cause=error,
            )
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        return ToolExecutionError(message, tool_name=tool.name, cause=error)
