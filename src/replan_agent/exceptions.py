"""Custom exceptions for agent runs.

Errors local to one step or one handler are contained at that boundary;
only plan generation failures and cancellation are fatal to a run.
"""

from __future__ import annotations


class ReplanAgentError(Exception):
    """Base exception for agent operations.

    Attributes:
        message: Error description
        cause: Original exception that caused this error
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        """Initialize agent error.

        Args:
            message: Error description
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def kind(self) -> str:
        """Error kind reported in failure reports."""
        return type(self).__name__


class ToolError(ReplanAgentError):
    """Raised by a tool implementation when its run fails."""

    pass


class ToolExecutionError(ReplanAgentError):
    """A dispatched tool call failed.

    Reported via ``tool:error`` and marks the issuing step failed.
    """

    def __init__(
        self,
        message: str,
        tool_name: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.tool_name = tool_name


class CancellationError(ReplanAgentError):
    """A suspended call was cancelled before it settled."""

    pass


class InterventionTimeoutError(ReplanAgentError):
    """An intervention wait exceeded its configured duration."""

    pass


class ToolTimeoutError(ReplanAgentError):
    """A tool call exceeded its configured duration."""

    pass


class InterventionError(ReplanAgentError):
    """The human input channel failed to produce a response."""

    pass


class HandlerError(ReplanAgentError):
    """An event subscriber raised while handling an event.

    Never propagated to the emitter; delivered to the bus error sink.
    """

    def __init__(
        self,
        message: str,
        event_name: str,
        namespace: tuple[str, ...],
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, cause)
        self.event_name = event_name
        self.namespace = namespace


class PlanGenerationError(ReplanAgentError):
    """The planning collaborator failed. Fatal to the run."""

    pass


class MaxIterationsExceededError(ReplanAgentError):
    """The loop replanned more times than allowed."""

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Maximum plan iterations exceeded ({max_iterations})")
        self.max_iterations = max_iterations
