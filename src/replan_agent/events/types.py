"""Event type definitions for the event bus.

Events are immutable once emitted. Payloads are the pydantic models
below; external observers rely on their shapes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "EventType",
    "Event",
    "InterventionType",
    "InterventionRequest",
    "InterventionResponse",
    "InterventionCancelled",
    "RunCancelledPayload",
    "UpdatePayload",
    "UpdateReason",
    "ToolStartPayload",
    "ToolSuccessPayload",
    "ToolErrorPayload",
]


class EventType(StrEnum):
    """All event names in the system."""

    # Run state visibility
    UPDATE = "update"

    # Tool lifecycle
    TOOL_START = "tool:start"
    TOOL_SUCCESS = "tool:success"
    TOOL_ERROR = "tool:error"

    # Human-in-the-loop
    INTERVENTION_REQUESTED = "intervention_requested"
    INTERVENTION_COMPLETED = "intervention_completed"
    INTERVENTION_CANCELLED = "intervention_cancelled"

    # Run control
    RUN_CANCELLED = "run:cancelled"


class Event(BaseModel):
    """A single emission on the bus.

    The namespace is the full path of the node the event was emitted on.
    """

    name: str
    namespace: tuple[str, ...] = ()
    payload: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


# =============================================================================
# Intervention Events
# =============================================================================


class InterventionType(StrEnum):
    """Kinds of human-input checkpoints."""

    VALIDATION = "validation"
    CORRECTION = "correction"
    CLARIFICATION = "clarification"


class InterventionRequest(BaseModel):
    """Emitted by a tool that needs human input to continue."""

    correlation_id: str
    type: InterventionType
    message: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True)


class InterventionResponse(BaseModel):
    """Emitted once per request when the human answered.

    ``response`` is the raw text; ``data`` is the per-type normalised form.
    """

    correlation_id: str
    type: InterventionType
    response: str
    data: str | dict[str, str]

    model_config = ConfigDict(frozen=True)


class InterventionCancelled(BaseModel):
    """Emitted when the issuer stopped waiting for a request."""

    correlation_id: str
    reason: str

    model_config = ConfigDict(frozen=True)


class RunCancelledPayload(BaseModel):
    """Emitted on a run namespace when the run's token fires."""

    run_id: str
    reason: str

    model_config = ConfigDict(frozen=True)


# =============================================================================
# Loop Events
# =============================================================================


class UpdateReason(StrEnum):
    """Why an update was emitted."""

    PLAN = "plan"
    STEP = "step"
    FINAL = "final"
    FAILED = "failed"


class UpdatePayload(BaseModel):
    """Plan snapshot and lookback text, the run's state-visibility channel."""

    run_id: str
    reason: UpdateReason
    state: str
    iteration: int
    lookback: str
    plan: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class ToolStartPayload(BaseModel):
    """Emitted before a tool call runs."""

    tool_name: str
    correlation_id: str
    input: dict[str, Any]

    model_config = ConfigDict(frozen=True)


class ToolSuccessPayload(ToolStartPayload):
    """Emitted after a tool call returned."""

    output: Any = None


class ToolErrorPayload(ToolStartPayload):
    """Emitted after a tool call failed."""

    error: str
    error_type: str
