"""Plan and run state definitions.

The plan is mutated only by the loop. It may be replaced wholesale after an
observation (a replan) but step ordering within a plan is stable.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from replan_agent.services.correlation import new_correlation_id

logger = structlog.get_logger()


class StepStatus(StrEnum):
    """Step lifecycle: pending -> running -> (done | failed)."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ToolCallSpec(BaseModel):
    """A tool invocation requested by a plan step.

    The correlation id is generated once per call and never reused.
    """

    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str = Field(default_factory=new_correlation_id)

    model_config = ConfigDict(frozen=True)


class Step(BaseModel):
    """A single plan step."""

    title: str
    tool_call: ToolCallSpec
    status: StepStatus = StepStatus.PENDING
    result: Any = None
    error: str | None = None


class Plan(BaseModel):
    """Ordered steps the loop executes before its next observation.

    A plan without steps that carries a ``final_answer`` ends the run.
    """

    steps: list[Step] = Field(default_factory=list)
    lookback: str = ""
    final_answer: str | None = None

    @property
    def is_final(self) -> bool:
        return not self.steps and self.final_answer is not None

    def pending_steps(self) -> list[Step]:
        return [step for step in self.steps if step.status == StepStatus.PENDING]

    def snapshot(self) -> list[dict[str, Any]]:
        """Serializable copy of the steps for update events."""
        return [step.model_dump(mode="json") for step in self.steps]


class LoopState(StrEnum):
    """Plan-execute-observe loop states."""

    PLANNING = "planning"
    EXECUTING_STEP = "executing_step"
    AWAITING_INTERVENTION = "awaiting_intervention"
    OBSERVING = "observing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({LoopState.DONE, LoopState.FAILED})


class FailureReport(BaseModel):
    """Structured report of a fatal run error."""

    kind: str
    message: str

    @classmethod
    def from_error(cls, error: BaseException) -> FailureReport:
        message = getattr(error, "message", None) or str(error) or type(error).__name__
        return cls(kind=type(error).__name__, message=message)


class RunState(BaseModel):
    """Explicit state machine value for one agent run.

    Advances synchronously between suspension points. Once terminal, no
    further transitions are accepted.
    """

    run_id: str
    state: LoopState = LoopState.PLANNING
    plan: Plan | None = None
    cursor: int = 0
    iteration: int = 0
    lookback: str = ""
    history: list[LoopState] = Field(default_factory=lambda: [LoopState.PLANNING])
    final_response: str | None = None
    failure: FailureReport | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: LoopState) -> None:
        """Move to a new state.

        Raises:
            RuntimeError: If the run already reached a terminal state
        """
        if self.is_terminal:
            raise RuntimeError(
                f"Run {self.run_id} is {self.state.value}; cannot move to {new_state.value}"
            )
        logger.debug(
            "loop_state_transition",
            run_id=self.run_id,
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)
