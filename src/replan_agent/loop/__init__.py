"""Plan-execute-observe control loop."""

from .state import (
    FailureReport,
    LoopState,
    Plan,
    RunState,
    Step,
    StepStatus,
    ToolCallSpec,
)
from .planner import LLMPlanner, Planner, PlanningContext  # noqa: I001
from .runner import PlanExecuteObserveLoop

__all__ = [
    "FailureReport",
    "LLMPlanner",
    "LoopState",
    "Plan",
    "PlanExecuteObserveLoop",
    "Planner",
    "PlanningContext",
    "RunState",
    "Step",
    "StepStatus",
    "ToolCallSpec",
]
