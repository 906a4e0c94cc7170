"""Plan-execute-observe loop.

Drives a run through PLANNING -> EXECUTING_STEP -> (AWAITING_INTERVENTION)*
-> OBSERVING -> (PLANNING | DONE | FAILED). Steps run strictly one at a
time; tool calls and intervention round-trips are the only places the loop
suspends.
"""

from __future__ import annotations

import json
from collections.abc import Mapping

import structlog

from replan_agent.events.bus import EventBus
from replan_agent.events.types import (
    Event,
    EventType,
    RunCancelledPayload,
    ToolErrorPayload,
    UpdatePayload,
    UpdateReason,
)
from replan_agent.exceptions import (
    CancellationError,
    MaxIterationsExceededError,
    PlanGenerationError,
    ReplanAgentError,
    ToolExecutionError,
)
from replan_agent.llm.schemas import ChatMessage
from replan_agent.memory import ConversationMemory
from replan_agent.services.cancellation import CancellationToken
from replan_agent.tools.base import Tool
from replan_agent.tools.invoker import ToolInvoker

from .planner import Planner, PlanningContext
from .state import FailureReport, LoopState, Plan, RunState, Step, StepStatus

logger = structlog.get_logger()

_MAX_RESULT_CHARS = 500


class PlanExecuteObserveLoop:
    """State machine for a single agent run.

    The loop owns the run's plan. External observers follow it through
    ``update`` events on the run namespace; there is no polling API.
    """

    def __init__(
        self,
        run_id: str,
        emitter: EventBus,
        planner: Planner,
        invoker: ToolInvoker,
        tools: Mapping[str, Tool],
        memory: ConversationMemory,
        token: CancellationToken,
        max_iterations: int = 10,
    ) -> None:
        """Initialize loop.

        Args:
            run_id: Id of the run
            emitter: Bus view scoped to the run namespace
            planner: Plan generation collaborator
            invoker: Tool invoker
            tools: Available tools by name
            memory: Conversation memory of the run (mutated on completion)
            token: Run cancellation token
            max_iterations: Maximum number of plans before the run fails
        """
        self.emitter = emitter
        self.planner = planner
        self.invoker = invoker
        self.tools = dict(tools)
        self.memory = memory
        self.token = token
        self.max_iterations = max_iterations
        self.state = RunState(run_id=run_id)

    @property
    def run_id(self) -> str:
        return self.state.run_id

    async def run(self) -> RunState:
        """Drive the run until it reaches DONE or FAILED.

        Returns:
            Final run state. Fatal errors are recorded in ``failure``.
        """
        logger.info("loop_started", run_id=self.run_id, tool_count=len(self.tools))
        subscription = self.emitter.subscribe(
            EventType.INTERVENTION_REQUESTED, self._on_intervention_requested
        )
        try:
            while not self.state.is_terminal:
                if self.token.cancelled:
                    await self._cancel()
                    break
                try:
                    await self._advance()
                except CancellationError:
                    await self._cancel()
                except ReplanAgentError as e:
                    await self._fail(e)
        finally:
            subscription.unsubscribe()

        logger.info(
            "loop_finished",
            run_id=self.run_id,
            state=self.state.state.value,
            iterations=self.state.iteration,
        )
        return self.state

    async def _advance(self) -> None:
        current = self.state.state
        if current == LoopState.PLANNING:
            await self._plan()
        elif current in (LoopState.EXECUTING_STEP, LoopState.AWAITING_INTERVENTION):
            await self._execute_step()
        elif current == LoopState.OBSERVING:
            await self._observe()

    # =========================================================================
    # Phases
    # =========================================================================

    async def _plan(self) -> None:
        self.state.iteration += 1
        context = PlanningContext(
            run_id=self.run_id,
            messages=self.memory.messages,
            iteration=self.state.iteration,
            lookback=self.state.lookback,
            previous_plan=self.state.plan,
            tools=[tool.describe() for tool in self.tools.values()],
        )

        try:
            plan = await self.token.guard(self.planner.generate_plan(context))
        except (CancellationError, PlanGenerationError):
            raise
        except Exception as e:
            raise PlanGenerationError(f"Planner failed: {e}", cause=e) from e

        self.token.raise_if_cancelled()
        self.state.plan = plan
        self.state.cursor = 0
        if plan.lookback:
            self.state.lookback = plan.lookback

        if plan.is_final:
            self.state.final_response = plan.final_answer
            self.memory.add(ChatMessage(role="assistant", content=plan.final_answer or ""))
            self.state.transition(LoopState.DONE)
            await self._emit_update(UpdateReason.FINAL)
            return

        if not plan.steps:
            raise PlanGenerationError("Planner returned neither steps nor a final answer")

        logger.info(
            "plan_replaced",
            run_id=self.run_id,
            iteration=self.state.iteration,
            step_count=len(plan.steps),
        )
        self.state.transition(LoopState.EXECUTING_STEP)
        await self._emit_update(UpdateReason.PLAN)

    async def _execute_step(self) -> None:
        plan = self._require_plan()
        if self.state.cursor >= len(plan.steps):
            self.state.transition(LoopState.OBSERVING)
            return

        step = plan.steps[self.state.cursor]
        step.status = StepStatus.RUNNING
        logger.info(
            "step_started",
            run_id=self.run_id,
            cursor=self.state.cursor,
            title=step.title,
            tool_name=step.tool_call.tool_name,
        )

        try:
            result = await self._dispatch(step)
        except CancellationError as e:
            step.status = StepStatus.FAILED
            step.error = e.message
            if self.token.cancelled:
                raise
            await self._finish_failed_step(step, e)
            return
        except ReplanAgentError as e:
            await self._finish_failed_step(step, e)
            return

        self._leave_intervention()
        step.status = StepStatus.DONE
        step.result = result
        self.state.cursor += 1
        logger.info("step_completed", run_id=self.run_id, title=step.title)
        await self._emit_update(UpdateReason.STEP)

    async def _dispatch(self, step: Step) -> object:
        call = step.tool_call
        tool = self.tools.get(call.tool_name)
        if tool is not None:
            return await self.invoker.invoke(tool, call, self.emitter, self.token)

        error = ToolExecutionError(f"Unknown tool: {call.tool_name}", tool_name=call.tool_name)
        await self.emitter.emit(
            EventType.TOOL_ERROR,
            ToolErrorPayload(
                tool_name=call.tool_name,
                correlation_id=call.correlation_id,
                input=call.input,
                error=error.message,
                error_type=error.kind,
            ),
            namespace=("tool", call.tool_name),
        )
        raise error

    async def _finish_failed_step(self, step: Step, error: ReplanAgentError) -> None:
        """A failed step ends the current plan and forces an early observation."""
        self._leave_intervention()
        step.status = StepStatus.FAILED
        step.error = error.message
        logger.warning(
            "step_failed",
            run_id=self.run_id,
            title=step.title,
            error=error.message,
            error_type=error.kind,
        )
        await self._emit_update(UpdateReason.STEP)
        self.state.transition(LoopState.OBSERVING)

    async def _observe(self) -> None:
        plan = self._require_plan()
        self.state.lookback = self._synthesize_lookback(plan)
        logger.info(
            "plan_observed",
            run_id=self.run_id,
            iteration=self.state.iteration,
            done=sum(1 for s in plan.steps if s.status == StepStatus.DONE),
            failed=sum(1 for s in plan.steps if s.status == StepStatus.FAILED),
        )
        if self.state.iteration >= self.max_iterations:
            raise MaxIterationsExceededError(self.max_iterations)
        self.state.transition(LoopState.PLANNING)

    # =========================================================================
    # Terminal transitions
    # =========================================================================

    async def _cancel(self) -> None:
        if self.state.is_terminal:
            return
        reason = self.token.reason or "Cancelled"
        logger.warning("run_cancelled", run_id=self.run_id, reason=reason)
        await self.emitter.emit(
            EventType.RUN_CANCELLED,
            RunCancelledPayload(run_id=self.run_id, reason=reason),
        )
        await self._fail(CancellationError(reason))

    async def _fail(self, error: ReplanAgentError) -> None:
        if self.state.is_terminal:
            return
        plan = self.state.plan
        if plan is not None:
            for step in plan.steps:
                if step.status == StepStatus.RUNNING:
                    step.status = StepStatus.FAILED
                    step.error = step.error or error.message
        self.state.failure = FailureReport.from_error(error)
        self.state.transition(LoopState.FAILED)
        logger.error(
            "run_failed",
            run_id=self.run_id,
            error=error.message,
            error_type=error.kind,
        )
        await self._emit_update(UpdateReason.FAILED)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _on_intervention_requested(self, event: Event) -> None:
        if self.state.state == LoopState.EXECUTING_STEP:
            self.state.transition(LoopState.AWAITING_INTERVENTION)

    def _leave_intervention(self) -> None:
        if self.state.state == LoopState.AWAITING_INTERVENTION:
            self.state.transition(LoopState.EXECUTING_STEP)

    def _require_plan(self) -> Plan:
        if self.state.plan is None:
            raise PlanGenerationError("No plan available")
        return self.state.plan

    async def _emit_update(self, reason: UpdateReason) -> None:
        plan = self.state.plan
        await self.emitter.emit(
            EventType.UPDATE,
            UpdatePayload(
                run_id=self.run_id,
                reason=reason,
                state=self.state.state.value,
                iteration=self.state.iteration,
                lookback=self.state.lookback,
                plan=plan.snapshot() if plan is not None else [],
            ),
        )

    @staticmethod
    def _synthesize_lookback(plan: Plan) -> str:
        """Summarize what happened in a plan and what is now known."""
        lines = [plan.lookback] if plan.lookback else []
        for step in plan.steps:
            if step.status == StepStatus.DONE:
                result = json.dumps(step.result, default=str)
                if len(result) > _MAX_RESULT_CHARS:
                    result = result[:_MAX_RESULT_CHARS] + "..."
                lines.append(f"- Done: {step.title} -> {result}")
            elif step.status == StepStatus.FAILED:
                lines.append(f"- Failed: {step.title}: {step.error}")
            else:
                lines.append(f"- Skipped: {step.title}")
        return "\n".join(lines)
