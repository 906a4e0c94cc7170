"""Replan agent entry point.

Wires one run of the plan-execute-observe loop into its own namespace on
a shared event bus.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict

from replan_agent.config import AgentSettings, get_agent_settings
from replan_agent.events.bus import EventBus
from replan_agent.llm.schemas import ChatMessage
from replan_agent.loop.planner import Planner
from replan_agent.loop.runner import PlanExecuteObserveLoop
from replan_agent.loop.state import FailureReport, LoopState, Plan, RunState
from replan_agent.memory import ConversationMemory
from replan_agent.services.cancellation import CancellationToken
from replan_agent.services.correlation import CorrelationRegistry
from replan_agent.tools.base import Tool
from replan_agent.tools.invoker import ToolInvoker

logger = structlog.get_logger()

RunObserver = Callable[[EventBus], Awaitable[None] | None]


class AgentRunResult(BaseModel):
    """Terminal outcome of a run."""

    run_id: str
    state: LoopState
    final_response: str | None = None
    plan: Plan | None = None
    iterations: int = 0
    failure: FailureReport | None = None
    memory: ConversationMemory

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def succeeded(self) -> bool:
        return self.state == LoopState.DONE

    @classmethod
    def from_state(cls, state: RunState, memory: ConversationMemory) -> AgentRunResult:
        return cls(
            run_id=state.run_id,
            state=state.state,
            final_response=state.final_response,
            plan=state.plan,
            iterations=state.iteration,
            failure=state.failure,
            memory=memory,
        )


class ReplanAgent:
    """Autonomous planning agent with human intervention checkpoints.

    Several runs may share one bus; each run lives under
    ``("run", <run_id>)`` so root-level handlers see every run while
    observers of one run only see that run.

    Example:
        >>> agent = ReplanAgent(bus, planner, [InterventionTool()], registry=registry)
        >>> result = await agent.run("Plan a weekend in Prague", observe=render)
    """

    def __init__(
        self,
        bus: EventBus,
        planner: Planner,
        tools: Iterable[Tool],
        settings: AgentSettings | None = None,
        registry: CorrelationRegistry | None = None,
    ) -> None:
        """Initialize agent.

        Args:
            bus: Event bus shared with the intervention coordinator
            planner: Plan generation collaborator
            tools: Tools the planner may use
            settings: Agent settings (defaults to cached settings)
            registry: Correlation registry; a new one attached to the bus
                is created when omitted
        """
        self.bus = bus
        self.planner = planner
        self.tools: dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self.tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self.tools[tool.name] = tool
        self.settings = settings or get_agent_settings()
        if registry is None:
            registry = CorrelationRegistry()
            registry.attach(bus)
        self.registry = registry
        self.invoker = ToolInvoker(
            registry,
            tool_timeout=self.settings.tool_timeout_seconds,
            intervention_timeout=self.settings.intervention_timeout_seconds,
        )

    async def run(
        self,
        prompt: str | None = None,
        *,
        memory: ConversationMemory | None = None,
        token: CancellationToken | None = None,
        observe: RunObserver | None = None,
    ) -> AgentRunResult:
        """Run the agent until it produces a final response or fails.

        Args:
            prompt: New user prompt. May be omitted when ``memory`` already
                ends with the user's message.
            memory: Conversation history to resume from (not mutated)
            token: Cancellation token for the run
            observe: Called with the run's bus view before the loop starts,
                to subscribe to ``update``, ``tool:*`` and intervention events.
                Subscriptions on the run's namespace are released when the
                run ends.

        Returns:
            Run result; fatal errors, including a missing user prompt, are
            reported in ``failure``
        """
        run_id = uuid4().hex
        run_memory = memory.copy() if memory is not None else ConversationMemory()
        if prompt is not None:
            run_memory.add(ChatMessage(role="user", content=prompt))
        elif run_memory.last_user_message() is None:
            logger.warning("agent_run_rejected", run_id=run_id, reason="no_user_prompt")
            return AgentRunResult(
                run_id=run_id,
                state=LoopState.FAILED,
                failure=FailureReport(
                    kind="ValueError",
                    message="A prompt is required unless memory ends with a user message",
                ),
                memory=run_memory,
            )

        token = token or CancellationToken()
        emitter = self.bus.child("run", run_id)

        structlog.contextvars.bind_contextvars(run_id=run_id)
        try:
            if observe is not None:
                result = observe(emitter)
                if inspect.isawaitable(result):
                    await result

            loop = PlanExecuteObserveLoop(
                run_id=run_id,
                emitter=emitter,
                planner=self.planner,
                invoker=self.invoker,
                tools=self.tools,
                memory=run_memory,
                token=token,
                max_iterations=self.settings.max_iterations,
            )
            logger.info("agent_run_started", tools=sorted(self.tools))
            try:
                state = await loop.run()
            except Exception as e:
                logger.exception("agent_run_crashed", error=str(e))
                state = loop.state
                if not state.is_terminal:
                    state.failure = FailureReport.from_error(e)
                    state.transition(LoopState.FAILED)

            logger.info(
                "agent_run_finished",
                state=state.state.value,
                failure_kind=state.failure.kind if state.failure else None,
            )
            return AgentRunResult.from_state(state, run_memory)
        finally:
            emitter.clear()
            structlog.contextvars.unbind_contextvars("run_id")

