"""Plan generation.

The loop treats planning as an opaque, possibly slow, possibly failing
call. ``LLMPlanner`` is the LiteLLM-backed implementation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import ValidationError

from replan_agent.config import AgentSettings, get_agent_settings
from replan_agent.exceptions import PlanGenerationError
from replan_agent.llm import ChatMessage, LiteLLMClient, LLMRequest
from replan_agent.prompts import PromptManager, ReplanPrompts

from .state import Plan, Step, ToolCallSpec

logger = structlog.get_logger()


@dataclass
class PlanningContext:
    """Input for one planning call.

    Attributes:
        run_id: Id of the run asking for a plan
        messages: Conversation history, ending with the user's request
        iteration: 1-based planning iteration
        lookback: Summary synthesized by the last observation
        previous_plan: Plan executed before this call, if any
        tools: Tool descriptions (see ``Tool.describe``)
    """

    run_id: str
    messages: list[ChatMessage]
    iteration: int
    lookback: str = ""
    previous_plan: Plan | None = None
    tools: list[dict[str, Any]] = field(default_factory=list)

    @property
    def tool_names(self) -> set[str]:
        return {tool["name"] for tool in self.tools}


@runtime_checkable
class Planner(Protocol):
    """Produces the next plan for a run."""

    async def generate_plan(self, context: PlanningContext) -> Plan: ...


class LLMPlanner:
    """Planner asking an LLM for the next plan as JSON."""

    def __init__(
        self,
        llm_client: LiteLLMClient,
        settings: AgentSettings | None = None,
        prompt_manager: PromptManager | None = None,
    ) -> None:
        """Initialize LLM planner.

        Args:
            llm_client: LLM client for API calls
            settings: Agent settings (defaults to cached settings)
            prompt_manager: Optional prompt manager (defaults to new instance)
        """
        self.llm_client = llm_client
        self.settings = settings or get_agent_settings()
        self.prompt_manager = prompt_manager or PromptManager()

    async def generate_plan(self, context: PlanningContext) -> Plan:
        """Ask the LLM for the next plan.

        Args:
            context: Planning context

        Returns:
            Parsed plan with fresh correlation ids

        Raises:
            PlanGenerationError: If the call fails or the reply is invalid
        """
        logger.info(
            "planner_request_start",
            run_id=context.run_id,
            iteration=context.iteration,
            message_count=len(context.messages),
        )

        try:
            request = LLMRequest(
                model=self.settings.model,
                messages=self._build_messages(context),
                temperature=self.settings.temperature,
                api_base=self.settings.api_base,
                api_key=self.settings.api_key,
                json_mode=self.settings.json_mode,
            )
            response = await self.llm_client.chat_completion(request)
        except Exception as e:
            logger.error("planner_request_failed", run_id=context.run_id, error=str(e))
            raise PlanGenerationError(f"Planner call failed: {e}", cause=e) from e

        try:
            plan = self._parse_plan(response.content, context.tool_names)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, ValidationError) as e:
            logger.error(
                "planner_parse_failed",
                run_id=context.run_id,
                error=str(e),
                response=response.content[:500],
            )
            raise PlanGenerationError(f"Failed to parse planner response: {e}", cause=e) from e

        logger.info(
            "planner_request_complete",
            run_id=context.run_id,
            step_count=len(plan.steps),
            final=plan.is_final,
            total_tokens=response.usage.total_tokens,
        )
        return plan

    def _build_messages(self, context: PlanningContext) -> list[ChatMessage]:
        tools = [
            {**tool, "input_schema_json": json.dumps(tool.get("input_schema", {}))}
            for tool in context.tools
        ]
        system_prompt = self.prompt_manager.render(
            "replan",
            ReplanPrompts.SYSTEM_PROMPT,
            tools=tools,
        )

        steps = []
        if context.previous_plan is not None:
            for step in context.previous_plan.snapshot():
                steps.append({**step, "result_json": json.dumps(step["result"])})

        observation = self.prompt_manager.render(
            "replan",
            ReplanPrompts.OBSERVATION_PROMPT,
            iteration=context.iteration,
            lookback=context.lookback,
            steps=steps,
        )

        history = [msg for msg in context.messages if msg.role != "system"]
        return [
            ChatMessage(role="system", content=system_prompt),
            *history,
            ChatMessage(role="user", content=observation),
        ]

    def _parse_plan(self, response_content: str, tool_names: set[str]) -> Plan:
        """Parse LLM response into a plan.

        Raises:
            json.JSONDecodeError: If response is not valid JSON
            KeyError: If required fields are missing
            ValueError: If a step names an unknown tool
        """
        # Handle markdown code blocks
        content = response_content.strip()
        if content.startswith("```json"):
            content = content[7:]
        if content.startswith("```"):
            content = content[3:]
        if content.endswith("```"):
            content = content[:-3]
        content = content.strip()

        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("Planner response must be a JSON object")

        steps = []
        for raw in data.get("plan") or []:
            tool_name = raw["tool"]
            if tool_names and tool_name not in tool_names:
                raise ValueError(f"Unknown tool in plan: {tool_name}")
            steps.append(
                Step(
                    title=raw["title"],
                    tool_call=ToolCallSpec(tool_name=tool_name, input=raw.get("input") or {}),
                )
            )

        final_answer = data.get("final_answer")
        return Plan(
            steps=steps,
            lookback=str(data.get("lookback") or ""),
            final_answer=None if final_answer is None else str(final_answer),
        )
