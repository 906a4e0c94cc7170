"""Tests for LLMPlanner."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import EchoTool, make_step

from replan_agent.config import AgentSettings
from replan_agent.exceptions import PlanGenerationError
from replan_agent.llm.schemas import ChatMessage, LLMResponse, UsageInfo
from replan_agent.loop.planner import LLMPlanner, PlanningContext
from replan_agent.loop.state import Plan, StepStatus
from replan_agent.tools import InterventionTool


def _llm_response(content: str) -> LLMResponse:
    return LLMResponse(
        content=content,
        usage=UsageInfo(input_tokens=100, output_tokens=50, total_tokens=150),
        model="test-model",
    )


@pytest.fixture
def mock_llm_client() -> MagicMock:
    client = MagicMock()
    client.chat_completion = AsyncMock()
    return client


@pytest.fixture
def planner(mock_llm_client: MagicMock, settings: AgentSettings) -> LLMPlanner:
    return LLMPlanner(mock_llm_client, settings=settings)


@pytest.fixture
def context() -> PlanningContext:
    return PlanningContext(
        run_id="r1",
        messages=[
            ChatMessage(role="system", content="ignored"),
            ChatMessage(role="user", content="Plan a weekend in Prague"),
        ],
        iteration=1,
        tools=[EchoTool().describe(), InterventionTool().describe()],
    )


class TestGeneratePlan:
    """Tests for generate_plan."""

    async def test_parses_steps(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        """Test a JSON reply becomes a plan with fresh correlation ids."""
        mock_llm_client.chat_completion.return_value = _llm_response(
            json.dumps(
                {
                    "lookback": "Nothing known yet",
                    "plan": [
                        {"title": "Echo", "tool": "EchoTool", "input": {"text": "hi"}},
                        {
                            "title": "Ask",
                            "tool": "InterventionTool",
                            "input": {"type": "clarification", "message": "A or B?"},
                        },
                    ],
                    "final_answer": None,
                }
            )
        )

        plan = await planner.generate_plan(context)

        assert [step.title for step in plan.steps] == ["Echo", "Ask"]
        assert plan.steps[0].tool_call.input == {"text": "hi"}
        assert plan.steps[0].status == StepStatus.PENDING
        assert plan.steps[0].tool_call.correlation_id != plan.steps[1].tool_call.correlation_id
        assert plan.lookback == "Nothing known yet"
        assert not plan.is_final

    async def test_parses_final_answer_in_markdown_block(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        """Test fenced JSON is accepted."""
        mock_llm_client.chat_completion.return_value = _llm_response(
            '```json\n{"lookback": "done", "plan": [], "final_answer": "Go to Prague"}\n```'
        )

        plan = await planner.generate_plan(context)

        assert plan.is_final
        assert plan.final_answer == "Go to Prague"

    async def test_sends_settings_and_prompts(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        """Test the request carries tools, history and the observation prompt."""
        mock_llm_client.chat_completion.return_value = _llm_response(
            '{"plan": [], "final_answer": "ok"}'
        )

        await planner.generate_plan(context)

        request = mock_llm_client.chat_completion.call_args.args[0]
        assert request.model == "test-model"
        assert request.json_mode is True
        roles = [message.role for message in request.messages]
        assert roles == ["system", "user", "user"]
        assert "EchoTool" in request.messages[0].content
        assert "InterventionTool" in request.messages[0].content
        assert request.messages[1].content == "Plan a weekend in Prague"
        assert "Planning iteration 1" in request.messages[2].content

    async def test_observation_includes_previous_plan(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        """Test step outcomes of the previous plan reach the LLM."""
        previous = Plan(steps=[make_step("EchoTool", "Echo"), make_step("EchoTool", "Broken")])
        previous.steps[0].status = StepStatus.DONE
        previous.steps[0].result = {"echo": "hi"}
        previous.steps[1].status = StepStatus.FAILED
        previous.steps[1].error = "boom"
        context.previous_plan = previous
        context.lookback = "Echoed once"
        context.iteration = 2
        mock_llm_client.chat_completion.return_value = _llm_response(
            '{"plan": [], "final_answer": "ok"}'
        )

        await planner.generate_plan(context)

        observation = mock_llm_client.chat_completion.call_args.args[0].messages[-1].content
        assert "Planning iteration 2" in observation
        assert "Echoed once" in observation
        assert '[done] Echo (EchoTool)' in observation
        assert '{"echo": "hi"}' in observation
        assert "error: boom" in observation

    async def test_unknown_tool_is_rejected(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        mock_llm_client.chat_completion.return_value = _llm_response(
            '{"plan": [{"title": "x", "tool": "WebSearch", "input": {}}]}'
        )

        with pytest.raises(PlanGenerationError, match="Unknown tool"):
            await planner.generate_plan(context)

    async def test_invalid_json(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        mock_llm_client.chat_completion.return_value = _llm_response("I think we should...")

        with pytest.raises(PlanGenerationError, match="Failed to parse"):
            await planner.generate_plan(context)

    async def test_llm_failure(
        self, planner: LLMPlanner, mock_llm_client: MagicMock, context: PlanningContext
    ) -> None:
        mock_llm_client.chat_completion.side_effect = RuntimeError("rate limited")

        with pytest.raises(PlanGenerationError, match="rate limited") as exc_info:
            await planner.generate_plan(context)

        assert isinstance(exc_info.value.cause, RuntimeError)
