"""Human tool for initial information gathering."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from replan_agent.events.types import InterventionType

from .base import Tool, ToolRunContext


class HumanInput(BaseModel):
    """Input for HumanTool."""

    message: str = Field(min_length=1, description="Question for the user")


class HumanTool(Tool):
    """Gather preferences and constraints before planning begins.

    Goes through the same intervention channel as InterventionTool, always
    as a clarification, so the operator is never prompted twice at once.
    """

    name = "HumanTool"
    description = """
    First point of contact when the agent needs to understand the user's
    preferences, requirements or constraints before it starts planning.
    Keep questions open-ended but specific, and gather just enough to start
    creating options.

    Input: { "message": "<question for the user>" }
    Output: { "clarification": "<user's answer>" }

    Once planning has started, use InterventionTool for refinements and
    choices.
    """
    input_schema = HumanInput

    async def run(self, tool_input: HumanInput, context: ToolRunContext) -> Any:
        response = await context.request_intervention(
            InterventionType.CLARIFICATION, tool_input.message
        )
        return response.data
