"""Intervention tool.

Creates decision hooks after planning has started, where the operator
validates, corrects or clarifies the plan.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from replan_agent.events.types import InterventionType

from .base import Tool, ToolRunContext


class InterventionInput(BaseModel):
    """Input for InterventionTool."""

    type: InterventionType = Field(description="validation, correction or clarification")
    message: str = Field(min_length=1, description="Message shown to the user")


class InterventionTool(Tool):
    """Ask the operator to validate, correct or clarify part of the plan."""

    name = "InterventionTool"
    description = """
    Enables collaborative decision-making and plan refinement after initial
    information gathering. Use it to present options for the user to choose
    between, to confirm that a proposed plan matches their preferences, or
    to adjust a plan based on their feedback.

    Intervention types:
    - "clarification": refine specific aspects of proposed options
    - "validation": confirm a plan or assumption with the user
    - "correction": adjust a plan element based on user feedback

    Input: { "type": "<intervention type>", "message": "<text for the user>" }
    Output: the user's response. Validation answers are returned as trimmed text;
    corrections and clarifications as { "<type>": "<answer>" }.

    Use HumanTool instead for the first round of information gathering.
    """
    input_schema = InterventionInput

    async def run(self, tool_input: InterventionInput, context: ToolRunContext) -> Any:
        response = await context.request_intervention(tool_input.type, tool_input.message)
        return response.data
