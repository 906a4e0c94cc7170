"""Tools the plan-execute-observe loop can dispatch."""

from .base import Tool, ToolRunContext
from .human import HumanInput, HumanTool
from .intervention import InterventionInput, InterventionTool
from .invoker import ToolInvoker

__all__ = [
    "HumanInput",
    "HumanTool",
    "InterventionInput",
    "InterventionTool",
    "Tool",
    "ToolInvoker",
    "ToolRunContext",
]
