"""Replan agent.

Autonomous plan-execute-observe agent on a hierarchical event bus, with
human intervention checkpoints correlated by id.
"""

from .agent import AgentRunResult, ReplanAgent
from .events import EventBus, EventType
from .memory import ConversationMemory
from .services import CancellationToken, CorrelationRegistry, InterventionCoordinator

__version__ = "0.1.0"

__all__ = [
    "AgentRunResult",
    "CancellationToken",
    "ConversationMemory",
    "CorrelationRegistry",
    "EventBus",
    "EventType",
    "InterventionCoordinator",
    "ReplanAgent",
    "__version__",
]
