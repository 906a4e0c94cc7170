"""Event-driven coordination for agent runs.

This module provides a hierarchical EventBus. Loops and tools emit events
on their own namespaces; root-level handlers observe all of them.
"""

from .bus import EventBus, EventHandler, Subscription, SubscriptionMode
from .types import (
    Event,
    EventType,
    InterventionCancelled,
    InterventionRequest,
    InterventionResponse,
    InterventionType,
    RunCancelledPayload,
    ToolErrorPayload,
    ToolStartPayload,
    ToolSuccessPayload,
    UpdatePayload,
    UpdateReason,
)

__all__ = [
    # Bus
    "EventBus",
    "EventHandler",
    "Subscription",
    "SubscriptionMode",
    # Types
    "Event",
    "EventType",
    "InterventionCancelled",
    "InterventionRequest",
    "InterventionResponse",
    "InterventionType",
    "RunCancelledPayload",
    "ToolErrorPayload",
    "ToolStartPayload",
    "ToolSuccessPayload",
    "UpdatePayload",
    "UpdateReason",
]
