"""Logging event handler for observability.

Logs all events with structured data for debugging and monitoring.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel

from replan_agent.events.bus import EventBus, Subscription
from replan_agent.events.types import Event, EventType

logger = structlog.get_logger()


class LoggingEventHandler:
    """Logs all events for observability.

    Subscribes to all events (global handler at the root) and logs them
    with appropriate log levels based on event name.
    """

    def __init__(self, log_level: str = "debug") -> None:
        """Initialize logging handler.

        Args:
            log_level: Default log level for events (debug, info, warning)
        """
        self.log_level = log_level

    def attach(self, bus: EventBus) -> Subscription:
        """Subscribe this handler to every event on the bus root."""
        return bus.root().subscribe_all(self.handle)

    async def handle(self, event: Event) -> None:
        """Log the event with structured data.

        Args:
            event: Event to log
        """
        log_data: dict[str, Any] = {
            "event_name": event.name,
            "namespace": ".".join(event.namespace),
            "timestamp": event.timestamp.isoformat(),
        }

        # Add event-specific fields
        log_data.update(self._extract_extra_fields(event))

        level = self._get_log_level(event.name)

        if level == "error":
            logger.error("event_logged", **log_data)
        elif level == "warning":
            logger.warning("event_logged", **log_data)
        elif level == "info":
            logger.info("event_logged", **log_data)
        else:
            logger.debug("event_logged", **log_data)

    def _get_log_level(self, event_name: str) -> str:
        """Determine log level based on event name.

        Args:
            event_name: Name of the event

        Returns:
            Log level string
        """
        if event_name == EventType.TOOL_ERROR:
            return "error"

        if event_name in (EventType.INTERVENTION_CANCELLED, EventType.RUN_CANCELLED):
            return "warning"

        if event_name in (
            EventType.INTERVENTION_REQUESTED,
            EventType.INTERVENTION_COMPLETED,
            EventType.TOOL_SUCCESS,
        ):
            return "info"

        return self.log_level

    def _extract_extra_fields(self, event: Event) -> dict[str, Any]:
        """Extract additional loggable fields from the event payload.

        Args:
            event: Event to extract fields from

        Returns:
            Dictionary of extra fields
        """
        payload = event.payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        if not isinstance(payload, dict):
            return {}

        extra: dict[str, Any] = {}
        for key in ("run_id", "correlation_id", "tool_name", "type", "reason", "state"):
            if (value := payload.get(key)) is not None:
                extra[key] = value
        if (msg := payload.get("message")) is not None:
            # Truncate long messages
            extra["message"] = msg[:200] if len(msg) > 200 else msg
        if (error := payload.get("error")) is not None:
            extra["error"] = error

        return extra
