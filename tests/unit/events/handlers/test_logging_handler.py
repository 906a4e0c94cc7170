"""Tests for Logging event handler."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from replan_agent.events.bus import EventBus
from replan_agent.events.handlers.logging_handler import LoggingEventHandler
from replan_agent.events.types import (
    Event,
    EventType,
    InterventionRequest,
    InterventionType,
    ToolErrorPayload,
)


@pytest.fixture
def handler() -> LoggingEventHandler:
    """Create a LoggingEventHandler."""
    return LoggingEventHandler()


class TestLogLevelDetermination:
    """Tests for _get_log_level method."""

    def test_error_level_for_tool_error(self, handler: LoggingEventHandler) -> None:
        """Test that TOOL_ERROR uses error level."""
        assert handler._get_log_level(EventType.TOOL_ERROR) == "error"

    @pytest.mark.parametrize(
        "event_name", [EventType.INTERVENTION_CANCELLED, EventType.RUN_CANCELLED]
    )
    def test_warning_level_for_cancellations(
        self, handler: LoggingEventHandler, event_name: EventType
    ) -> None:
        """Test that cancellations use warning level."""
        assert handler._get_log_level(event_name) == "warning"

    @pytest.mark.parametrize(
        "event_name",
        [
            EventType.INTERVENTION_REQUESTED,
            EventType.INTERVENTION_COMPLETED,
            EventType.TOOL_SUCCESS,
        ],
    )
    def test_info_level_for_interventions_and_completions(
        self, handler: LoggingEventHandler, event_name: EventType
    ) -> None:
        """Test that interventions and completions use info level."""
        assert handler._get_log_level(event_name) == "info"

    def test_default_level_for_other_events(self) -> None:
        """Test that other events use the configured default."""
        assert LoggingEventHandler()._get_log_level(EventType.UPDATE) == "debug"
        assert LoggingEventHandler(log_level="info")._get_log_level(EventType.UPDATE) == "info"


class TestExtractExtraFields:
    """Tests for _extract_extra_fields method."""

    def test_extracts_model_fields(self, handler: LoggingEventHandler) -> None:
        """Test fields are taken from pydantic payloads."""
        event = Event(
            name=EventType.TOOL_ERROR,
            payload=ToolErrorPayload(
                tool_name="EchoTool",
                correlation_id="c1",
                input={},
                error="boom",
                error_type="ToolExecutionError",
            ),
        )

        extra = handler._extract_extra_fields(event)

        assert extra == {"correlation_id": "c1", "tool_name": "EchoTool", "error": "boom"}

    def test_truncates_long_messages(self, handler: LoggingEventHandler) -> None:
        """Test that long intervention messages are truncated."""
        event = Event(
            name=EventType.INTERVENTION_REQUESTED,
            payload=InterventionRequest(
                correlation_id="c1",
                type=InterventionType.VALIDATION,
                message="x" * 500,
            ),
        )

        extra = handler._extract_extra_fields(event)

        assert len(extra["message"]) == 200
        assert extra["type"] == "validation"

    def test_non_mapping_payload_has_no_extra_fields(self, handler: LoggingEventHandler) -> None:
        """Test plain payloads are ignored."""
        assert handler._extract_extra_fields(Event(name="custom", payload="text")) == {}


class TestHandle:
    """Tests for handle and attach."""

    @patch("replan_agent.events.handlers.logging_handler.logger")
    async def test_uses_error_level_for_tool_errors(
        self, mock_logger, handler: LoggingEventHandler
    ) -> None:
        """Test tool errors are logged at error level."""
        await handler.handle(Event(name=EventType.TOOL_ERROR, namespace=("run", "r1")))

        mock_logger.error.assert_called_once()
        kwargs = mock_logger.error.call_args.kwargs
        assert kwargs["event_name"] == "tool:error"
        assert kwargs["namespace"] == "run.r1"

    @patch("replan_agent.events.handlers.logging_handler.logger")
    async def test_attach_logs_events_from_any_namespace(
        self, mock_logger, bus: EventBus, handler: LoggingEventHandler
    ) -> None:
        """Test attach subscribes at the root."""
        handler.attach(bus.child("run", "r1"))

        await bus.child("run", "r2", "tool", "EchoTool").emit(EventType.UPDATE)

        mock_logger.debug.assert_called_once()
        assert mock_logger.debug.call_args.args == ("event_logged",)
