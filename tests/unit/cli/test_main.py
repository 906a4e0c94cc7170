"""Tests for the command line interface."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from replan_agent.cli import main as cli
from replan_agent.events.types import (
    Event,
    EventType,
    InterventionResponse,
    InterventionType,
    ToolErrorPayload,
    UpdatePayload,
    UpdateReason,
)

runner = CliRunner()


@pytest.fixture
def recording_console():
    console = Console(record=True, width=120)
    with patch.object(cli, "console", console):
        yield console


class TestCommands:
    """Tests for CLI commands."""

    def test_run_passes_options(self) -> None:
        with patch.object(cli, "_run", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(
                cli.app, ["run", "Plan a weekend", "--model", "gpt-4o", "--max-iterations", "3"]
            )

        assert result.exit_code == 0
        mock_run.assert_awaited_once_with("Plan a weekend", "gpt-4o", 3)

    def test_run_without_prompt_is_interactive(self) -> None:
        with patch.object(cli, "_run", new_callable=AsyncMock) as mock_run:
            result = runner.invoke(cli.app, ["run"])

        assert result.exit_code == 0
        mock_run.assert_awaited_once_with(None, None, None)

    def test_status(self) -> None:
        result = runner.invoke(cli.app, ["status"])

        assert result.exit_code == 0
        assert "Max iterations" in result.output


class TestRenderEvent:
    """Tests for console rendering of run events."""

    def test_update(self, recording_console: Console) -> None:
        cli._render_event(
            Event(
                name=EventType.UPDATE,
                payload=UpdatePayload(
                    run_id="r1",
                    reason=UpdateReason.PLAN,
                    state="executing_step",
                    iteration=1,
                    lookback="Need a destination",
                    plan=[{"title": "Ask destination", "status": "pending"}],
                ),
            )
        )

        output = recording_console.export_text()
        assert "Need a destination" in output
        assert "Ask destination (pending)" in output

    def test_tool_error(self, recording_console: Console) -> None:
        cli._render_event(
            Event(
                name=EventType.TOOL_ERROR,
                payload=ToolErrorPayload(
                    tool_name="EchoTool",
                    correlation_id="c1",
                    input={},
                    error="boom",
                    error_type="ToolExecutionError",
                ),
            )
        )

        assert "Error EchoTool (ToolExecutionError): boom" in recording_console.export_text()

    def test_intervention_completed(self, recording_console: Console) -> None:
        cli._render_event(
            Event(
                name=EventType.INTERVENTION_COMPLETED,
                payload=InterventionResponse(
                    correlation_id="c1",
                    type=InterventionType.CLARIFICATION,
                    response="A",
                    data={"clarification": "A"},
                ),
            )
        )

        assert "completed: A" in recording_console.export_text()
