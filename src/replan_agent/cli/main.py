"""Replan agent CLI entry point."""

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from replan_agent.agent import AgentRunResult, ReplanAgent
from replan_agent.config import get_agent_settings
from replan_agent.events import Event, EventBus, EventType
from replan_agent.events.handlers import LoggingEventHandler
from replan_agent.llm import LiteLLMClient
from replan_agent.loop import LLMPlanner
from replan_agent.memory import ConversationMemory
from replan_agent.observability import configure_logging
from replan_agent.services import ConsoleHumanGateway, CorrelationRegistry, InterventionCoordinator
from replan_agent.tools import HumanTool, InterventionTool

app = typer.Typer(name="replan-agent", help="Plan-execute-observe agent with human checkpoints")
console = Console()


def _dump(value: Any) -> str:
    return escape(json.dumps(value, default=str, ensure_ascii=False))


def _render_event(event: Event) -> None:
    payload = event.payload
    if event.name == EventType.UPDATE:
        if payload.lookback:
            console.print(f"💭 {escape(payload.lookback)}", style="dim")
        for step in payload.plan:
            console.print(f"➡️  {escape(step['title'])} ({step['status']})")
    elif event.name == EventType.TOOL_START:
        console.print(f"🛠️  Start {payload.tool_name} with {_dump(payload.input)}", style="cyan")
    elif event.name == EventType.TOOL_SUCCESS:
        console.print(
            f"🛠  Success {payload.tool_name} with {_dump(payload.output)}", style="green"
        )
    elif event.name == EventType.TOOL_ERROR:
        console.print(
            f"🛠  Error {payload.tool_name} ({payload.error_type}): {escape(payload.error)}",
            style="red",
        )
    elif event.name == EventType.INTERVENTION_COMPLETED:
        console.print(
            f"🔄 Intervention '{payload.type}' completed: {escape(payload.response)}",
            style="yellow",
        )


def _observe(view: EventBus) -> None:
    for name in (
        EventType.UPDATE,
        EventType.TOOL_START,
        EventType.TOOL_SUCCESS,
        EventType.TOOL_ERROR,
        EventType.INTERVENTION_COMPLETED,
    ):
        view.subscribe(name, _render_event)


def _print_result(result: AgentRunResult) -> None:
    if result.failure is not None:
        console.print(
            f"Agent (error) 🤖 : {result.failure.kind}: {escape(result.failure.message)}",
            style="bold red",
        )
    else:
        console.print(f"Agent 🤖 : {escape(result.final_response or '')}", style="bold green")


async def _run(prompt: str | None, model: str | None, max_iterations: int | None) -> None:
    settings = get_agent_settings()
    updates: dict[str, Any] = {}
    if model is not None:
        updates["model"] = model
    if max_iterations is not None:
        updates["max_iterations"] = max_iterations
    if updates:
        settings = settings.model_copy(update=updates)

    configure_logging(settings.log_level, json_logs=settings.log_json)

    bus = EventBus()
    LoggingEventHandler().attach(bus)
    registry = CorrelationRegistry()
    registry.attach(bus)

    agent = ReplanAgent(
        bus,
        LLMPlanner(LiteLLMClient(), settings=settings),
        [HumanTool(), InterventionTool()],
        settings=settings,
        registry=registry,
    )
    memory = ConversationMemory()

    async with InterventionCoordinator(bus, ConsoleHumanGateway(console), registry):
        if prompt is not None:
            result = await agent.run(prompt, memory=memory, observe=_observe)
            _print_result(result)
            return

        while True:
            text = await asyncio.to_thread(console.input, "[bold]User 👤 : [/bold]")
            text = text.strip()
            if not text:
                continue
            if text in ("exit", "quit"):
                return
            result = await agent.run(text, memory=memory, observe=_observe)
            _print_result(result)
            memory = result.memory


@app.command()
def run(
    prompt: str | None = typer.Argument(None, help="Prompt to answer (interactive when omitted)"),
    model: str | None = typer.Option(None, "--model", "-m", help="LiteLLM model name"),
    max_iterations: int | None = typer.Option(
        None, "--max-iterations", help="Maximum number of plans per run"
    ),
) -> None:
    """Run the agent on a prompt, or start an interactive session."""
    try:
        asyncio.run(_run(prompt, model, max_iterations))
    except (KeyboardInterrupt, EOFError):
        console.print("\nBye!", style="dim")


@app.command()
def status() -> None:
    """Show the effective configuration."""
    settings = get_agent_settings()
    console.print(f"Model: {settings.model}", style="green")
    console.print(f"Max iterations: {settings.max_iterations}", style="yellow")
    console.print(f"Tool timeout: {settings.tool_timeout_seconds}", style="blue")
    console.print(f"Intervention timeout: {settings.intervention_timeout_seconds}", style="blue")


if __name__ == "__main__":
    app()
