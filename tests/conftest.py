"""Shared fixtures for replan agent tests."""

from __future__ import annotations

import pytest
from fakes import EventRecorder

from replan_agent.config import AgentSettings
from replan_agent.events import EventBus
from replan_agent.services import CorrelationRegistry


@pytest.fixture
def bus() -> EventBus:
    """Create a fresh root EventBus."""
    return EventBus()


@pytest.fixture
def registry(bus: EventBus) -> CorrelationRegistry:
    """Create a correlation registry attached to the bus."""
    registry = CorrelationRegistry()
    registry.attach(bus)
    return registry


@pytest.fixture
def settings() -> AgentSettings:
    """Create settings isolated from the environment."""
    return AgentSettings(_env_file=None, model="test-model", max_iterations=5)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()
