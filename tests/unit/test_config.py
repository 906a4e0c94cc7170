"""Tests for agent settings and logging setup."""

import pytest
import structlog

from replan_agent.config import AgentSettings, get_agent_settings
from replan_agent.observability import configure_logging


class TestAgentSettings:
    """Tests for AgentSettings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("REPLAN_MODEL", "REPLAN_MAX_ITERATIONS", "REPLAN_TOOL_TIMEOUT_SECONDS"):
            monkeypatch.delenv(name, raising=False)

        settings = AgentSettings(_env_file=None)

        assert settings.model == "gpt-4o-mini"
        assert settings.max_iterations == 10
        assert settings.tool_timeout_seconds is None
        assert settings.intervention_timeout_seconds is None
        assert settings.json_mode is True

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REPLAN_MODEL", "watsonx/meta-llama/llama-3-1-70b-instruct")
        monkeypatch.setenv("REPLAN_MAX_ITERATIONS", "3")
        monkeypatch.setenv("REPLAN_INTERVENTION_TIMEOUT_SECONDS", "120")

        settings = AgentSettings(_env_file=None)

        assert settings.model == "watsonx/meta-llama/llama-3-1-70b-instruct"
        assert settings.max_iterations == 3
        assert settings.intervention_timeout_seconds == 120

    def test_rejects_invalid_limits(self) -> None:
        with pytest.raises(ValueError):
            AgentSettings(_env_file=None, max_iterations=0)

    def test_get_agent_settings_is_cached(self) -> None:
        get_agent_settings.cache_clear()
        try:
            assert get_agent_settings() is get_agent_settings()
        finally:
            get_agent_settings.cache_clear()


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.fixture(autouse=True)
    def reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_logs(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("INFO", json_logs=True)

        structlog.get_logger().info("agent_run_started", run_id="r1")

        err = capsys.readouterr().err
        assert '"event": "agent_run_started"' in err
        assert '"run_id": "r1"' in err

    def test_level_filtering(self, capsys: pytest.CaptureFixture[str]) -> None:
        configure_logging("warning", json_logs=True)

        structlog.get_logger().info("hidden_event")
        structlog.get_logger().warning("shown_event")

        err = capsys.readouterr().err
        assert "hidden_event" not in err
        assert "shown_event" in err
