"""LiteLLM client tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import patch

import pytest
from tenacity import wait_none

from replan_agent.llm.client import LiteLLMClient
from replan_agent.llm.schemas import ChatMessage, LLMRequest


@pytest.fixture
def client() -> LiteLLMClient:
    """Create LiteLLM client."""
    return LiteLLMClient()


@pytest.fixture
def sample_request() -> LLMRequest:
    """Create sample LLM request."""
    return LLMRequest(
        model="gpt-4o-mini",
        messages=[
            ChatMessage(role="system", content="You are a planner."),
            ChatMessage(role="user", content="Plan a weekend"),
        ],
        temperature=0.3,
        max_tokens=1000,
    )


@pytest.fixture
def mock_response() -> dict[str, Any]:
    return {
        "choices": [
            {
                "message": {"content": '{"plan": [], "final_answer": "ok"}'},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": 20,
            "completion_tokens": 10,
            "total_tokens": 30,
        },
        "model": "gpt-4o-mini",
    }


@pytest.fixture
def no_retry_wait():
    """Skip retry delays."""
    with patch.object(LiteLLMClient.chat_completion.retry, "wait", wait_none()):
        yield


class TestChatCompletion:
    """Tests for chat_completion method."""

    async def test_successful_completion(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        mock_response: dict[str, Any],
    ) -> None:
        """Returns response on successful completion."""
        with patch("replan_agent.llm.client.litellm.acompletion") as mock_completion:
            mock_completion.return_value = mock_response

            result = await client.chat_completion(sample_request)

        assert result.content == '{"plan": [], "final_answer": "ok"}'
        assert result.usage.input_tokens == 20
        assert result.usage.output_tokens == 10
        assert result.usage.total_tokens == 30
        assert result.finish_reason == "stop"
        mock_completion.assert_called_once()

    async def test_passes_model_parameters(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        mock_response: dict[str, Any],
    ) -> None:
        """Passes model, messages and optional parameters to LiteLLM."""
        sample_request.api_base = "http://localhost:4000"
        sample_request.api_key = "sk-test"
        sample_request.json_mode = True

        with patch("replan_agent.llm.client.litellm.acompletion") as mock_completion:
            mock_completion.return_value = mock_response
            await client.chat_completion(sample_request)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000
        assert kwargs["api_base"] == "http://localhost:4000"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][1] == {"role": "user", "content": "Plan a weekend"}

    async def test_handles_missing_optional_parameters(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        mock_response: dict[str, Any],
    ) -> None:
        """Omits optional parameters that are not set."""
        sample_request.max_tokens = None

        with patch("replan_agent.llm.client.litellm.acompletion") as mock_completion:
            mock_completion.return_value = mock_response
            await client.chat_completion(sample_request)

        kwargs = mock_completion.call_args.kwargs
        assert "max_tokens" not in kwargs
        assert "api_base" not in kwargs
        assert "response_format" not in kwargs

    async def test_empty_content(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        mock_response: dict[str, Any],
    ) -> None:
        mock_response["choices"][0]["message"]["content"] = None

        with patch("replan_agent.llm.client.litellm.acompletion", return_value=mock_response):
            result = await client.chat_completion(sample_request)

        assert result.content == ""

    async def test_retries_on_failure(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        mock_response: dict[str, Any],
        no_retry_wait: None,
    ) -> None:
        """Retries transient failures."""
        attempts = 0

        async def flaky(**kwargs: Any) -> dict[str, Any]:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise ConnectionError("temporary")
            return mock_response

        with patch("replan_agent.llm.client.litellm.acompletion", side_effect=flaky):
            result = await client.chat_completion(sample_request)

        assert attempts == 3
        assert result.model == "gpt-4o-mini"

    async def test_raises_after_max_retries(
        self,
        client: LiteLLMClient,
        sample_request: LLMRequest,
        no_retry_wait: None,
    ) -> None:
        """Re-raises the last error after three attempts."""
        with patch("replan_agent.llm.client.litellm.acompletion") as mock_completion:
            mock_completion.side_effect = ConnectionError("down")

            with pytest.raises(ConnectionError, match="down"):
                await client.chat_completion(sample_request)

        assert mock_completion.call_count == 3
