"""
Unit Tests for the Model Client.

The chat model is mocked; these tests cover timeouts, error mapping,
content handling and per-parameter model caching.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage
from pydantic import SecretStr

from guarded_qa.config.settings import LLMSettings
from guarded_qa.core.errors import ModelUnavailable
from guarded_qa.llm.provider import (
    GenerationParams,
    ModelClient,
    ProviderConfig,
    ProviderStatus,
    ProviderType,
    categorize_error,
)


class TestProviderConfig:
    """Test cases for ProviderConfig."""

    def test_from_settings_local(self) -> None:
        config = ProviderConfig.from_settings(LLMSettings(provider="local", timeout_seconds=30))

        assert config.provider_type == ProviderType.LOCAL
        assert config.api_key is None
        assert config.timeout_seconds == 30

    def test_from_settings_openai(self) -> None:
        settings = LLMSettings(provider="openai", openai_api_key=SecretStr("sk-test"))

        config = ProviderConfig.from_settings(settings)

        assert config.provider_type == ProviderType.OPENAI
        assert config.api_key == "sk-test"
        assert config.model == settings.openai_model


class TestModelClient:
    """Test cases for ModelClient.complete."""

    @pytest.mark.asyncio
    async def test_complete_returns_text(self, model_client: ModelClient, mock_llm: MagicMock) -> None:
        text = await model_client.complete("What are my sales?")

        assert text == "Mock response"
        messages = mock_llm.ainvoke.call_args.args[0]
        assert messages == [HumanMessage(content="What are my sales?")]
        assert model_client.metrics.successful_requests == 1

    @pytest.mark.asyncio
    async def test_content_blocks_joined(self, model_client: ModelClient, mock_llm: MagicMock) -> None:
        mock_llm.ainvoke.return_value = AIMessage(
            content=[{"type": "text", "text": "Sales were "}, {"type": "text", "text": "$5,385."}]
        )

        assert await model_client.complete("my sales") == "Sales were $5,385."

    @pytest.mark.asyncio
    async def test_timeout_raises_model_unavailable(self, mock_llm: MagicMock) -> None:
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        mock_llm.ainvoke = slow
        client = ModelClient(ProviderConfig(timeout_seconds=0.01), llm=mock_llm)

        with pytest.raises(ModelUnavailable, match="did not respond") as exc_info:
            await client.complete("my sales")

        assert exc_info.value.provider == "local"
        assert client.metrics.timeouts == 1

    @pytest.mark.asyncio
    async def test_error_raises_model_unavailable(self, model_client: ModelClient, mock_llm: MagicMock) -> None:
        mock_llm.ainvoke.side_effect = ConnectionError("connection refused")

        with pytest.raises(ModelUnavailable, match="connection refused"):
            await model_client.complete("my sales")

        assert model_client.metrics.errors_by_category == {"connection_error": 1}

    @pytest.mark.asyncio
    async def test_no_retry(self, model_client: ModelClient, mock_llm: MagicMock) -> None:
        mock_llm.ainvoke.side_effect = RuntimeError("503 server error")

        with pytest.raises(ModelUnavailable):
            await model_client.complete("my sales")

        assert mock_llm.ainvoke.await_count == 1

    @pytest.mark.asyncio
    async def test_models_cached_per_params(self, mock_llm: MagicMock) -> None:
        client = ModelClient(ProviderConfig())

        with patch.object(ModelClient, "_create_llm", return_value=mock_llm) as create:
            await client.complete("a", GenerationParams(temperature=0.1))
            await client.complete("b", GenerationParams(temperature=0.1))
            await client.complete("c", GenerationParams(temperature=0.0))

        assert create.call_count == 2


class TestHealthCheck:
    """Test cases for ModelClient.health_check."""

    @pytest.mark.asyncio
    async def test_healthy(self, model_client: ModelClient) -> None:
        health = await model_client.health_check()

        assert health.status == ProviderStatus.HEALTHY
        assert model_client.health is health
        assert health.to_dict()["provider"] == "local"

    @pytest.mark.asyncio
    async def test_unhealthy(self, model_client: ModelClient, mock_llm: MagicMock) -> None:
        mock_llm.ainvoke = AsyncMock(side_effect=RuntimeError("model not found"))

        health = await model_client.health_check()

        assert health.status == ProviderStatus.UNHEALTHY
        assert "model not found" in health.last_error


@pytest.mark.parametrize(
    ("message", "category"),
    [
        ("Invalid API key provided", "auth_error"),
        ("429 Too Many Requests", "rate_limit"),
        ("model not found", "model_error"),
        ("502 Bad Gateway", "server_error"),
        ("network unreachable", "connection_error"),
        ("something odd", "unknown"),
    ],
)
def test_categorize_error(message: str, category: str) -> None:
    assert categorize_error(RuntimeError(message)) == category
