"""
Generative Model Client.

Wraps a LangChain chat model for single-shot completions:
- Local (Ollama), OpenAI or Anthropic backends
- Per-call decoding parameters (temperature, top_k, top_p, max tokens, seed)
- Hard timeout ceiling, no retry
- Health checking and request metrics
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage
from pydantic import SecretStr

from guarded_qa.config.settings import LLMSettings
from guarded_qa.core.errors import ModelUnavailable

logger = structlog.get_logger(__name__)


class ProviderType(str, Enum):
    """Supported model providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    LOCAL = "local"


class ProviderStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ProviderHealth:
    """Health status for the configured provider."""
    provider: ProviderType
    status: ProviderStatus
    last_check: datetime
    last_error: str | None = None
    latency_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "last_error": self.last_error,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class GenerationParams:
    """Decoding parameters for one completion."""
    temperature: float = 0.1
    top_k: int = 10
    top_p: float = 0.3
    max_tokens: int = 2048
    seed: int = 42


@dataclass
class ProviderConfig:
    """Configuration for the model provider."""
    provider_type: ProviderType = ProviderType.LOCAL
    model: str | None = None
    api_key: str | None = None
    local_base_url: str = "http://localhost:11434"
    timeout_seconds: float = 120.0

    @classmethod
    def from_settings(cls, settings: LLMSettings) -> "ProviderConfig":
        provider = ProviderType(settings.provider)
        if provider == ProviderType.OPENAI:
            key, model = settings.openai_api_key, settings.openai_model
        elif provider == ProviderType.ANTHROPIC:
            key, model = settings.anthropic_api_key, settings.anthropic_model
        else:
            key, model = None, settings.local_llm_model
        return cls(
            provider_type=provider,
            model=model,
            api_key=key.get_secret_value() if key else None,
            local_base_url=settings.local_llm_base_url,
            timeout_seconds=settings.timeout_seconds,
        )


@dataclass
class ModelMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    total_latency_ms: float = 0.0
    errors_by_category: dict[str, int] = field(default_factory=dict)

    @property
    def avg_latency_ms(self) -> float:
        if self.successful_requests == 0:
            return 0.0
        return self.total_latency_ms / self.successful_requests


def categorize_error(error: Exception) -> str:
    """Coarse error category for logs and metrics."""
    error_str = str(error).lower()

    if any(x in error_str for x in ["api key", "authentication", "unauthorized", "invalid_api_key"]):
        return "auth_error"
    if any(x in error_str for x in ["rate limit", "429", "too many requests"]):
        return "rate_limit"
    if any(x in error_str for x in ["model not found", "does not exist", "invalid model"]):
        return "model_error"
    if any(x in error_str for x in ["500", "502", "503", "504", "server error"]):
        return "server_error"
    if any(x in error_str for x in ["connection", "network", "unreachable", "refused"]):
        return "connection_error"
    return "unknown"


class ModelClient:
    """
    Completion client over a LangChain chat model.

    A failed or timed-out call raises ModelUnavailable; callers decide what
    to tell the user.
    """

    def __init__(self, config: ProviderConfig, llm: BaseChatModel | None = None) -> None:
        self.config = config
        self._injected = llm
        self._models: dict[GenerationParams, BaseChatModel] = {}
        self._health = ProviderHealth(
            provider=config.provider_type,
            status=ProviderStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self.metrics = ModelMetrics()

    @property
    def health(self) -> ProviderHealth:
        return self._health

    def _create_llm(self, params: GenerationParams) -> BaseChatModel:
        """Create LangChain chat model for the configured provider."""
        if self.config.provider_type == ProviderType.OPENAI:
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=self.config.model or "gpt-4o-mini",
                temperature=params.temperature,
                seed=params.seed,
                top_p=params.top_p,
                max_tokens=params.max_tokens,
                api_key=SecretStr(self.config.api_key) if self.config.api_key else None,
                max_retries=0,
            )

        elif self.config.provider_type == ProviderType.ANTHROPIC:
            from langchain_anthropic import ChatAnthropic

            return ChatAnthropic(
                model=self.config.model or "claude-3-5-sonnet-20241022",
                temperature=params.temperature,
                top_k=params.top_k,
                top_p=params.top_p,
                max_tokens=params.max_tokens,
                api_key=SecretStr(self.config.api_key) if self.config.api_key else None,
                max_retries=0,
            )

        elif self.config.provider_type == ProviderType.LOCAL:
            from langchain_ollama import ChatOllama

            return ChatOllama(
                model=self.config.model or "llama3.2:latest",
                base_url=self.config.local_base_url,
                temperature=params.temperature,
                top_k=params.top_k,
                top_p=params.top_p,
                num_predict=params.max_tokens,
                seed=params.seed,
            )

        raise ValueError(f"Unsupported provider type: {self.config.provider_type}")

    def _get_llm(self, params: GenerationParams) -> BaseChatModel:
        if self._injected is not None:
            return self._injected
        if params not in self._models:
            self._models[params] = self._create_llm(params)
            logger.info(
                "Model client initialized",
                provider=self.config.provider_type.value,
                model=self.config.model,
                temperature=params.temperature,
            )
        return self._models[params]

    async def complete(
        self,
        prompt: str,
        params: GenerationParams | None = None,
        timeout_seconds: float | None = None,
    ) -> str:
        """
        Run one completion.

        Args:
            prompt: Fully rendered prompt
            params: Decoding parameters
            timeout_seconds: Overrides the configured ceiling

        Returns:
            Model text

        Raises:
            ModelUnavailable: model error or timeout
        """
        params = params or GenerationParams()
        timeout = timeout_seconds or self.config.timeout_seconds
        provider = self.config.provider_type.value
        start_time = time.time()
        self.metrics.total_requests += 1

        try:
            llm = self._get_llm(params)
            response = await asyncio.wait_for(
                llm.ainvoke([HumanMessage(content=prompt)]),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            self.metrics.failed_requests += 1
            self.metrics.timeouts += 1
            logger.error("Model completion timed out", provider=provider, timeout_seconds=timeout)
            raise ModelUnavailable(f"Model did not respond within {timeout}s", provider) from e
        except Exception as e:
            category = categorize_error(e)
            self.metrics.failed_requests += 1
            self.metrics.errors_by_category[category] = (
                self.metrics.errors_by_category.get(category, 0) + 1
            )
            logger.error(
                "Model completion failed",
                provider=provider,
                error=str(e),
                error_category=category,
            )
            raise ModelUnavailable(f"Model request failed: {e}", provider) from e

        latency_ms = (time.time() - start_time) * 1000
        self.metrics.successful_requests += 1
        self.metrics.total_latency_ms += latency_ms
        logger.debug("Model completion finished", provider=provider, latency_ms=round(latency_ms, 2))
        return _content_text(response.content)

    async def health_check(self) -> ProviderHealth:
        """Send a trivial prompt and record the outcome."""
        start_time = time.time()
        try:
            await self.complete("Reply with 'OK' only.", timeout_seconds=min(30.0, self.config.timeout_seconds))
        except ModelUnavailable as e:
            self._health = ProviderHealth(
                provider=self.config.provider_type,
                status=ProviderStatus.UNHEALTHY,
                last_check=datetime.now(timezone.utc),
                last_error=str(e),
            )
            return self._health

        self._health = ProviderHealth(
            provider=self.config.provider_type,
            status=ProviderStatus.HEALTHY,
            last_check=datetime.now(timezone.utc),
            latency_ms=(time.time() - start_time) * 1000,
        )
        return self._health


def _content_text(content: Any) -> str:
    """Chat message content may be a string or a list of content blocks."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)
