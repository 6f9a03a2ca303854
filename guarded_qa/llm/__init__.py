"""
LLM Provider Module.

Single-provider completion client with a timeout ceiling.
"""

from guarded_qa.llm.provider import (
    GenerationParams,
    ModelClient,
    ProviderConfig,
    ProviderHealth,
    ProviderType,
)

__all__ = [
    "GenerationParams",
    "ModelClient",
    "ProviderConfig",
    "ProviderHealth",
    "ProviderType",
]
