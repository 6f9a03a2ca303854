"""
Answer Composer Module.

Bounded prompt rendering over authoritative data.
"""

from guarded_qa.composer.composer import (
    AnswerComposer,
    ComposedPrompt,
    ContextExtras,
    Goal,
    PeerSummary,
    PromptMode,
)
from guarded_qa.composer.prompts import AgentSettings, GenerationDefaults

__all__ = [
    "AnswerComposer",
    "ComposedPrompt",
    "ContextExtras",
    "Goal",
    "PeerSummary",
    "PromptMode",
    "AgentSettings",
    "GenerationDefaults",
]
