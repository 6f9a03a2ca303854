"""
Answer Composer.

Builds the prompt sent to the generative model:
- Role-aware instruction block
- Delimited data section holding only approved fields and provenance
- Bounded goals / peers / market context
- JSON-only variant for scorecard requests
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from guarded_qa.composer.prompts import (
    DATA_BEGIN,
    DATA_END,
    SCORECARD_KEYS,
    UNAVAILABLE_DATA,
    AgentSettings,
    canonical_role,
)
from guarded_qa.core.settings_store import SettingsStore
from guarded_qa.domain.fields import APPROVED_FIELDS
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EntityKind,
    EntityReference,
    FieldType,
)
from guarded_qa.metrics.gateway import is_trusted

logger = structlog.get_logger(__name__)

_SCORECARD_QUERY_RE = re.compile(r"\bscore\s*card\b", re.IGNORECASE)


class PromptMode(str, Enum):
    FREE_TEXT = "free_text"
    STRICT_JSON = "strict_json"
    GENERAL = "general"


@dataclass
class Goal:
    metric: str
    target: float
    period_type: str = "monthly"


@dataclass
class PeerSummary:
    name: str
    rank: int | None = None


@dataclass
class ContextExtras:
    """Optional context around the subject entity."""
    goals: list[Goal] = field(default_factory=list)
    peers: list[PeerSummary] = field(default_factory=list)
    aggregate: AuthoritativeMetrics | None = None


@dataclass
class ComposedPrompt:
    text: str
    mode: PromptMode
    expected_keys: tuple[str, ...] = ()
    truncated: bool = False

    @property
    def strict_json(self) -> bool:
        return self.mode == PromptMode.STRICT_JSON


def is_scorecard_query(query: str) -> bool:
    return bool(_SCORECARD_QUERY_RE.search(query))


def format_number(value: float | int) -> str:
    """Render without float noise: 5385.0 -> "5385", 48.25 -> "48.25"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_value(name: str, value: Any) -> str:
    spec = APPROVED_FIELDS.get(name)
    if spec is None:
        return str(value)
    if spec.type == FieldType.CURRENCY:
        return f"${value:,.2f}"
    if spec.type == FieldType.PERCENTAGE:
        return f"{format_number(value)}%"
    if spec.type in (FieldType.INTEGER, FieldType.DECIMAL):
        return format_number(value)
    if spec.type == FieldType.OBJECT:
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


class AnswerComposer:
    """Renders bounded prompts from authoritative data."""

    def __init__(
        self,
        settings_store: SettingsStore[AgentSettings],
        max_prompt_chars: int = 24000,
        max_goals: int = 10,
        max_peers: int = 5,
    ):
        self._settings_store = settings_store
        self._max_prompt_chars = max_prompt_chars
        self._max_goals = max_goals
        self._max_peers = max_peers

    async def build(
        self,
        query: str,
        entity: EntityReference,
        metrics: AuthoritativeMetrics | None,
        role: str | None = None,
        user_name: str | None = None,
        extras: ContextExtras | None = None,
        performance: bool = True,
    ) -> ComposedPrompt:
        """
        Choose the prompt variant for a query and render it.

        Scorecard requests about a single advisor with trusted data get the
        JSON-only template; everything else gets the free-text prompt.
        """
        if not performance:
            text = await self.compose_general(query, role)
            return ComposedPrompt(text=text, mode=PromptMode.GENERAL)

        trusted, _ = is_trusted(metrics)
        if is_scorecard_query(query) and entity.kind == EntityKind.ADVISOR and trusted:
            text = await self.compose_scorecard(entity, metrics)
            return ComposedPrompt(
                text=text,
                mode=PromptMode.STRICT_JSON,
                expected_keys=SCORECARD_KEYS,
            )

        text, truncated = await self._compose_free_text(
            query, entity, metrics, role, user_name, extras
        )
        return ComposedPrompt(text=text, mode=PromptMode.FREE_TEXT, truncated=truncated)

    async def compose(
        self,
        query: str,
        entity: EntityReference,
        metrics: AuthoritativeMetrics | None,
        role: str | None = None,
        user_name: str | None = None,
        extras: ContextExtras | None = None,
    ) -> str:
        """Render the free-text prompt."""
        text, _ = await self._compose_free_text(query, entity, metrics, role, user_name, extras)
        return text

    async def compose_scorecard(
        self,
        entity: EntityReference,
        metrics: AuthoritativeMetrics,
    ) -> str:
        """Render the JSON-only scorecard prompt for an advisor."""
        settings = await self._settings_store.get()
        body: dict[str, Any] = {
            "advisor": entity.display_name,
            "period": entity.period.label,
        }
        for key in SCORECARD_KEYS[2:]:
            body[key] = metrics.get(key)
        return settings.scorecard_template.format(json_body=json.dumps(body, indent=2))

    async def compose_general(self, query: str, role: str | None = None) -> str:
        """Prompt for questions that are not about performance figures."""
        settings = await self._settings_store.get()
        return settings.general_template.format(
            system_prompt=settings.system_prompt,
            role_prompt=settings.role_prompt(role),
            query=query,
        )

    async def _compose_free_text(
        self,
        query: str,
        entity: EntityReference,
        metrics: AuthoritativeMetrics | None,
        role: str | None,
        user_name: str | None,
        extras: ContextExtras | None,
    ) -> tuple[str, bool]:
        settings = await self._settings_store.get()
        extras = extras or ContextExtras()

        render_args = {
            "system_prompt": settings.system_prompt,
            "role_prompt": settings.role_prompt(role),
            "user_name": user_name or "Unknown",
            "user_role": canonical_role(role),
            "entity_name": entity.display_name,
            "entity_kind": entity.kind.value,
            "period": entity.period.label,
            "data_section": self.render_data_section(metrics, extras, entity),
            "context_section": self.render_context_section(extras),
            "query": query,
        }
        text = settings.chat_template.format(**render_args)
        if len(text) <= self._max_prompt_chars:
            return text, False

        # Over budget: drop optional context, then shorten the question
        render_args["context_section"] = ""
        text = settings.chat_template.format(**render_args)
        overflow = len(text) - self._max_prompt_chars
        if overflow > 0:
            render_args["query"] = query[: max(0, len(query) - overflow - 3)] + "..."
            text = settings.chat_template.format(**render_args)

        logger.warning(
            "Prompt truncated to budget",
            max_chars=self._max_prompt_chars,
            final_chars=len(text),
        )
        return text, True

    def render_data_section(
        self,
        metrics: AuthoritativeMetrics | None,
        extras: ContextExtras | None = None,
        entity: EntityReference | None = None,
    ) -> str:
        trusted, reason = is_trusted(metrics)
        if not trusted:
            if metrics is not None:
                logger.warning("Refusing to render untrusted metrics", reason=reason)
            return f"{DATA_BEGIN}\n{UNAVAILABLE_DATA}\n{DATA_END}"

        lines = [DATA_BEGIN]
        lines.extend(self._metric_lines(metrics))
        if metrics.missing_fields:
            lines.append(f"- not available: {', '.join(metrics.missing_fields)}")
        provenance = metrics.provenance
        lines.append(
            f"- source: {provenance.source} ({provenance.endpoint}), "
            f"retrieved {provenance.retrieved_at.isoformat()}"
        )

        aggregate = extras.aggregate if extras else None
        individual = entity is not None and entity.is_individual
        if aggregate is not None and not individual and is_trusted(aggregate)[0]:
            lines.append("")
            lines.append(f"MARKET CONTEXT ({aggregate.kind.value} {aggregate.entity_id}):")
            lines.extend(self._metric_lines(aggregate))

        lines.append(DATA_END)
        return "\n".join(lines)

    def render_context_section(self, extras: ContextExtras) -> str:
        sections = []
        if extras.goals:
            goal_lines = [
                f"- {goal.metric}: target {format_value(goal.metric, goal.target)} ({goal.period_type})"
                for goal in extras.goals[: self._max_goals]
            ]
            sections.append("GOALS:\n" + "\n".join(goal_lines))
        if extras.peers:
            peer_lines = [
                f"- {peer.rank}. {peer.name}" if peer.rank is not None else f"- {peer.name}"
                for peer in extras.peers[: self._max_peers]
            ]
            sections.append("PEERS:\n" + "\n".join(peer_lines))
        if not sections:
            return ""
        return "\n" + "\n\n".join(sections) + "\n"

    def _metric_lines(self, metrics: AuthoritativeMetrics) -> list[str]:
        # Registry order keeps the rendering stable
        return [
            f"- {name}: {format_value(name, metrics.values[name])}"
            for name in APPROVED_FIELDS
            if name in metrics.values
        ]
