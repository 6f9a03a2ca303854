"""
Unit Tests for the Answer Composer.

Tests prompt variant selection, the delimited data section and the
prompt size budget.
"""

import json
from datetime import datetime

import pytest

from guarded_qa.composer.composer import (
    AnswerComposer,
    ContextExtras,
    Goal,
    PeerSummary,
    PromptMode,
    format_value,
    is_scorecard_query,
)
from guarded_qa.composer.prompts import (
    DATA_BEGIN,
    DATA_END,
    ROLE_PROMPTS,
    SCORECARD_KEYS,
    UNAVAILABLE_DATA,
    AgentSettings,
)
from guarded_qa.core.settings_store import SettingsStore
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EntityKind,
    EntityReference,
    Provenance,
)
from guarded_qa.metrics.gateway import TRUSTED_SOURCE


@pytest.fixture
def composer(settings_store: SettingsStore[AgentSettings]) -> AnswerComposer:
    return AnswerComposer(settings_store, max_goals=2, max_peers=1)


@pytest.fixture
def market_metrics(fixed_now: datetime) -> AuthoritativeMetrics:
    return AuthoritativeMetrics(
        kind=EntityKind.MARKET,
        entity_id="m1",
        values={"totalSales": 750000.0, "storeCount": 9},
        provenance=Provenance(
            endpoint="http://scorecard.test/api/scorecard/market/m1",
            retrieved_at=fixed_now,
            source=TRUSTED_SOURCE,
        ),
    )


def _between_markers(text: str) -> str:
    return text[text.index(DATA_BEGIN): text.index(DATA_END)]


class TestFormatting:
    """Test cases for value rendering."""

    @pytest.mark.parametrize(
        ("name", "value", "expected"),
        [
            ("sales", 5385, "$5,385.00"),
            ("gpPercent", 45.0, "45%"),
            ("invoices", 120, "120"),
            ("tpp", 1.25, "1.25"),
            ("fluidAttachRates", {"oil": 0.4, "brake": 0.1}, '{"brake":0.1,"oil":0.4}'),
        ],
    )
    def test_format_value(self, name: str, value: object, expected: str) -> None:
        assert format_value(name, value) == expected

    def test_scorecard_query(self) -> None:
        assert is_scorecard_query("Show me my score card")
        assert not is_scorecard_query("What are my sales?")


class TestPromptSelection:
    """Test cases for AnswerComposer.build."""

    @pytest.mark.asyncio
    async def test_general_question(
        self, composer: AnswerComposer, advisor_entity: EntityReference
    ) -> None:
        prompt = await composer.build(
            "How do I greet customers?", advisor_entity, None, performance=False
        )

        assert prompt.mode == PromptMode.GENERAL
        assert DATA_BEGIN not in prompt.text
        assert 'USER QUESTION: "How do I greet customers?"' in prompt.text

    @pytest.mark.asyncio
    async def test_scorecard_request_is_strict_json(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        prompt = await composer.build("show my scorecard", advisor_entity, advisor_metrics)

        assert prompt.strict_json
        assert prompt.expected_keys == SCORECARD_KEYS
        body = json.loads(prompt.text[prompt.text.index("{"):])
        assert list(body) == list(SCORECARD_KEYS)
        assert body["advisor"] == "Akeen Jackson"
        assert body["period"] == "August 2025"
        assert body["sales"] == 5385

    @pytest.mark.asyncio
    async def test_scorecard_without_data_is_free_text(
        self, composer: AnswerComposer, advisor_entity: EntityReference
    ) -> None:
        prompt = await composer.build("show my scorecard", advisor_entity, None)

        assert prompt.mode == PromptMode.FREE_TEXT
        assert UNAVAILABLE_DATA in _between_markers(prompt.text)

    @pytest.mark.asyncio
    async def test_store_scorecard_is_free_text(
        self, composer: AnswerComposer, advisor_metrics: AuthoritativeMetrics
    ) -> None:
        store = EntityReference(kind=EntityKind.STORE, id="s1", display_name="Downtown")

        prompt = await composer.build("show the store scorecard", store, advisor_metrics)

        assert prompt.mode == PromptMode.FREE_TEXT


class TestFreeTextPrompt:
    """Test cases for the free-text prompt body."""

    @pytest.mark.asyncio
    async def test_data_section(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        text = await composer.compose(
            "what are my sales", advisor_entity, advisor_metrics, role="advisor", user_name="Akeen Jackson"
        )
        data = _between_markers(text)

        assert "- sales: $5,385.00" in data
        assert "- gpPercent: 45.5%" in data
        assert "- invoices: 120" in data
        assert "- tpp: 1.25" in data
        assert f"- source: {TRUSTED_SOURCE}" in data
        assert "- User: Akeen Jackson (advisor)" in text
        assert "- Data Period: August 2025" in text

    @pytest.mark.asyncio
    async def test_missing_fields_listed(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        advisor_metrics.missing_fields = ["brakeService"]

        text = await composer.compose("my sales", advisor_entity, advisor_metrics)

        assert "- not available: brakeService" in _between_markers(text)

    @pytest.mark.asyncio
    async def test_untrusted_metrics_not_rendered(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        advisor_metrics.provenance.source = "spreadsheet_upload"

        text = await composer.compose("my sales", advisor_entity, advisor_metrics)

        assert "5,385" not in text
        assert UNAVAILABLE_DATA in text

    @pytest.mark.asyncio
    async def test_market_context_omitted_for_advisors(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics, market_metrics: AuthoritativeMetrics,
    ) -> None:
        extras = ContextExtras(aggregate=market_metrics)

        text = await composer.compose("my sales", advisor_entity, advisor_metrics, extras=extras)

        assert "MARKET CONTEXT" not in text
        assert "750,000" not in text

    @pytest.mark.asyncio
    async def test_market_context_for_stores(
        self, composer: AnswerComposer, market_metrics: AuthoritativeMetrics, fixed_now: datetime,
    ) -> None:
        store = EntityReference(kind=EntityKind.STORE, id="s1", display_name="Downtown")
        store_metrics = AuthoritativeMetrics(
            kind=EntityKind.STORE,
            entity_id="s1",
            values={"totalSales": 98000.0},
            provenance=Provenance(
                endpoint="http://scorecard.test/api/scorecard/store/s1",
                retrieved_at=fixed_now,
                source=TRUSTED_SOURCE,
            ),
        )

        text = await composer.compose(
            "store sales", store, store_metrics, extras=ContextExtras(aggregate=market_metrics)
        )
        data = _between_markers(text)

        assert "MARKET CONTEXT (market m1):" in data
        assert "- totalSales: $750,000.00" in data

    @pytest.mark.asyncio
    async def test_goals_and_peers_are_bounded(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        extras = ContextExtras(
            goals=[Goal("sales", 6000), Goal("invoices", 130), Goal("alignments", 20)],
            peers=[PeerSummary("James Whitaker", 1), PeerSummary("Priya Natarajan", 2)],
        )

        text = await composer.compose("my sales", advisor_entity, advisor_metrics, extras=extras)

        assert "- sales: target $6,000.00 (monthly)" in text
        assert "- invoices: target 130 (monthly)" in text
        assert "alignments: target" not in text
        assert "- 1. James Whitaker" in text
        assert "Priya Natarajan" not in text

    @pytest.mark.asyncio
    async def test_unknown_role_uses_advisor_prompt(
        self, composer: AnswerComposer, advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        text = await composer.compose("my sales", advisor_entity, advisor_metrics, role="parts_clerk")

        assert ROLE_PROMPTS["advisor"] in text
        assert "(advisor)" in text


class TestPromptBudget:
    """Test cases for prompt truncation."""

    @pytest.mark.asyncio
    async def test_context_dropped_first(
        self, settings_store: SettingsStore[AgentSettings], advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        baseline = await AnswerComposer(settings_store).compose(
            "my sales", advisor_entity, advisor_metrics
        )
        composer = AnswerComposer(settings_store, max_prompt_chars=len(baseline) + 100)
        extras = ContextExtras(goals=[Goal("x" * 400, 1) for _ in range(10)])

        prompt = await composer.build("my sales", advisor_entity, advisor_metrics, extras=extras)

        assert prompt.truncated
        assert prompt.text == baseline

    @pytest.mark.asyncio
    async def test_long_question_shortened(
        self, settings_store: SettingsStore[AgentSettings], advisor_entity: EntityReference,
        advisor_metrics: AuthoritativeMetrics,
    ) -> None:
        composer = AnswerComposer(settings_store, max_prompt_chars=4000)

        prompt = await composer.build("sales " * 2000, advisor_entity, advisor_metrics)

        assert prompt.truncated
        assert len(prompt.text) <= 4000
        assert "- sales: $5,385.00" in prompt.text
        assert '..."' in prompt.text
