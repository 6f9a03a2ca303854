"""
Pytest Configuration and Shared Fixtures.

This module provides shared fixtures for testing guarded query answering.
"""

from datetime import date, datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage

from guarded_qa.audit.recorder import AuditRecorder
from guarded_qa.audit.store import InMemoryAuditStore
from guarded_qa.composer.composer import AnswerComposer
from guarded_qa.composer.prompts import AgentSettings
from guarded_qa.config.settings import Settings, ValidationSettings, get_settings
from guarded_qa.core.errors import MetricsUnavailable
from guarded_qa.core.settings_store import SettingsStore, StaticSettingsSource
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EntityKind,
    EntityReference,
    Market,
    Period,
    Person,
    Provenance,
    Store,
)
from guarded_qa.llm.provider import ModelClient, ProviderConfig, ProviderType
from guarded_qa.metrics.gateway import TRUSTED_SOURCE, MetricsGateway
from guarded_qa.metrics.provider import MetricsProvider
from guarded_qa.pipeline.service import GuardedQueryService
from guarded_qa.resolution.directory import InMemoryDirectory
from guarded_qa.resolution.entity_resolver import EntityResolver
from guarded_qa.validation.corrector import Corrector
from guarded_qa.validation.validator import ResponseValidator

FIXED_NOW = datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc)
FIXED_TODAY = date(2025, 9, 15)

ADVISOR_RECORD: dict[str, Any] = {
    "sales": 5385,
    "gpSales": 2450.5,
    "gpPercent": 45.5,
    "invoices": 120,
    "alignments": 14,
    "oilChange": 60,
    "retailTires": 32,
    "allTires": 40,
    "brakeService": 9,
    "tpp": 1.25,
}

STORE_RECORD: dict[str, Any] = {
    "totalSales": 98000.0,
    "totalGpSales": 41000.0,
    "totalInvoices": 1500,
    "advisorCount": 8,
}


# =============================================================================
# Settings Fixtures
# =============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def advisor_record() -> dict[str, Any]:
    return dict(ADVISOR_RECORD)


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with mock values."""
    with patch.dict(
        "os.environ",
        {
            "LLM_PROVIDER": "local",
            "METRICS_BASE_URL": "http://scorecard.test",
            "AUDIT_BACKEND": "memory",
        },
    ):
        get_settings.cache_clear()
        return get_settings()


@pytest.fixture
def validation_settings() -> ValidationSettings:
    return ValidationSettings()


@pytest.fixture
def settings_store() -> SettingsStore[AgentSettings]:
    defaults = AgentSettings()
    return SettingsStore(StaticSettingsSource(defaults), default=defaults, ttl_seconds=300)


# =============================================================================
# Directory Fixtures
# =============================================================================


@pytest.fixture
def advisor() -> Person:
    return Person(id="101", first_name="Akeen", last_name="Jackson", store_id="s1", market_id="m1")


@pytest.fixture
def manager() -> Person:
    return Person(
        id="201", first_name="Maria", last_name="Lopez", role="store_manager",
        store_id="s1", market_id="m1",
    )


@pytest.fixture
def admin() -> Person:
    return Person(id="900", first_name="Dana", last_name="Reeves", role="admin")


@pytest.fixture
def directory(advisor: Person, manager: Person, admin: Person) -> InMemoryDirectory:
    """Directory with a handful of active people, one inactive, one store and one market."""
    people = [
        advisor,
        manager,
        admin,
        Person(id="102", first_name="James", last_name="Whitaker", store_id="s1", market_id="m1"),
        Person(id="103", first_name="Priya", last_name="Natarajan", store_id="s2", market_id="m1"),
        Person(id="104", first_name="Rob", last_name="Dale", status="inactive", store_id="s1"),
    ]
    stores = [
        Store(id="s1", name="Downtown", number="12", market_id="m1"),
        Store(id="s2", name="Riverside", number="27", market_id="m1"),
    ]
    markets = [Market(id="m1", name="Northeast")]
    return InMemoryDirectory(people=people, stores=stores, markets=markets)


@pytest.fixture
def resolver(directory: InMemoryDirectory) -> EntityResolver:
    return EntityResolver(directory, today=lambda: FIXED_TODAY)


# =============================================================================
# Metrics Fixtures
# =============================================================================


class StubMetricsProvider(MetricsProvider):
    """Serves canned records keyed by (kind, id)."""

    def __init__(self, records: dict[tuple[EntityKind, str], dict[str, Any]] | None = None):
        self.records = records or {}
        self.calls: list[tuple[EntityKind, str, Period]] = []

    async def fetch_scorecard(
        self,
        kind: EntityKind,
        entity_id: str,
        period: Period,
    ) -> tuple[dict[str, Any], str]:
        self.calls.append((kind, entity_id, period))
        endpoint = f"http://scorecard.test/api/scorecard/{kind.value}/{entity_id}"
        if (kind, entity_id) not in self.records:
            raise MetricsUnavailable("Scorecard API HTTP 404", kind.value, entity_id, endpoint)
        return dict(self.records[(kind, entity_id)]), endpoint

    async def check_endpoint(self, kind: EntityKind) -> dict[str, Any]:
        return {"accessible": True, "status": 200, "endpoint": f"stub/{kind.value}"}

    async def close(self) -> None:
        pass


@pytest.fixture
def metrics_provider() -> StubMetricsProvider:
    return StubMetricsProvider({
        (EntityKind.ADVISOR, "101"): ADVISOR_RECORD,
        (EntityKind.STORE, "s1"): STORE_RECORD,
    })


@pytest.fixture
def gateway(metrics_provider: StubMetricsProvider) -> MetricsGateway:
    return MetricsGateway(metrics_provider, clock=lambda: FIXED_NOW)


@pytest.fixture
def advisor_entity() -> EntityReference:
    return EntityReference(
        kind=EntityKind.ADVISOR,
        id="101",
        display_name="Akeen Jackson",
        period=Period(8, 2025),
    )


@pytest.fixture
def advisor_metrics() -> AuthoritativeMetrics:
    """Trusted advisor metrics as the gateway would return them."""
    return AuthoritativeMetrics(
        kind=EntityKind.ADVISOR,
        entity_id="101",
        values=dict(ADVISOR_RECORD),
        provenance=Provenance(
            endpoint="http://scorecard.test/api/scorecard/advisor/101",
            retrieved_at=FIXED_NOW,
            source=TRUSTED_SOURCE,
        ),
        advanced_fields=["tpp"],
    )


# =============================================================================
# Mock LLM Fixtures
# =============================================================================


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM that returns configurable responses."""
    llm = MagicMock(spec=BaseChatModel)
    llm.ainvoke = AsyncMock(return_value=AIMessage(content="Mock response"))
    return llm


@pytest.fixture
def model_client(mock_llm: MagicMock) -> ModelClient:
    return ModelClient(ProviderConfig(provider_type=ProviderType.LOCAL, timeout_seconds=5.0), llm=mock_llm)


# =============================================================================
# Pipeline Fixtures
# =============================================================================


@pytest.fixture
def validator(validation_settings: ValidationSettings) -> ResponseValidator:
    return ResponseValidator(validation_settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def recorder(audit_store: InMemoryAuditStore) -> AuditRecorder:
    return AuditRecorder(audit_store, clock=lambda: FIXED_NOW)


@pytest.fixture
def service(
    resolver: EntityResolver,
    gateway: MetricsGateway,
    settings_store: SettingsStore[AgentSettings],
    model_client: ModelClient,
    validator: ResponseValidator,
    recorder: AuditRecorder,
    validation_settings: ValidationSettings,
) -> GuardedQueryService:
    return GuardedQueryService(
        resolver=resolver,
        gateway=gateway,
        composer=AnswerComposer(settings_store),
        model=model_client,
        validator=validator,
        corrector=Corrector(),
        recorder=recorder,
        settings_store=settings_store,
        validation_settings=validation_settings,
    )
