"""
FastAPI Application for Guarded Query Answering.

Query endpoint for the chat assistant plus validation monitoring endpoints.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from guarded_qa.audit.recorder import AuditRecorder
from guarded_qa.audit.store import AuditStore, FileAuditStore, InMemoryAuditStore
from guarded_qa.composer.composer import AnswerComposer, ContextExtras, Goal, PeerSummary
from guarded_qa.composer.prompts import AgentSettings, GenerationDefaults
from guarded_qa.config.settings import Settings, get_settings
from guarded_qa.core.errors import MalformedModelOutput, ModelUnavailable
from guarded_qa.core.settings_store import (
    JsonFileSettingsSource,
    SettingsSource,
    SettingsStore,
    StaticSettingsSource,
)
from guarded_qa.domain.fields import APPROVED_FIELDS, FORBIDDEN_FIELDS
from guarded_qa.domain.models import EntityKind, EntityReference, Period, Person
from guarded_qa.llm.provider import ModelClient, ProviderConfig
from guarded_qa.metrics.gateway import MetricsGateway
from guarded_qa.metrics.provider import HttpMetricsProvider
from guarded_qa.observability.correlation import CorrelationMiddleware, get_correlation_id
from guarded_qa.observability.logging import QueryLogContext, configure_logging
from guarded_qa.pipeline.service import GuardedQueryService
from guarded_qa.resolution.directory import EntityDirectory, InMemoryDirectory
from guarded_qa.resolution.entity_resolver import EntityResolver
from guarded_qa.validation.corrector import Corrector
from guarded_qa.validation.validator import ResponseValidator

settings = get_settings()

# Configure structured logging
configure_logging(
    level=settings.log_level,
    format=settings.observability.log_format,
    service_name=settings.app_name,
    max_text_chars=settings.observability.log_text_max_chars,
)

logger = structlog.get_logger(__name__)

# =============================================================================
# Global State
# =============================================================================

_service: GuardedQueryService | None = None
_recorder: AuditRecorder | None = None
_metrics_provider: HttpMetricsProvider | None = None


def get_service() -> GuardedQueryService:
    """Get the global query service."""
    if _service is None:
        raise HTTPException(status_code=503, detail="Query service not initialized")
    return _service


def get_recorder() -> AuditRecorder:
    """Get the global audit recorder."""
    if _recorder is None:
        raise HTTPException(status_code=503, detail="Audit log not initialized")
    return _recorder


def create_audit_store(config: Settings) -> AuditStore:
    if config.audit.backend == "file":
        return FileAuditStore(config.audit.file_path)
    return InMemoryAuditStore()


def create_directory(config: Settings) -> EntityDirectory:
    if config.directory.file_path:
        return InMemoryDirectory.from_file(config.directory.file_path)
    logger.warning("No directory snapshot configured, name lookups will fall back to the asking user")
    return InMemoryDirectory()


def create_settings_source(
    config: Settings,
    defaults: AgentSettings,
) -> SettingsSource[AgentSettings]:
    path = config.composer.agent_settings_path
    if path:
        return JsonFileSettingsSource(
            path,
            decode=lambda data: AgentSettings.from_dict(data, base=defaults),
            encode=AgentSettings.to_dict,
        )
    return StaticSettingsSource(defaults)


def create_service(
    config: Settings,
    directory: EntityDirectory,
    metrics_provider: HttpMetricsProvider,
    recorder: AuditRecorder,
) -> GuardedQueryService:
    """Wire the per-query pipeline from settings."""
    agent_settings = AgentSettings(
        generation=GenerationDefaults(
            temperature=config.llm.temperature,
            top_k=config.llm.top_k,
            top_p=config.llm.top_p,
            max_tokens=config.llm.max_tokens,
            seed=config.llm.seed,
            timeout_seconds=config.llm.timeout_seconds,
        )
    )
    settings_store = SettingsStore(
        create_settings_source(config, agent_settings),
        default=agent_settings,
        ttl_seconds=config.cache.settings_ttl,
    )
    return GuardedQueryService(
        resolver=EntityResolver(directory),
        gateway=MetricsGateway(metrics_provider, timeout_seconds=config.metrics.timeout_seconds),
        composer=AnswerComposer(
            settings_store,
            max_prompt_chars=config.composer.max_prompt_chars,
            max_goals=config.composer.max_goals,
            max_peers=config.composer.max_peers,
        ),
        model=ModelClient(ProviderConfig.from_settings(config.llm)),
        validator=ResponseValidator(config.validation),
        corrector=Corrector(),
        recorder=recorder,
        settings_store=settings_store,
        validation_settings=config.validation,
        scorecard_temperature=config.llm.scorecard_temperature,
    )


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _service, _recorder, _metrics_provider

    logger.info("Starting Guarded Query Answering API", version=settings.app_version)

    _recorder = AuditRecorder(
        create_audit_store(settings),
        write_timeout_seconds=settings.audit.write_timeout_seconds,
    )
    token = settings.metrics.service_token
    _metrics_provider = HttpMetricsProvider(
        base_url=settings.metrics.base_url,
        timeout_seconds=settings.metrics.timeout_seconds,
        service_token=token.get_secret_value() if token else None,
        user_agent=settings.metrics.user_agent,
    )
    _service = create_service(settings, create_directory(settings), _metrics_provider, _recorder)
    logger.info(
        "Query service initialized",
        llm_provider=settings.llm.provider,
        audit_backend=settings.audit.backend,
        enforcement_mode=settings.validation.enforcement_mode,
    )

    yield

    logger.info("Shutting down Guarded Query Answering API")
    await _recorder.drain()
    await _metrics_provider.close()
    _service = None


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Guarded Query Answering API",
    version=settings.app_version,
    description="Validated performance answers for service advisors",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationMiddleware)


# =============================================================================
# Request/Response Models
# =============================================================================


class UserPayload(BaseModel):
    """The authenticated user asking the question."""

    id: str
    first_name: str
    last_name: str = ""
    role: str = "advisor"
    store_id: str | None = None
    market_id: str | None = None

    def to_person(self) -> Person:
        return Person(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            role=self.role,
            store_id=self.store_id,
            market_id=self.market_id,
        )


class GoalPayload(BaseModel):
    metric: str
    target: float
    period_type: str = "monthly"


class PeerPayload(BaseModel):
    name: str
    rank: int | None = None


class QueryRequest(BaseModel):
    """Request model for assistant queries."""

    query: str = Field(..., min_length=1, description="Natural language question")
    user: UserPayload
    goals: list[GoalPayload] = Field(default_factory=list, description="Goals shown as context")
    peers: list[PeerPayload] = Field(default_factory=list, description="Peers shown as context")


class ValidationSummary(BaseModel):
    status: str
    violations: list[dict[str, Any]] = Field(default_factory=list)
    approved_field_count: int = 0
    confidence_score: float | None = None
    enforcement_mode: str | None = None
    admin_override: bool = False
    corrected: bool = False


class QueryResponse(BaseModel):
    """Response model for assistant queries."""

    id: str
    answer: str
    validation: ValidationSummary
    entity: dict[str, Any]


class SystemPromptsUpdate(BaseModel):
    """Replacement system prompt plus optional per-role prompts."""

    base: str = Field(..., min_length=1, description="Base system prompt")
    advisor: str | None = None
    manager: str | None = None
    admin: str | None = None
    updated_by: str | None = None


class AgentConfigUpdate(BaseModel):
    """Generation parameters to change; omitted values keep their current setting."""

    temperature: float | None = Field(default=None, ge=0, le=2)
    top_k: int | None = Field(default=None, ge=1, le=100)
    top_p: float | None = Field(default=None, gt=0, le=1)
    max_tokens: int | None = Field(default=None, ge=1)
    seed: int | None = None
    timeout_seconds: float | None = Field(default=None, gt=0)
    updated_by: str | None = None


class ValidationTestRequest(BaseModel):
    """A sample answer to run through the validator."""

    response_text: str = Field(..., min_length=1)
    test_query: str = Field(..., min_length=1)
    test_user_id: str | None = None
    entity_kind: EntityKind | None = None
    entity_id: str | None = None
    month: int | None = Field(default=None, ge=1, le=12)
    year: int | None = Field(default=None, ge=2000)

    def entity(self) -> EntityReference | None:
        if self.entity_kind is None or not self.entity_id:
            return None
        today = datetime.now(timezone.utc)
        return EntityReference(
            kind=self.entity_kind,
            id=self.entity_id,
            display_name=self.entity_id,
            period=Period(self.month or today.month, self.year or today.year),
            resolution_method="explicit",
        )


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Endpoints
# =============================================================================


@app.get("/api/health", tags=["System"])
async def health_check() -> dict[str, Any]:
    """
    Health check endpoint.

    Checks the scorecard endpoints and reports the last known model and
    audit log state.
    """
    service = get_service()
    recorder = get_recorder()

    metrics_api = await service.gateway.health()
    metrics_ok = all(status.get("accessible") for status in metrics_api.values())

    return {
        "status": "healthy" if metrics_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "metrics_api": metrics_api,
        "llm": service.model.health.to_dict(),
        "audit": {
            "pending_writes": recorder.pending_writes,
            "failed_writes": recorder.failed_writes,
        },
    }


@app.get("/api/llm/health", tags=["System"])
async def get_llm_health() -> dict[str, Any]:
    """Run a live completion against the configured model."""
    service = get_service()
    health = await service.model.health_check()
    return health.to_dict()


@app.post("/api/ai/query", response_model=QueryResponse, tags=["Assistant"])
async def process_query(request: QueryRequest) -> QueryResponse:
    """
    Answer a question with validated performance figures.

    Returns 502 when a scorecard reply is not valid JSON and 503 when the
    model is unavailable.
    """
    service = get_service()
    query_id = get_correlation_id() or str(uuid.uuid4())
    extras = ContextExtras(
        goals=[Goal(g.metric, g.target, g.period_type) for g in request.goals],
        peers=[PeerSummary(p.name, p.rank) for p in request.peers],
    )

    try:
        with QueryLogContext(query_id=query_id, user_id=request.user.id):
            logger.info("Processing query", query=request.query)
            result = await service.answer(request.query, request.user.to_person(), extras)
    except MalformedModelOutput as e:
        raise HTTPException(
            status_code=502,
            detail=f"Model returned an unusable scorecard reply: {e.reason}",
        )
    except ModelUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))

    summary = result.summary()
    return QueryResponse(
        id=query_id,
        answer=summary["answer"],
        validation=ValidationSummary(**summary["validation"]),
        entity=summary["entity"],
    )


# =============================================================================
# Validation Monitoring Endpoints
# =============================================================================


@app.get("/api/ai-validation/stats", tags=["Validation"])
async def get_validation_stats(days: int = Query(default=7, ge=1, le=365)) -> dict[str, Any]:
    """Pass/fail summary over the last ``days`` days."""
    return await get_recorder().stats(days=days)


@app.get("/api/ai-validation/trends", tags=["Validation"])
async def get_validation_trends(days: int = Query(default=30, ge=1, le=365)) -> dict[str, Any]:
    """Daily validation totals, newest first."""
    return {"period_days": days, "trends": await get_recorder().trends(days=days)}


@app.get("/api/ai-validation/failures", tags=["Validation"])
async def get_validation_failures(
    days: int = Query(default=7, ge=1, le=365),
    limit: int = Query(default=50, ge=1, le=500),
) -> dict[str, Any]:
    """Most recent failed validations."""
    failures = await get_recorder().recent_failures(days=days, limit=limit)
    return {"period_days": days, "count": len(failures), "failures": failures}


@app.get("/api/ai-validation/request/{correlation_id}", tags=["Validation"])
async def get_request_validations(
    correlation_id: str,
    days: int = Query(default=30, ge=1, le=365),
) -> dict[str, Any]:
    """Audit entries written while handling one request."""
    entries = await get_recorder().for_request(correlation_id, days=days)
    return {"correlation_id": correlation_id, "count": len(entries), "entries": entries}


@app.get("/api/ai-validation/approved-fields", tags=["Validation"])
async def get_approved_fields() -> dict[str, Any]:
    """Field names that may carry performance data, and the names that never may."""
    return {
        "approved_fields": {
            name: {
                "type": spec.type.value,
                "description": spec.description,
                "tolerance": spec.tolerance,
            }
            for name, spec in APPROVED_FIELDS.items()
        },
        "forbidden_fields": sorted(FORBIDDEN_FIELDS),
        "field_count": len(APPROVED_FIELDS),
    }


@app.post("/api/ai-validation/test", tags=["Validation"])
async def run_validation_test(request: ValidationTestRequest) -> dict[str, Any]:
    """
    Run a sample answer through the validator without calling the model.

    When an entity is named its authoritative metrics are fetched and the
    answer's figures are compared against them. Results are not audited.
    """
    service = get_service()
    result = await service.check_text(
        request.test_query,
        request.response_text,
        entity=request.entity(),
        user_id=request.test_user_id,
    )
    return {"validation": result.to_dict(), "timestamp": _utc_timestamp()}


@app.get("/api/ai-validation/user/{user_id}", tags=["Validation"])
async def get_user_validation_history(
    user_id: str,
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=100, ge=1, le=1000),
) -> dict[str, Any]:
    """Validation history for one user."""
    return await get_recorder().user_history(user_id, days=days, limit=limit)


# =============================================================================
# Agent Settings Endpoints
# =============================================================================


async def _save_agent_settings(
    store: SettingsStore[AgentSettings],
    updated: AgentSettings,
    updated_by: str | None,
    changed: str,
) -> AgentSettings:
    try:
        saved = await store.update(updated)
    except NotImplementedError:
        raise HTTPException(
            status_code=409,
            detail="Agent settings are read-only; set COMPOSER_AGENT_SETTINGS_PATH to allow edits",
        )
    logger.info("Agent settings updated", changed=changed, updated_by=updated_by)
    return saved


@app.get("/api/ai-settings/config", tags=["Settings"])
async def get_agent_settings() -> dict[str, Any]:
    """Prompts and generation parameters currently served to the composer."""
    current = await get_service().settings_store.get()
    return {"settings": current.to_dict(), "timestamp": _utc_timestamp()}


@app.put("/api/ai-settings/prompts/system", tags=["Settings"])
async def update_system_prompts(update: SystemPromptsUpdate) -> dict[str, Any]:
    """Replace the base system prompt and, where given, the role prompts."""
    store = get_service().settings_store
    current = await store.get()
    role_prompts = dict(current.role_prompts)
    for role, prompt in (
        ("advisor", update.advisor),
        ("manager", update.manager),
        ("admin", update.admin),
    ):
        if prompt:
            role_prompts[role] = prompt

    saved = await _save_agent_settings(
        store,
        replace(current, system_prompt=update.base, role_prompts=role_prompts),
        update.updated_by,
        changed="system_prompts",
    )
    return {
        "message": "System prompts updated",
        "prompts": {"base": saved.system_prompt, **saved.role_prompts},
        "updated_by": update.updated_by,
        "timestamp": _utc_timestamp(),
    }


@app.put("/api/ai-settings/config/agent", tags=["Settings"])
async def update_agent_config(update: AgentConfigUpdate) -> dict[str, Any]:
    """Change generation parameters used for free-text answers."""
    store = get_service().settings_store
    current = await store.get()
    changes = update.model_dump(exclude_none=True, exclude={"updated_by"})

    saved = await _save_agent_settings(
        store,
        replace(current, generation=replace(current.generation, **changes)),
        update.updated_by,
        changed="generation",
    )
    return {
        "message": "Agent configuration updated",
        "generation": saved.to_dict()["generation"],
        "updated_by": update.updated_by,
        "timestamp": _utc_timestamp(),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "guarded_qa.api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
