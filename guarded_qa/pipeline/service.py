"""
Guarded Query Service.

Per-query flow:
    resolve entity -> fetch authoritative metrics (plus the parent market
    for store questions) -> compose prompt -> model completion -> validate
    -> correct -> audit

Refuses rather than fabricates: when authoritative data is unavailable the
model is never called for performance figures.
"""

from dataclasses import dataclass, replace
from typing import Any

import structlog

from guarded_qa.audit.recorder import AuditRecorder
from guarded_qa.composer.composer import AnswerComposer, ContextExtras
from guarded_qa.composer.prompts import AgentSettings
from guarded_qa.config.settings import ValidationSettings
from guarded_qa.core.errors import MalformedModelOutput, MetricsUnavailable
from guarded_qa.core.settings_store import SettingsStore
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EnforcementMode,
    EntityReference,
    Person,
    ValidationResult,
)
from guarded_qa.llm.provider import GenerationParams, ModelClient
from guarded_qa.metrics.gateway import MetricsGateway, is_trusted
from guarded_qa.resolution.entity_resolver import EntityResolver
from guarded_qa.validation.corrector import CorrectionOutcome, Corrector, enforcement_mode_for
from guarded_qa.validation.validator import ResponseValidator

logger = structlog.get_logger(__name__)

UNAVAILABLE_ANSWER = (
    "I can't access verified performance data for {name} right now. "
    "Please check the official scorecard directly or try again shortly."
)


@dataclass
class QueryAnswer:
    """Final answer plus everything needed to explain it."""
    answer: str
    status: str
    entity: EntityReference
    validation: ValidationResult | None = None
    enforcement_mode: EnforcementMode | None = None
    correction: CorrectionOutcome | None = None

    def summary(self) -> dict[str, Any]:
        validation: dict[str, Any] = {"status": self.status}
        if self.validation is not None:
            validation.update(self.validation.summary())
            validation["status"] = self.status
        if self.enforcement_mode is not None:
            validation["enforcement_mode"] = self.enforcement_mode.value
        if self.correction is not None:
            validation["admin_override"] = self.correction.admin_override
            validation["corrected"] = self.correction.corrected
        return {
            "answer": self.answer,
            "validation": validation,
            "entity": self.entity.to_dict(),
        }


class GuardedQueryService:
    """
    Orchestrates one guarded answer.

    Usage:
        service = GuardedQueryService(resolver, gateway, composer, model,
                                      validator, corrector, recorder,
                                      settings_store, validation_settings)
        answer = await service.answer("What are my sales for August?", user)
    """

    def __init__(
        self,
        resolver: EntityResolver,
        gateway: MetricsGateway,
        composer: AnswerComposer,
        model: ModelClient,
        validator: ResponseValidator,
        corrector: Corrector,
        recorder: AuditRecorder,
        settings_store: SettingsStore[AgentSettings],
        validation_settings: ValidationSettings | None = None,
        scorecard_temperature: float = 0.0,
    ):
        self.resolver = resolver
        self.gateway = gateway
        self.composer = composer
        self.model = model
        self.validator = validator
        self.corrector = corrector
        self.recorder = recorder
        self.settings_store = settings_store
        self.validation_settings = validation_settings or ValidationSettings()
        self.scorecard_temperature = scorecard_temperature

    async def answer(
        self,
        query: str,
        user: Person,
        extras: ContextExtras | None = None,
    ) -> QueryAnswer:
        """
        Answer a question with validated figures.

        Raises:
            MalformedModelOutput: strict JSON reply could not be parsed
            ModelUnavailable: model call failed or timed out
        """
        entity = await self.resolver.resolve(query, user)
        performance = self.validator.is_performance_query(query)

        logger.info(
            "Answering query",
            user_id=user.id,
            entity_kind=entity.kind.value,
            entity_id=entity.id,
            resolution_method=entity.resolution_method,
            performance_query=performance,
        )

        metrics: AuthoritativeMetrics | None = None
        if performance:
            metrics = await self._authoritative_metrics(entity)
            if metrics is None:
                return QueryAnswer(
                    answer=UNAVAILABLE_ANSWER.format(name=entity.display_name),
                    status="unavailable",
                    entity=entity,
                )
            if not entity.is_individual:
                extras = await self._with_market_context(entity, extras)

        prompt = await self.composer.build(
            query,
            entity,
            metrics,
            role=user.role,
            user_name=user.full_name,
            extras=extras,
            performance=performance,
        )
        params, timeout = await self._generation_params(prompt.strict_json)
        text = await self.model.complete(prompt.text, params, timeout_seconds=timeout)

        mode = enforcement_mode_for(user.role, self.validation_settings)
        try:
            result = self.validator.validate(
                query,
                text,
                entity,
                metrics,
                strict_json=prompt.strict_json,
                expected_keys=prompt.expected_keys,
                user_id=user.id,
            )
        except MalformedModelOutput as e:
            logger.error("Malformed scorecard reply", user_id=user.id, reason=e.reason)
            self.recorder.record(self.validator.error_result(query, e, user_id=user.id), mode)
            raise

        correction = self.corrector.correct(text, result, mode)
        if result.performance_query:
            self.recorder.record(result, mode)

        return QueryAnswer(
            answer=correction.text,
            status=result.status,
            entity=entity,
            validation=result,
            enforcement_mode=mode,
            correction=correction,
        )

    async def check_text(
        self,
        query: str,
        text: str,
        entity: EntityReference | None = None,
        user_id: str | None = None,
    ) -> ValidationResult:
        """
        Validate a supplied answer as if the model had written it.

        The model is not called and nothing is audited. Without an entity,
        or when its metrics are unavailable, only the field-name policy
        applies.
        """
        metrics = await self._authoritative_metrics(entity) if entity is not None else None
        return self.validator.validate(
            query,
            text,
            entity,
            metrics,
            user_id=user_id,
            assume_performance=True,
        )

    async def _authoritative_metrics(self, entity: EntityReference) -> AuthoritativeMetrics | None:
        try:
            metrics = await self.gateway.fetch_for(entity)
        except MetricsUnavailable as e:
            logger.warning(
                "Answering without performance data",
                kind=e.kind,
                entity_id=e.entity_id,
                error=str(e),
            )
            return None

        trusted, reason = is_trusted(metrics)
        if not trusted:
            logger.warning("Discarding untrusted metrics", entity_id=entity.id, reason=reason)
            return None
        return metrics

    async def _with_market_context(
        self,
        entity: EntityReference,
        extras: ContextExtras | None,
    ) -> ContextExtras:
        """Attach the parent market's figures to a store question."""
        extras = extras or ContextExtras()
        if extras.aggregate is not None:
            return extras
        market = await self.resolver.parent_market(entity)
        if market is None:
            return extras

        successful, failed = await self.gateway.fetch_many([market])
        if failed:
            logger.warning(
                "Answering without market context",
                market_id=market.id,
                error=str(failed[0][1]),
            )
            return extras
        return replace(extras, aggregate=successful[0])

    async def _generation_params(self, strict_json: bool) -> tuple[GenerationParams, float]:
        generation = (await self.settings_store.get()).generation
        params = GenerationParams(
            temperature=self.scorecard_temperature if strict_json else generation.temperature,
            top_k=generation.top_k,
            top_p=generation.top_p,
            max_tokens=generation.max_tokens,
            seed=generation.seed,
        )
        return params, generation.timeout_seconds
