"""
Authoritative Metrics Gateway.

Every performance figure shown to a user passes through here:
- Drops forbidden and unapproved field names at the boundary
- Coerces approved values to their declared types
- Reports (never fills in) missing required fields
- Stamps provenance so downstream code can check the source
"""

import asyncio
import math
from datetime import datetime, timezone
from typing import Any, Callable

import structlog

from guarded_qa.core.errors import IncompleteMetrics, MetricsUnavailable
from guarded_qa.domain.fields import (
    ADVANCED_FIELDS,
    APPROVED_FIELDS,
    REQUIRED_FIELDS,
    FieldSpec,
    is_forbidden,
)
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EntityKind,
    EntityReference,
    FieldType,
    Integrity,
    Period,
    Provenance,
)
from guarded_qa.metrics.provider import MetricsProvider

logger = structlog.get_logger(__name__)

TRUSTED_SOURCE = "validated_scorecard_api"

_INVALID = object()


def coerce_value(spec: FieldSpec, raw: Any) -> Any:
    """
    Convert a provider value to the field's declared type.

    Returns the module-level ``_INVALID`` sentinel when the value cannot be
    represented; callers drop such fields rather than guess.
    """
    if spec.type.is_numeric:
        if isinstance(raw, bool):
            return _INVALID
        if isinstance(raw, (int, float)):
            number = raw
        elif isinstance(raw, str):
            cleaned = raw.strip().replace("$", "").replace(",", "").replace("%", "")
            try:
                number = float(cleaned)
            except ValueError:
                return _INVALID
        else:
            return _INVALID
        # NaN and Infinity parse as floats but are not figures
        try:
            if not math.isfinite(number):
                return _INVALID
        except OverflowError:
            return _INVALID
        if spec.type == FieldType.INTEGER:
            if float(number) != int(number):
                return _INVALID
            return int(number)
        return number

    if spec.type == FieldType.OBJECT:
        return raw if isinstance(raw, (dict, list)) else _INVALID

    return str(raw)


def is_trusted(metrics: AuthoritativeMetrics | None) -> tuple[bool, str]:
    """
    Check the provenance stamp of a metrics record.

    Returns:
        (trusted, reason)
    """
    if metrics is None:
        return False, "Invalid data object"
    provenance = metrics.provenance
    if provenance is None or provenance.source != TRUSTED_SOURCE:
        return False, "Data does not contain validated scorecard API metadata"
    missing = [
        name for name, value in (
            ("kind", metrics.kind),
            ("id", metrics.entity_id),
            ("endpoint", provenance.endpoint),
            ("retrieved_at", provenance.retrieved_at),
        ) if not value
    ]
    if missing:
        return False, f"Missing required metadata fields: {', '.join(missing)}"
    if provenance.integrity != Integrity.VERIFIED:
        return False, "Data integrity not verified"
    return True, "Data source validated"


class MetricsGateway:
    """Single path from the scorecard provider to the rest of the pipeline."""

    def __init__(
        self,
        provider: MetricsProvider,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self._provider = provider
        self._timeout = timeout_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def fetch(
        self,
        kind: EntityKind,
        entity_id: str,
        period: Period,
    ) -> AuthoritativeMetrics:
        """
        Fetch whitelisted metrics for one entity.

        Raises:
            MetricsUnavailable: provider failure or timeout
        """
        try:
            record, endpoint = await asyncio.wait_for(
                self._provider.fetch_scorecard(kind, entity_id, period),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise MetricsUnavailable(
                f"Scorecard request exceeded {self._timeout}s", kind.value, entity_id
            ) from None
        except MetricsUnavailable as e:
            logger.error(
                "Scorecard access failed",
                kind=kind.value,
                entity_id=entity_id,
                endpoint=e.endpoint,
                error=str(e),
            )
            raise

        metrics = self._filter(kind, entity_id, record)
        metrics.provenance = Provenance(
            endpoint=endpoint,
            retrieved_at=self._clock(),
            integrity=Integrity.VERIFIED,
            source=TRUSTED_SOURCE,
        )

        required = REQUIRED_FIELDS[kind]
        logger.info(
            "Retrieved validated scorecard data",
            kind=kind.value,
            entity_id=entity_id,
            required_present=f"{len(required) - len(metrics.missing_fields)}/{len(required)}",
            advanced_fields=metrics.advanced_fields,
        )
        return metrics

    async def fetch_for(self, entity: EntityReference) -> AuthoritativeMetrics:
        return await self.fetch(entity.kind, entity.id, entity.period)

    async def fetch_many(
        self,
        entities: list[EntityReference],
    ) -> tuple[list[AuthoritativeMetrics], list[tuple[EntityReference, Exception]]]:
        """
        Fetch several entities concurrently.

        Returns:
            (successful, failed) where failed pairs each entity with its error
        """
        results = await asyncio.gather(
            *(self.fetch_for(entity) for entity in entities),
            return_exceptions=True,
        )
        successful: list[AuthoritativeMetrics] = []
        failed: list[tuple[EntityReference, Exception]] = []
        for entity, result in zip(entities, results):
            if isinstance(result, MetricsUnavailable):
                failed.append((entity, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                successful.append(result)

        logger.info(
            "Batch scorecard results",
            successful=len(successful),
            failed=len(failed),
            total=len(entities),
        )
        return successful, failed

    async def health(self) -> dict[str, dict[str, Any]]:
        """Check that the advisor, store and market endpoints answer."""
        return {kind.value: await self._provider.check_endpoint(kind) for kind in EntityKind}

    def _filter(self, kind: EntityKind, entity_id: str, record: dict[str, Any]) -> AuthoritativeMetrics:
        values: dict[str, Any] = {}
        dropped: list[str] = []

        for name, raw in record.items():
            if is_forbidden(name):
                logger.warning("Dropped forbidden field", field=name, kind=kind.value)
                dropped.append(name)
                continue
            spec = APPROVED_FIELDS.get(name)
            if spec is None:
                logger.debug("Dropped unapproved field", field=name, kind=kind.value)
                dropped.append(name)
                continue
            if raw is None:
                continue
            value = coerce_value(spec, raw)
            if value is _INVALID:
                logger.warning(
                    "Dropped field with unusable value",
                    field=name,
                    expected_type=spec.type.value,
                )
                dropped.append(name)
                continue
            values[name] = value

        missing = [name for name in REQUIRED_FIELDS[kind] if name not in values]
        if missing:
            error = IncompleteMetrics(kind.value, entity_id, missing)
            logger.warning(str(error), kind=kind.value, entity_id=entity_id, missing=missing)

        return AuthoritativeMetrics(
            kind=kind,
            entity_id=entity_id,
            values=values,
            missing_fields=missing,
            advanced_fields=[name for name in values if name in ADVANCED_FIELDS],
            dropped_fields=dropped,
        )
