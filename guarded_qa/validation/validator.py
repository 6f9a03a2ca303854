"""
Response Validator.

Checks every numeric claim in a generated answer against authoritative
metrics before the answer reaches a user.

Validation steps:
1. Performance-query test (non-performance questions pass untouched)
2. Claim extraction (strict JSON parse and key check, or the ordered extractor table)
3. Tolerance-aware comparison with severity grading
4. Field-name whitelist check
5. Confidence score and disclaimer
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import structlog

from guarded_qa.config.settings import ValidationSettings
from guarded_qa.core.errors import MalformedModelOutput, ValidationSystemError
from guarded_qa.domain.fields import NUMERIC_FIELDS
from guarded_qa.domain.models import (
    AuditInfo,
    AuthoritativeMetrics,
    EntityReference,
    Mismatch,
    Severity,
    ValidationResult,
)
from guarded_qa.metrics.gateway import is_trusted
from guarded_qa.validation.extractors import ExtractedClaim, extract_claims, parse_scorecard_json
from guarded_qa.validation.field_whitelist import check_field_whitelist

logger = structlog.get_logger(__name__)

_PERFORMANCE_QUERY_RE = re.compile(
    r"\b(?:sales|revenue|performance|metrics?|score\s*cards?|tpp|pat|fluid\s+attach"
    r"|oil\s+changes?|tires?|alignments?|brakes?|gross\s+profit|gp|invoices?|tickets?"
    r"|attach\s+rates?|numbers|stats|statistics|kpis?)\b",
    re.IGNORECASE,
)

HIGH_SEVERITY_DISCLAIMER = (
    "⚠️ ACCURACY WARNING: This response contains {count} significant data discrepancies. "
    "Please verify all metrics independently using the official scorecard system."
)
NOTICE_DISCLAIMER = (
    "⚠️ NOTICE: Some metrics in this response may not be fully accurate. "
    "Please cross-reference with the official scorecard for precise values."
)
ERROR_DISCLAIMER = "Unable to validate response accuracy. Please verify data independently."


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


class ResponseValidator:
    """
    Validates generated answers against authoritative metrics.

    Pure apart from the audit timestamp: the same inputs always yield the
    same mismatches, confidence and disclaimer.
    """

    def __init__(
        self,
        settings: ValidationSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._settings = settings or ValidationSettings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._penalties = {
            Severity.LOW: self._settings.penalty_low,
            Severity.MEDIUM: self._settings.penalty_medium,
            Severity.HIGH: self._settings.penalty_high,
        }

    @staticmethod
    def is_performance_query(query: str) -> bool:
        return bool(_PERFORMANCE_QUERY_RE.search(query))

    def validate(
        self,
        query: str,
        generated_text: str,
        entity: EntityReference | None,
        metrics: AuthoritativeMetrics | None,
        *,
        strict_json: bool = False,
        expected_keys: tuple[str, ...] = (),
        user_id: str | None = None,
        assume_performance: bool = False,
    ) -> ValidationResult:
        """
        Validate one generated answer.

        Args:
            query: The user's question
            generated_text: Raw model output
            entity: Resolved subject of the question
            metrics: Authoritative metrics for the entity
            strict_json: Parse the text as a JSON-only scorecard reply
            expected_keys: Exact key set the JSON reply must carry
            user_id: Asking user, for the audit record
            assume_performance: Skip the performance-query test

        Returns:
            ValidationResult; internal failures produce an error result

        Raises:
            MalformedModelOutput: strict_json is set and the text is not a
                valid scorecard object
        """
        audit = AuditInfo(timestamp=self._clock(), user_id=user_id, query=query)

        if not assume_performance and not self.is_performance_query(query):
            logger.debug("Non-performance query, skipping metric validation")
            return ValidationResult(
                is_valid=True,
                mismatches=[],
                confidence_score=1.0,
                audit_log=audit,
                performance_query=False,
            )

        try:
            return self._validate(generated_text, entity, metrics, strict_json, expected_keys, audit)
        except MalformedModelOutput:
            raise
        except Exception as e:
            error = ValidationSystemError(e)
            logger.error(
                "Validation failed",
                error=str(error),
                error_type=type(e).__name__,
                user_id=user_id,
            )
            return self.error_result(query, error, user_id=user_id)

    def _validate(
        self,
        text: str,
        entity: EntityReference | None,
        metrics: AuthoritativeMetrics | None,
        strict_json: bool,
        expected_keys: tuple[str, ...],
        audit: AuditInfo,
    ) -> ValidationResult:
        authoritative = self.expected_values(metrics)
        key_violations: list[Mismatch] = []
        if strict_json:
            data, claims = parse_scorecard_json(text)
            if expected_keys:
                key_violations = self.check_scorecard_keys(data, expected_keys, authoritative)
        else:
            claims = extract_claims(text)

        expected: dict[str, Any] = {}
        detected: dict[str, Any] = {}
        mismatches: list[Mismatch] = []

        for metric, claim in claims.items():
            detected[metric] = claim.value
            if metric not in authoritative:
                continue
            expected[metric] = authoritative[metric]
            mismatch = self.compare(metric, authoritative[metric], claim)
            if mismatch is not None:
                mismatches.append(mismatch)

        violations, approved = check_field_whitelist(text)
        if key_violations:
            flagged = {m.field for m in violations}
            key_violations = [m for m in key_violations if m.field not in flagged]
            unexpected = {m.field for m in key_violations if m.type == "unexpected_field"}
            approved = [name for name in approved if name not in unexpected]
        mismatches.extend(key_violations)
        mismatches.extend(violations)

        confidence = self.confidence(mismatches)
        disclaimer = self.disclaimer(mismatches)

        if mismatches:
            logger.warning(
                "Validation found discrepancies",
                entity_id=entity.id if entity else None,
                mismatch_count=len(mismatches),
                fields=[m.field for m in mismatches],
                confidence=confidence,
            )

        return ValidationResult(
            is_valid=not mismatches,
            mismatches=mismatches,
            confidence_score=confidence,
            audit_log=audit,
            disclaimer=disclaimer,
            expected_values=expected,
            detected_values=detected,
            approved_fields=approved,
        )

    def check_scorecard_keys(
        self,
        data: dict[str, Any],
        expected_keys: tuple[str, ...],
        authoritative: dict[str, Any],
    ) -> list[Mismatch]:
        """
        Hold a JSON reply to the exact key set it was asked for.

        Extra or renamed keys are flagged, and so is every expected metric
        that is absent (or null) while an authoritative value exists.
        """
        violations = [
            Mismatch(
                field=key,
                expected=None,
                detected=key,
                tolerance=None,
                type="unexpected_field",
                severity=Severity.HIGH,
                message=f"Unexpected key '{key}' in scorecard reply",
            )
            for key in data
            if key not in expected_keys
        ]
        for key in expected_keys:
            if key in NUMERIC_FIELDS and data.get(key) is None and key in authoritative:
                violations.append(
                    Mismatch(
                        field=key,
                        expected=authoritative[key],
                        detected=None,
                        tolerance=NUMERIC_FIELDS[key].tolerance,
                        type="missing_field",
                        severity=Severity.HIGH,
                        message=f"Scorecard reply omitted '{key}'",
                    )
                )
        return violations

    def expected_values(self, metrics: AuthoritativeMetrics | None) -> dict[str, Any]:
        """Numeric authoritative values keyed by comparison name."""
        trusted, reason = is_trusted(metrics)
        if not trusted:
            if metrics is not None:
                logger.warning("Ignoring untrusted metrics", reason=reason)
            return {}

        values: dict[str, Any] = {}
        # Direct names win over aggregates mapped onto them
        for name, value in metrics.values.items():
            spec = NUMERIC_FIELDS.get(name)
            if spec is not None and spec.canonical is None:
                values[name] = value
        for name, value in metrics.values.items():
            spec = NUMERIC_FIELDS.get(name)
            if spec is not None and spec.canonical is not None:
                values.setdefault(spec.canonical, value)
        return values

    def compare(self, metric: str, expected: Any, claim: ExtractedClaim) -> Mismatch | None:
        """Inclusive tolerance comparison; returns None when within tolerance."""
        spec = NUMERIC_FIELDS[metric]
        tolerance = _decimal(spec.tolerance)
        difference = abs(_decimal(expected) - _decimal(claim.value))
        if difference <= tolerance:
            return None

        severity = self.severity(tolerance, _decimal(expected), difference)
        return Mismatch(
            field=metric,
            expected=expected,
            detected=claim.value,
            tolerance=spec.tolerance,
            type=spec.type.value,
            severity=severity,
            message=f"{metric} mismatch: expected {expected}, got {claim.value}",
            detected_text=claim.text,
        )

    def severity(self, tolerance: Decimal, expected: Decimal, difference: Decimal) -> Severity:
        if tolerance == 0 or expected == 0:
            return Severity.HIGH
        percent = difference / abs(expected) * 100
        if percent < Decimal(str(self._settings.medium_threshold_percent)):
            return Severity.LOW
        if percent < Decimal(str(self._settings.high_threshold_percent)):
            return Severity.MEDIUM
        return Severity.HIGH

    def confidence(self, mismatches: list[Mismatch]) -> float:
        penalty = sum(self._penalties[m.severity] for m in mismatches)
        return round(max(0.0, 1.0 - penalty), 4)

    def disclaimer(self, mismatches: list[Mismatch]) -> str | None:
        if not mismatches:
            return None
        high_count = sum(1 for m in mismatches if m.severity == Severity.HIGH)
        if high_count:
            return HIGH_SEVERITY_DISCLAIMER.format(count=high_count)
        return NOTICE_DISCLAIMER

    def error_result(
        self,
        query: str,
        error: Exception,
        user_id: str | None = None,
    ) -> ValidationResult:
        """Untrusted result used when validation itself could not run."""
        return ValidationResult(
            is_valid=False,
            mismatches=[
                Mismatch(
                    field="system_error",
                    expected=None,
                    detected=None,
                    tolerance=None,
                    type="validation_error",
                    severity=Severity.HIGH,
                    message=str(error),
                )
            ],
            confidence_score=0.0,
            audit_log=AuditInfo(
                timestamp=self._clock(),
                user_id=user_id,
                query=query,
                error=str(error),
            ),
            disclaimer=ERROR_DISCLAIMER,
        )
