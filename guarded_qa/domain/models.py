"""
Core data model for guarded query answering.

Entities flow through the pipeline in this order:
    EntityReference -> AuthoritativeMetrics -> (model text) -> ValidationResult
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EntityKind(str, Enum):
    """Level of the organization a query targets."""
    ADVISOR = "advisor"
    STORE = "store"
    MARKET = "market"


class FieldType(str, Enum):
    """Value types for approved scorecard fields."""
    CURRENCY = "currency"
    INTEGER = "integer"
    PERCENTAGE = "percentage"
    DECIMAL = "decimal"
    STRING = "string"
    TIMESTAMP = "timestamp"
    OBJECT = "object"

    @property
    def is_numeric(self) -> bool:
        return self in (
            FieldType.CURRENCY,
            FieldType.INTEGER,
            FieldType.PERCENTAGE,
            FieldType.DECIMAL,
        )


class Integrity(str, Enum):
    VERIFIED = "verified"
    UNVERIFIED = "unverified"


class Severity(str, Enum):
    """Mismatch severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EnforcementMode(str, Enum):
    """How the corrector treats a failed validation."""
    STRICT = "strict"          # disclaimer + value substitution
    ADVISORY = "advisory"      # disclaimer only
    BYPASSED = "bypassed"      # admin override, text untouched


# =============================================================================
# Directory records
# =============================================================================


@dataclass
class Person:
    """An application user as known to the entity directory."""
    id: str
    first_name: str
    last_name: str
    role: str = "advisor"
    status: str = "active"
    store_id: str | None = None
    market_id: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass
class Store:
    id: str
    name: str
    number: str | None = None
    market_id: str | None = None


@dataclass
class Market:
    id: str
    name: str


# =============================================================================
# Entity reference
# =============================================================================


MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


@dataclass(frozen=True)
class Period:
    """Reporting period; either part may be absent."""
    month: int | None = None
    year: int | None = None

    @property
    def label(self) -> str:
        if self.month and self.year:
            return f"{MONTH_NAMES[self.month - 1]} {self.year}"
        if self.month:
            return MONTH_NAMES[self.month - 1]
        if self.year:
            return str(self.year)
        return "current period"

    def to_dict(self) -> dict[str, int | None]:
        return {"month": self.month, "year": self.year}


@dataclass
class EntityReference:
    """A resolved pointer to one advisor/store/market plus reporting period."""
    kind: EntityKind
    id: str
    display_name: str
    period: Period = field(default_factory=Period)
    resolution_method: str = "self"
    matched_name: str | None = None

    @property
    def is_individual(self) -> bool:
        return self.kind == EntityKind.ADVISOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "id": self.id,
            "display_name": self.display_name,
            "period": self.period.to_dict(),
            "resolution_method": self.resolution_method,
            "matched_name": self.matched_name,
        }


# =============================================================================
# Authoritative metrics
# =============================================================================


@dataclass
class Provenance:
    """Where and when a metrics record was obtained."""
    endpoint: str
    retrieved_at: datetime
    integrity: Integrity = Integrity.VERIFIED
    source: str = "validated_scorecard_api"

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "retrieved_at": self.retrieved_at.isoformat(),
            "integrity": self.integrity.value,
            "source": self.source,
        }


@dataclass
class AuthoritativeMetrics:
    """Whitelisted, provenance-stamped performance figures for one entity."""
    kind: EntityKind
    entity_id: str
    values: dict[str, Any] = field(default_factory=dict)
    provenance: Provenance | None = None
    missing_fields: list[str] = field(default_factory=list)
    advanced_fields: list[str] = field(default_factory=list)
    dropped_fields: list[str] = field(default_factory=list)

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entity_id": self.entity_id,
            "values": dict(self.values),
            "provenance": self.provenance.to_dict() if self.provenance else None,
            "missing_fields": list(self.missing_fields),
            "advanced_fields": list(self.advanced_fields),
        }


# =============================================================================
# Validation
# =============================================================================


@dataclass
class Mismatch:
    """A disagreement between a generated claim and the authoritative value.

    Field-whitelist violations use the same shape with ``type`` set to
    ``forbidden_field`` or ``unapproved_performance_field``.
    """
    field: str
    expected: Any
    detected: Any
    tolerance: float | None
    type: str
    severity: Severity
    message: str
    detected_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "expected": self.expected,
            "detected": self.detected,
            "tolerance": self.tolerance,
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
        }


@dataclass
class AuditInfo:
    timestamp: datetime
    user_id: str | None
    query: str
    validation_type: str = "performance_metric_validation"
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "query": self.query,
            "validation_type": self.validation_type,
            "error": self.error,
        }


@dataclass
class ValidationResult:
    """Outcome of validating one generated answer."""
    is_valid: bool
    mismatches: list[Mismatch]
    confidence_score: float
    audit_log: AuditInfo
    disclaimer: str | None = None
    expected_values: dict[str, Any] = field(default_factory=dict)
    detected_values: dict[str, Any] = field(default_factory=dict)
    approved_fields: list[str] = field(default_factory=list)
    performance_query: bool = True

    @property
    def status(self) -> str:
        return "passed" if self.is_valid else "failed"

    @property
    def has_high_severity(self) -> bool:
        return any(m.severity == Severity.HIGH for m in self.mismatches)

    @property
    def field_violations(self) -> list[Mismatch]:
        return [
            m for m in self.mismatches
            if m.type in ("forbidden_field", "unapproved_performance_field")
        ]

    def summary(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "violations": [m.to_dict() for m in self.mismatches],
            "approved_field_count": len(self.approved_fields),
            "confidence_score": self.confidence_score,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "mismatches": [m.to_dict() for m in self.mismatches],
            "confidence_score": self.confidence_score,
            "disclaimer": self.disclaimer,
            "expected_values": dict(self.expected_values),
            "detected_values": dict(self.detected_values),
            "approved_fields": list(self.approved_fields),
            "performance_query": self.performance_query,
            "audit_log": self.audit_log.to_dict(),
        }
