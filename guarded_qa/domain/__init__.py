"""
Domain Model.

Entity references, authoritative metrics, validation results and the
approved field catalogue.
"""

from guarded_qa.domain.fields import APPROVED_FIELDS, FORBIDDEN_FIELDS, REQUIRED_FIELDS, FieldSpec
from guarded_qa.domain.models import (
    AuthoritativeMetrics,
    EnforcementMode,
    EntityKind,
    EntityReference,
    Mismatch,
    Period,
    Person,
    Provenance,
    Severity,
    ValidationResult,
)

__all__ = [
    "APPROVED_FIELDS",
    "FORBIDDEN_FIELDS",
    "REQUIRED_FIELDS",
    "FieldSpec",
    "AuthoritativeMetrics",
    "EnforcementMode",
    "EntityKind",
    "EntityReference",
    "Mismatch",
    "Period",
    "Person",
    "Provenance",
    "Severity",
    "ValidationResult",
]
