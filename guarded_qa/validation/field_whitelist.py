"""Field-name policy check on generated text."""

import re

from guarded_qa.domain.fields import is_approved, is_forbidden, suggests_performance_data
from guarded_qa.domain.models import Mismatch, Severity

# Only identifier-shaped tokens count as field references; plain English
# words like "sales" or "tires" never do.
_CAMEL_CASE_RE = re.compile(r"\b[a-z]+(?:[A-Z][a-z0-9]*)+\b")
_SNAKE_CASE_RE = re.compile(r"\b[a-zA-Z][a-zA-Z0-9]*(?:_[a-zA-Z0-9]+)+\b")
_TEMPLATE_VAR_RE = re.compile(r"\$\{(\w+)\}")
_JSON_KEY_RE = re.compile(r'"(\w+)"\s*:')


def extract_field_references(text: str) -> list[str]:
    """Identifier-like names in order of first appearance."""
    found: dict[str, int] = {}
    for regex in (_JSON_KEY_RE, _TEMPLATE_VAR_RE):
        for match in regex.finditer(text):
            found.setdefault(match.group(1), match.start())
    for regex in (_CAMEL_CASE_RE, _SNAKE_CASE_RE):
        for match in regex.finditer(text):
            found.setdefault(match.group(0), match.start())
    return sorted(found, key=found.get)


def check_field_whitelist(text: str) -> tuple[list[Mismatch], list[str]]:
    """
    Flag forbidden and unapproved performance-looking field names.

    Returns:
        (violations, approved_fields_referenced)
    """
    violations: list[Mismatch] = []
    approved: list[str] = []

    for name in extract_field_references(text):
        if is_approved(name):
            approved.append(name)
        elif is_forbidden(name):
            violations.append(
                Mismatch(
                    field=name,
                    expected=None,
                    detected=name,
                    tolerance=None,
                    type="forbidden_field",
                    severity=Severity.HIGH,
                    message=f"Forbidden field '{name}' referenced in response",
                )
            )
        elif suggests_performance_data(name):
            violations.append(
                Mismatch(
                    field=name,
                    expected=None,
                    detected=name,
                    tolerance=None,
                    type="unapproved_performance_field",
                    severity=Severity.MEDIUM,
                    message=f"Unapproved performance field '{name}' referenced in response",
                )
            )
    return violations, approved
