"""
Answer correction under an explicit enforcement mode.

- strict:   disclaimer, high-severity value substitution, audit footer
- advisory: disclaimer and audit footer only
- bypassed: text untouched, outcome flagged as an admin override
"""

import re
from dataclasses import dataclass

import structlog

from guarded_qa.config.settings import ValidationSettings
from guarded_qa.domain.models import EnforcementMode, Mismatch, Severity, ValidationResult

logger = structlog.get_logger(__name__)

AUDIT_FOOTER = "📊 Data verified against official scorecard API ({timestamp})"

ADMIN_ROLES = frozenset({"admin", "administrator"})


@dataclass
class CorrectionOutcome:
    text: str
    mode: EnforcementMode
    corrected: bool = False
    admin_override: bool = False
    substitutions: int = 0


def enforcement_mode_for(role: str | None, settings: ValidationSettings) -> EnforcementMode:
    """Admins bypass correction when the override is enabled; everyone else gets the configured mode."""
    if role and role.lower() in ADMIN_ROLES and settings.admin_override_enabled:
        return EnforcementMode.BYPASSED
    return EnforcementMode(settings.enforcement_mode)


def _plain(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _grouped(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value:,}"


class Corrector:
    """Rewrites or annotates answers that failed validation."""

    def correct(
        self,
        generated_text: str,
        result: ValidationResult,
        mode: EnforcementMode = EnforcementMode.STRICT,
    ) -> CorrectionOutcome:
        if result.is_valid:
            return CorrectionOutcome(text=generated_text, mode=mode)

        if mode == EnforcementMode.BYPASSED:
            logger.info(
                "Correction bypassed by admin override",
                mismatch_count=len(result.mismatches),
                user_id=result.audit_log.user_id,
            )
            return CorrectionOutcome(text=generated_text, mode=mode, admin_override=True)

        text = generated_text
        substitutions = 0
        if mode == EnforcementMode.STRICT:
            text, substitutions = self.substitute(text, result.mismatches)

        if result.disclaimer:
            text = f"{result.disclaimer}\n\n{text}"
        footer = AUDIT_FOOTER.format(timestamp=result.audit_log.timestamp.isoformat())
        text = f"{text}\n\n{footer}"

        logger.info(
            "Answer corrected",
            mode=mode.value,
            substitutions=substitutions,
            mismatch_count=len(result.mismatches),
        )
        return CorrectionOutcome(
            text=text,
            mode=mode,
            corrected=True,
            substitutions=substitutions,
        )

    def substitute(self, text: str, mismatches: list[Mismatch]) -> tuple[str, int]:
        """
        Replace each high-severity detected value with the authoritative one.

        All literals are replaced in a single pass so one correction is never
        rewritten by another.
        """
        replacements: dict[str, str] = {}
        for mismatch in mismatches:
            if mismatch.severity != Severity.HIGH:
                continue
            if not isinstance(mismatch.detected, (int, float)) or isinstance(mismatch.detected, bool):
                continue
            correction = f"{_plain(mismatch.expected)} (corrected from {_plain(mismatch.detected)})"
            literals = {_plain(mismatch.detected), _grouped(mismatch.detected)}
            if mismatch.detected_text:
                literals.add(mismatch.detected_text)
            for literal in literals:
                replacements.setdefault(literal, correction)

        if not replacements:
            return text, 0

        alternation = "|".join(
            re.escape(literal) for literal in sorted(replacements, key=len, reverse=True)
        )
        pattern = re.compile(rf"(?<![\d.,])(?:{alternation})(?![.,]?\d)")
        return pattern.subn(lambda m: replacements[m.group(0)], text)
