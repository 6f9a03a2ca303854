"""
Response Validation Module.

Checks generated answers against authoritative metrics and corrects them
under an enforcement mode.
"""

from guarded_qa.validation.corrector import CorrectionOutcome, Corrector, enforcement_mode_for
from guarded_qa.validation.extractors import EXTRACTORS, extract_claims, parse_scorecard_json
from guarded_qa.validation.field_whitelist import check_field_whitelist
from guarded_qa.validation.validator import ResponseValidator

__all__ = [
    "CorrectionOutcome",
    "Corrector",
    "enforcement_mode_for",
    "EXTRACTORS",
    "extract_claims",
    "parse_scorecard_json",
    "check_field_whitelist",
    "ResponseValidator",
]
