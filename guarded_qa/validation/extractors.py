"""
Numeric claim extraction.

Two entry points:
- extract_claims(): ordered (metric, matcher, parser) table over free text
- parse_scorecard_json(): strict parse of a JSON-only model reply

Every matcher defines a named group ``value`` holding the numeric literal.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from guarded_qa.core.errors import MalformedModelOutput
from guarded_qa.domain.fields import NUMERIC_FIELDS

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Extractor:
    metric: str
    matcher: re.Pattern
    parser: Callable[[str], float | int]


@dataclass(frozen=True)
class ExtractedClaim:
    """A number the model asserted for a metric."""
    metric: str
    value: float | int
    text: str
    position: int = -1


def parse_amount(literal: str) -> float:
    return float(literal.replace("$", "").replace(",", ""))


def parse_count(literal: str) -> int:
    return int(literal.replace(",", ""))


def parse_rate(literal: str) -> float:
    return float(literal.replace("%", "").replace(",", ""))


# Numbers must start on a digit boundary and may not continue past the match
_START = r"(?<![\d.,])"
_TAIL = r"(?![.,]?\d)"
_NOT_PERCENT = r"(?!\s*%)(?!\s*percent)"

AMOUNT = rf"\$?\s*{_START}(?P<value>\d[\d,]*(?:\.\d+)?){_TAIL}{_NOT_PERCENT}"
COUNT = rf"{_START}(?P<value>\d[\d,]*){_TAIL}{_NOT_PERCENT}"
RATE = rf"{_START}(?P<value>\d+(?:\.\d+)?){_TAIL}"
DECIMAL = rf"{_START}(?P<value>\d+(?:\.\d+)?){_TAIL}{_NOT_PERCENT}"

# Connector between a label and its number: "sales: 5", "sales were 5", "sales of $5"
LINK = r"\s*(?:of|:|=|was|were|is|are|at|totaled|totaling|came\s+to|came\s+in\s+at|sold)?\s*"

_GP = r"(?:gross\s+profit|gp)"


def _x(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


EXTRACTORS: list[Extractor] = [
    # sales
    Extractor("sales", _x(rf"{AMOUNT}\s*(?:(?:in|of)\s+)?(?:total\s+)?sales\b"), parse_amount),
    Extractor(
        "sales",
        _x(rf"(?<!gp\s)(?<!profit\s)\b(?:total\s+)?sales\b{LINK}{AMOUNT}"),
        parse_amount,
    ),
    # gross profit sales
    Extractor(
        "gpSales",
        _x(rf"{AMOUNT}\s*(?:in\s+)?{_GP}(?:\s+sales)?\b(?!\s*(?:%|percent))"),
        parse_amount,
    ),
    Extractor("gpSales", _x(rf"\b{_GP}\s+sales\b{LINK}{AMOUNT}"), parse_amount),
    Extractor(
        "gpSales",
        _x(rf"\b{_GP}\b(?!\s*(?:sales|%|percent)){LINK}{AMOUNT}"),
        parse_amount,
    ),
    # gross profit percentage
    Extractor("gpPercent", _x(rf"{RATE}\s*%?\s*{_GP}\s*(?:percentage|percent|%)"), parse_rate),
    Extractor("gpPercent", _x(rf"{RATE}\s*%\s*{_GP}\b"), parse_rate),
    Extractor("gpPercent", _x(rf"\b{_GP}\s*(?:percentage|percent|%){LINK}{RATE}"), parse_rate),
    # counts
    Extractor("invoices", _x(rf"{COUNT}\s*(?:invoices?|tickets?)\b(?!\s+per\s+pit)"), parse_count),
    Extractor("invoices", _x(rf"\b(?:invoices?|tickets?)(?:\s+count)?\b{LINK}{COUNT}"), parse_count),
    Extractor("alignments", _x(rf"{COUNT}\s*alignments?\b"), parse_count),
    Extractor("alignments", _x(rf"\balignments?\b{LINK}{COUNT}"), parse_count),
    Extractor("oilChange", _x(rf"{COUNT}\s*oil\s*changes?\b"), parse_count),
    Extractor("oilChange", _x(rf"\boil\s*changes?\b{LINK}{COUNT}"), parse_count),
    Extractor("retailTires", _x(rf"{COUNT}\s*(?:retail\s+)?tires?\b"), parse_count),
    Extractor("retailTires", _x(rf"\bretail\s+tires?\b{LINK}{COUNT}"), parse_count),
    Extractor("allTires", _x(rf"{COUNT}\s*(?:total|all)\s+tires?\b"), parse_count),
    Extractor("allTires", _x(rf"\b(?:total|all)\s+tires?\b{LINK}{COUNT}"), parse_count),
    Extractor("brakeService", _x(rf"{COUNT}\s*brake\s*(?:services?|jobs?)\b"), parse_count),
    Extractor("brakeService", _x(rf"\bbrake\s*(?:services?|jobs?)\b{LINK}{COUNT}"), parse_count),
    # calculated ratios
    Extractor("tpp", _x(rf"{DECIMAL}\s*(?:tickets?\s+per\s+pit|tpp)\b"), parse_rate),
    Extractor("tpp", _x(rf"\b(?:tpp|tickets?\s+per\s+pit)\b{LINK}{DECIMAL}"), parse_rate),
    Extractor("pat", _x(rf"{DECIMAL}\s*(?:parts?\s+attach\s+rate|pat)\b"), parse_rate),
    Extractor("pat", _x(rf"\b(?:pat|parts?\s+attach\s+rate)\b{LINK}{DECIMAL}"), parse_rate),
]


_YEAR_RE = re.compile(r"(?:19|20)\d{2}")


def _is_bare_year(text: str, match: re.Match) -> bool:
    """A 4-digit year without a dollar sign names a period, not an amount."""
    literal = match.group("value")
    if not _YEAR_RE.fullmatch(literal):
        return False
    return not text[: match.start("value")].rstrip().endswith("$")


def extract_claims(
    text: str,
    extractors: list[Extractor] | None = None,
) -> dict[str, ExtractedClaim]:
    """
    Extract at most one claim per metric from free text.

    When several matchers of a metric hit, the earliest occurrence in the
    text wins.
    """
    claims: dict[str, ExtractedClaim] = {}
    for extractor in extractors or EXTRACTORS:
        match = next(
            (m for m in extractor.matcher.finditer(text) if not _is_bare_year(text, m)),
            None,
        )
        if match is None:
            continue
        literal = match.group("value")
        position = match.start("value")
        current = claims.get(extractor.metric)
        if current is not None and current.position <= position:
            continue
        try:
            value = extractor.parser(literal)
        except ValueError:
            continue
        claims[extractor.metric] = ExtractedClaim(
            metric=extractor.metric,
            value=value,
            text=literal,
            position=position,
        )
    return claims


# =============================================================================
# Strict JSON
# =============================================================================

_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*\n?(?P<body>.*?)\n?\s*```\s*$", re.DOTALL)


def parse_scorecard_json(text: str) -> tuple[dict[str, Any], dict[str, ExtractedClaim]]:
    """
    Parse a JSON-only scorecard reply.

    A single surrounding code fence is tolerated; anything else that is not
    one JSON object is rejected.

    Raises:
        MalformedModelOutput: not an object, or a metric value is not a number
    """
    body = text.strip()
    fenced = _FENCE_RE.match(body)
    if fenced:
        logger.warning("Scorecard reply wrapped in a code fence", reply_chars=len(text))
        body = fenced.group("body").strip()

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(f"{e.msg} at position {e.pos}", text) from e

    if not isinstance(data, dict):
        raise MalformedModelOutput("top-level value is not an object", text)

    claims: dict[str, ExtractedClaim] = {}
    for key, value in data.items():
        if key not in NUMERIC_FIELDS or value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedModelOutput(f"value for '{key}' is not a number", text)
        literal = str(int(value)) if isinstance(value, float) and value.is_integer() else str(value)
        claims[key] = ExtractedClaim(metric=key, value=value, text=literal)
    return data, claims
