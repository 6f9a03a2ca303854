"""
Name Candidate Extraction.

Pulls person-name spans out of free-text performance questions:
- Ordered surface-pattern table tagged by confidence
- Date-token and filler-word cleanup
- Possessive "s" trimming with the untrimmed form kept as an alternate
- Known-misspelling normalization
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from guarded_qa.resolution.period import MONTH_ABBREVIATIONS, MONTHS


class PatternConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


@dataclass(frozen=True)
class NamePattern:
    """A surface form that usually wraps a person's name."""
    name: str
    regex: re.Pattern
    confidence: PatternConfidence
    match_original_case: bool = False
    possessive: bool = False
    exact_tokens: int | None = None


@dataclass
class NameCandidate:
    """A cleaned name span ready for directory lookup."""
    name: str
    pattern: str
    confidence: PatternConfidence
    alternates: list[str] = field(default_factory=list)
    normalized: bool = False

    @property
    def variants(self) -> list[str]:
        seen: list[str] = []
        for value in [self.name, *self.alternates]:
            if value and value not in seen:
                seen.append(value)
        return seen


# =============================================================================
# Vocabulary
# =============================================================================

KNOWN_MISSPELLINGS = {
    "akeem": "akeen",
    "akiem": "akeen",
}

DATE_TOKENS = frozenset(
    set(MONTHS)
    | set(MONTH_ABBREVIATIONS)
    | {
        "mtd", "ytd", "month", "months", "monthly", "quarter", "quarterly",
        "year", "years", "yearly", "week", "weekly", "today", "yesterday",
        "last", "this", "current", "previous", "next",
    }
)

FILLER_WORDS = frozenset({
    "show", "me", "get", "give", "pull", "up", "display", "tell", "about",
    "what", "whats", "is", "are", "was", "were", "how", "many", "much",
    "did", "does", "do", "the", "for", "with", "of", "in", "on", "at",
    "provide", "can", "could", "you", "please", "see", "need", "want", "to",
    "and", "let", "lets", "it", "its", "compare", "total", "overall",
    "complete", "full", "retail", "gross", "profit", "gp", "a", "an",
    "i", "we", "our",
    # metric nouns that trail a name span
    "sales", "numbers", "performance", "metrics", "stats", "results",
    "scorecard", "scorecards", "tire", "tires", "alignments", "invoices", "tickets",
})

# A span containing any of these is an organization reference, not a person.
BLOCKED_TOKENS = frozenset({
    "store", "stores", "market", "markets", "team", "teams", "company",
    "everyone", "everybody", "all", "top", "best", "worst", "advisor",
    "advisors", "my", "their", "his", "her",
})

_MONTH_ALTERNATION = "|".join(
    sorted(list(MONTHS) + list(MONTH_ABBREVIATIONS), key=len, reverse=True)
)
_DATE_WORD = rf"(?:{_MONTH_ALTERNATION}|(?:19|20)\d{{2}})"
_METRIC_NOUN = (
    r"(?:score\s*cards?|sales|performance|numbers|metrics|stats|results|kpis?"
    r"|tires?|alignments?|invoices|tickets)"
)

NAME_PATTERNS: list[NamePattern] = [
    NamePattern(
        "possessive_apostrophe",
        re.compile(r"((?:[a-z]+\s+)?[a-z]+)['’]s\b"),
        PatternConfidence.HIGH,
    ),
    NamePattern(
        "possessive_no_apostrophe",
        re.compile(rf"((?:[a-z0-9]+\s+){{0,3}}[a-z0-9]+)\s+{_METRIC_NOUN}\b"),
        PatternConfidence.HIGH,
        possessive=True,
    ),
    NamePattern(
        "has_name_sold",
        re.compile(r"\bhas\s+([a-z]+(?:\s+[a-z]+)?)\s+sold\b"),
        PatternConfidence.HIGH,
    ),
    NamePattern(
        "did_name_sell",
        re.compile(r"\bdid\s+([a-z]+(?:\s+[a-z]+)?)\s+(?:sell|sold|do)\b"),
        PatternConfidence.HIGH,
    ),
    NamePattern(
        "with_name_scorecard",
        re.compile(r"\bwith\s+([a-z]+(?:\s+[a-z]+)?)(?:['’]s)?\s+score\s*card\b"),
        PatternConfidence.HIGH,
    ),
    NamePattern(
        "for_name_for_date",
        re.compile(
            rf"\bfor\s+([a-z]+\s+[a-z]+)\s+for\s+(?:the\s+)?(?:month\s+of\s+)?{_DATE_WORD}\b"
        ),
        PatternConfidence.HIGH,
    ),
    NamePattern(
        "leading_capitalized",
        re.compile(r"^\s*([A-Z][a-z]+\s+[A-Z][a-z]+)\b"),
        PatternConfidence.MEDIUM,
        match_original_case=True,
        exact_tokens=2,
    ),
    NamePattern(
        "for_name_date",
        re.compile(rf"\bfor\s+([a-z]+\s+[a-z]+)\s+(?:in\s+|during\s+)?{_DATE_WORD}\b"),
        PatternConfidence.MEDIUM,
    ),
    NamePattern(
        "for_name_end",
        re.compile(r"\bfor\s+([a-z]+\s+[a-z]+)\s*[?.!]*$"),
        PatternConfidence.MEDIUM,
    ),
    NamePattern(
        "about_name_end",
        re.compile(r"\babout\s+([a-z]+\s+[a-z]+)\s*[?.!]*$"),
        PatternConfidence.MEDIUM,
    ),
]

# =============================================================================
# First-person detection
# =============================================================================

_FIRST_PERSON_RE = re.compile(
    r"\b(?:my|mine|myself)\b"
    r"|\b(?:did|have|do|am|was|were|could|should)\s+i\b"
    r"|\bi\s+(?:sell|sold|do|did|have|had|am|was)\b"
)
_ME_RE = re.compile(r"\bme\b")
_PHRASAL_ME_RE = re.compile(
    r"\b(?:show|get|give|tell|let|send|pull)\s+me\b|\bprovide\s+me\s+with\b"
)


def refers_to_self(query: str) -> bool:
    """True when the query asks about the person asking it."""
    lowered = query.lower()
    if _FIRST_PERSON_RE.search(lowered):
        return True
    if _ME_RE.search(lowered):
        remainder = _PHRASAL_ME_RE.sub(" ", lowered)
        return bool(_ME_RE.search(remainder))
    return False


# =============================================================================
# Cleanup
# =============================================================================


def normalize_misspellings(name: str) -> str:
    return " ".join(KNOWN_MISSPELLINGS.get(token, token) for token in name.split())


def clean_name_span(
    span: str,
    possessive: bool = False,
    exact_tokens: int | None = None,
) -> tuple[str, list[str]] | None:
    """
    Turn a raw pattern capture into a lookup name.

    Date tokens and filler words are stripped first; the possessive "s" is
    trimmed last, and only from the final token.

    Returns:
        (name, alternates) or None when nothing usable remains
    """
    text = re.sub(r"['’]s\b", "", span.lower())
    raw_tokens = re.findall(r"[a-z0-9]+", text)
    tokens = [t for t in raw_tokens if t not in DATE_TOKENS and not t.isdigit()]

    while tokens and tokens[0] in FILLER_WORDS:
        tokens.pop(0)
    while tokens and tokens[-1] in FILLER_WORDS:
        tokens.pop()

    if not tokens or len(tokens) > 3:
        return None
    if exact_tokens is not None and len(tokens) != exact_tokens:
        return None
    if any(t in BLOCKED_TOKENS or t in FILLER_WORDS or len(t) < 2 for t in tokens):
        return None

    untrimmed = " ".join(tokens)
    last = tokens[-1]
    if possessive and last.endswith("s") and not last.endswith("ss") and len(last) > 3:
        trimmed = " ".join([*tokens[:-1], last[:-1]])
        return trimmed, [untrimmed]
    return untrimmed, []


def extract_name_candidates(query: str) -> list[NameCandidate]:
    """
    Apply the pattern table to a query.

    Candidates come back in confidence order (table order within a tier);
    duplicate names collapse to their first occurrence.

    Example:
        >>> extract_name_candidates("show me jacksons scorecard for august 2025")[0].name
        'jackson'
    """
    original = " ".join(query.split())
    lowered = original.lower()
    candidates: list[NameCandidate] = []
    seen: set[str] = set()

    ordered = sorted(
        NAME_PATTERNS,
        key=lambda p: 0 if p.confidence == PatternConfidence.HIGH else 1,
    )
    for pattern in ordered:
        subject = original if pattern.match_original_case else lowered
        for match in pattern.regex.finditer(subject):
            cleaned = clean_name_span(
                match.group(1),
                possessive=pattern.possessive,
                exact_tokens=pattern.exact_tokens,
            )
            if cleaned is None:
                continue
            name, alternates = cleaned
            normalized_name = normalize_misspellings(name)
            normalized_alternates = [normalize_misspellings(a) for a in alternates]
            if normalized_name in seen:
                continue
            seen.add(normalized_name)
            candidates.append(
                NameCandidate(
                    name=normalized_name,
                    pattern=pattern.name,
                    confidence=pattern.confidence,
                    alternates=normalized_alternates,
                    normalized=normalized_name != name,
                )
            )
    return candidates
