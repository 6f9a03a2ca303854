"""Reporting period extraction from free text."""

import re
from datetime import date

from guarded_qa.domain.models import Period

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

MONTH_ABBREVIATIONS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7,
    "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

_MONTH_NAME_RE = re.compile(r"\b(" + "|".join(MONTHS) + r")\b", re.IGNORECASE)
_MONTH_ABBR_RE = re.compile(
    r"\b(" + "|".join(sorted(MONTH_ABBREVIATIONS, key=len, reverse=True)) + r")\.?(?=\s|$|,)",
    re.IGNORECASE,
)
# 8/2025, 08-2025
_MONTH_YEAR_NUMERIC_RE = re.compile(r"\b(0?[1-9]|1[0-2])[/-]((?:19|20)\d{2})\b")
# 2025-08
_YEAR_MONTH_NUMERIC_RE = re.compile(r"\b((?:19|20)\d{2})-(0[1-9]|1[0-2])\b")
_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")
_MODAL_MAY_RE = re.compile(r"may\s+(?:i|we|you)\b", re.IGNORECASE)


def extract_month(query: str) -> int | None:
    match = _MONTH_YEAR_NUMERIC_RE.search(query)
    if match:
        return int(match.group(1))
    match = _YEAR_MONTH_NUMERIC_RE.search(query)
    if match:
        return int(match.group(2))
    for match in _MONTH_NAME_RE.finditer(query):
        # "may I see..." is a modal verb, not a month
        if match.group(1).lower() == "may" and _MODAL_MAY_RE.match(query, match.start()):
            continue
        return MONTHS[match.group(1).lower()]
    match = _MONTH_ABBR_RE.search(query)
    if match:
        return MONTH_ABBREVIATIONS[match.group(1).lower()]
    return None


def extract_year(query: str) -> int | None:
    match = _YEAR_RE.search(query)
    return int(match.group(1)) if match else None


def extract_period(query: str, today: date | None = None) -> Period:
    """
    Find the month and year a query refers to.

    Missing parts default to the current month/year.

    Examples:
        "sales for august 2025" -> Period(8, 2025)
        "8/2025 scorecard"       -> Period(8, 2025)
        "how did I do"           -> Period(today.month, today.year)
    """
    today = today or date.today()
    month = extract_month(query)
    year = extract_year(query)
    return Period(
        month=month if month is not None else today.month,
        year=year if year is not None else today.year,
    )
