"""
Entity Resolution for performance questions.

Maps a free-text question to exactly one advisor, store or market plus a
reporting period.

Resolution stages:
1. Organization self-references ("my store", "my market")
2. First-person references ("my sales", "how did I do")
3. Name candidates from the pattern table, exact directory lookup
4. Fuzzy lookup (prefix, then bounded Levenshtein)
5. Named store/market references
6. Fallback to the current user
"""

import re
from datetime import date
from typing import Callable

import structlog

from guarded_qa.core.errors import EntityNotResolved
from guarded_qa.domain.models import EntityKind, EntityReference, Period, Person
from guarded_qa.resolution.directory import EntityDirectory
from guarded_qa.resolution.name_patterns import (
    FILLER_WORDS,
    NameCandidate,
    extract_name_candidates,
    refers_to_self,
)
from guarded_qa.resolution.period import extract_period

logger = structlog.get_logger(__name__)

_MY_STORE_RE = re.compile(r"\bmy\s+(?:store|shop|location)\b")
_MY_MARKET_RE = re.compile(r"\bmy\s+(?:market|region)\b")
_STORE_NUMBER_RE = re.compile(r"\bstore\s*(?:#\s*|number\s+|no\.?\s*)?(\d+)\b")
_NAMED_STORE_RE = re.compile(r"\b([a-z]+(?:\s+[a-z]+)?)\s+store\b")
_NAMED_MARKET_RE = re.compile(r"\b([a-z]+(?:\s+[a-z]+)?)\s+market\b")


def levenshtein_distance(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance between two strings."""
    if len(s1) < len(s2):
        return levenshtein_distance(s2, s1)

    if len(s2) == 0:
        return len(s1)

    previous_row = range(len(s2) + 1)
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


class EntityResolver:
    """
    Resolves the subject of a performance question.

    Never raises for an unknown name: the current user is returned and the
    miss is logged.
    """

    def __init__(
        self,
        directory: EntityDirectory,
        max_token_edits: int = 2,
        max_total_edits: int = 3,
        today: Callable[[], date] = date.today,
    ) -> None:
        """
        Initialize entity resolver.

        Args:
            directory: Read-only people/store/market lookup
            max_token_edits: Edit bound per name token in fuzzy lookup
            max_total_edits: Edit bound across all tokens in fuzzy lookup
            today: Clock used for period defaults
        """
        self._directory = directory
        self._max_token_edits = max_token_edits
        self._max_total_edits = max_total_edits
        self._today = today

        self._stats = {
            "self": 0,
            "exact": 0,
            "fuzzy": 0,
            "store_lookup": 0,
            "market_lookup": 0,
            "fallback": 0,
        }

    @property
    def stats(self) -> dict[str, int]:
        """Get resolution statistics."""
        return self._stats.copy()

    async def resolve(self, query: str, current_user: Person) -> EntityReference:
        """
        Resolve a question to one entity and period.

        Args:
            query: Free-text question
            current_user: The person asking

        Returns:
            EntityReference for the subject of the question
        """
        period = extract_period(query, self._today())
        lowered = " ".join(query.lower().split())

        organization = await self._resolve_own_organization(lowered, current_user, period)
        if organization is not None:
            return organization

        if refers_to_self(lowered):
            return self._self_reference(current_user, period, "self")

        candidates = extract_name_candidates(query)
        for candidate in candidates:
            found = await self._lookup_person(candidate)
            if found is None:
                continue
            person, method = found
            self._stats[method] += 1
            logger.info(
                "Resolved person from query",
                person_id=person.id,
                candidate=candidate.name,
                pattern=candidate.pattern,
                confidence=candidate.confidence.value,
                method=method,
            )
            return EntityReference(
                kind=EntityKind.ADVISOR,
                id=person.id,
                display_name=person.full_name,
                period=period,
                resolution_method=method,
                matched_name=candidate.name,
            )

        organization = await self._resolve_named_organization(lowered, period)
        if organization is not None:
            return organization

        if candidates:
            error = EntityNotResolved(query, [c.name for c in candidates])
            logger.warning(
                "Falling back to current user",
                error=str(error),
                candidates=error.candidates,
                user_id=current_user.id,
            )
            return self._self_reference(current_user, period, "fallback")

        return self._self_reference(current_user, period, "self")

    def _self_reference(self, user: Person, period: Period, method: str) -> EntityReference:
        self._stats[method] += 1
        return EntityReference(
            kind=EntityKind.ADVISOR,
            id=user.id,
            display_name=user.full_name,
            period=period,
            resolution_method=method,
        )

    # =========================================================================
    # Person lookup
    # =========================================================================

    async def _lookup_person(self, candidate: NameCandidate) -> tuple[Person, str] | None:
        method = "fuzzy" if candidate.normalized else "exact"
        for variant in candidate.variants:
            person = await self._exact_lookup(variant)
            if person is not None:
                return person, method

        for variant in candidate.variants:
            person = await self._fuzzy_lookup(variant)
            if person is not None:
                return person, "fuzzy"
        return None

    async def _exact_lookup(self, name: str) -> Person | None:
        tokens = name.split()
        if not tokens:
            return None
        if len(tokens) == 1:
            people = await self._directory.find_people(tokens[0])
        else:
            people = await self._directory.find_people(tokens[0], tokens[-1])
        return people[0] if people else None

    async def _fuzzy_lookup(self, name: str) -> Person | None:
        tokens = name.split()
        if not tokens:
            return None
        people = await self._directory.list_active_people()

        # Stage 1: first-name prefix with exact last name
        if len(tokens) >= 2 and len(tokens[0]) >= 3:
            prefix, last = tokens[0][:3], tokens[-1]
            for person in people:
                if (
                    person.last_name.lower() == last
                    and person.first_name.lower().startswith(prefix)
                ):
                    return person

        # Stage 2: bounded edit distance
        best: tuple[int, Person] | None = None
        for person in people:
            distance = self._name_distance(tokens, person)
            if distance is not None and (best is None or distance < best[0]):
                best = (distance, person)
        return best[1] if best else None

    def _name_distance(self, tokens: list[str], person: Person) -> int | None:
        first, last = person.first_name.lower(), person.last_name.lower()

        if len(tokens) == 1:
            token = tokens[0]
            if len(token) < 3:
                return None
            bound = 1 if len(token) <= 5 else self._max_token_edits
            distance = min(levenshtein_distance(token, first), levenshtein_distance(token, last))
            return distance if distance <= bound else None

        best = None
        for a, b in ((first, last), (last, first)):
            d1 = levenshtein_distance(tokens[0], a)
            d2 = levenshtein_distance(tokens[-1], b)
            if d1 > self._max_token_edits or d2 > self._max_token_edits:
                continue
            total = d1 + d2
            if total <= self._max_total_edits and (best is None or total < best):
                best = total
        return best

    # =========================================================================
    # Store / market lookup
    # =========================================================================

    async def _resolve_own_organization(
        self,
        lowered: str,
        user: Person,
        period: Period,
    ) -> EntityReference | None:
        if _MY_STORE_RE.search(lowered) and user.store_id:
            store = await self._directory.get_store(user.store_id)
            if store is not None:
                self._stats["store_lookup"] += 1
                return EntityReference(
                    kind=EntityKind.STORE,
                    id=store.id,
                    display_name=store.name,
                    period=period,
                    resolution_method="store_lookup",
                )
        if _MY_MARKET_RE.search(lowered) and user.market_id:
            market = await self._directory.get_market(user.market_id)
            if market is not None:
                self._stats["market_lookup"] += 1
                return EntityReference(
                    kind=EntityKind.MARKET,
                    id=market.id,
                    display_name=market.name,
                    period=period,
                    resolution_method="market_lookup",
                )
        return None

    async def _resolve_named_organization(
        self,
        lowered: str,
        period: Period,
    ) -> EntityReference | None:
        match = _STORE_NUMBER_RE.search(lowered)
        if match:
            store = await self._directory.find_store(match.group(1))
            if store is not None:
                return self._store_reference(store.id, store.name, period)

        for match in _NAMED_STORE_RE.finditer(lowered):
            for name in _name_variants(match.group(1)):
                store = await self._directory.find_store(name)
                if store is not None:
                    return self._store_reference(store.id, store.name, period)

        for match in _NAMED_MARKET_RE.finditer(lowered):
            for name in _name_variants(match.group(1)):
                market = await self._directory.find_market(name)
                if market is not None:
                    self._stats["market_lookup"] += 1
                    return EntityReference(
                        kind=EntityKind.MARKET,
                        id=market.id,
                        display_name=market.name,
                        period=period,
                        resolution_method="market_lookup",
                    )
        return None

    async def parent_market(self, entity: EntityReference) -> EntityReference | None:
        """The market a store belongs to; None for advisors, markets and unplaced stores."""
        if entity.kind != EntityKind.STORE:
            return None
        store = await self._directory.get_store(entity.id)
        if store is None or not store.market_id:
            return None
        market = await self._directory.get_market(store.market_id)
        if market is None:
            return None
        return EntityReference(
            kind=EntityKind.MARKET,
            id=market.id,
            display_name=market.name,
            period=entity.period,
            resolution_method="parent_market",
        )

    def _store_reference(self, store_id: str, name: str, period: Period) -> EntityReference:
        self._stats["store_lookup"] += 1
        return EntityReference(
            kind=EntityKind.STORE,
            id=store_id,
            display_name=name,
            period=period,
            resolution_method="store_lookup",
        )


def _name_variants(span: str) -> list[str]:
    """Two-token span first, then its last token alone."""
    tokens = [t for t in span.split() if t not in FILLER_WORDS]
    if not tokens:
        return []
    variants = [" ".join(tokens)]
    if len(tokens) > 1:
        variants.append(tokens[-1])
    return variants
