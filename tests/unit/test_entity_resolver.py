"""
Unit Tests for Entity Resolution.

Tests name candidate extraction, period extraction and the EntityResolver.
"""

import json
from datetime import date
from pathlib import Path

import pytest

from guarded_qa.domain.models import EntityKind, Period, Person, Store
from guarded_qa.resolution.directory import InMemoryDirectory
from guarded_qa.resolution.entity_resolver import EntityResolver, levenshtein_distance
from guarded_qa.resolution.name_patterns import (
    PatternConfidence,
    clean_name_span,
    extract_name_candidates,
    normalize_misspellings,
    refers_to_self,
)
from guarded_qa.resolution.period import extract_month, extract_period, extract_year


class TestPeriodExtraction:
    """Test cases for reporting period extraction."""

    def test_month_name_and_year(self) -> None:
        assert extract_period("sales for august 2025") == Period(8, 2025)

    def test_numeric_month_year(self) -> None:
        assert extract_period("8/2025 scorecard") == Period(8, 2025)

    def test_iso_year_month(self) -> None:
        assert extract_period("numbers for 2024-11") == Period(11, 2024)

    def test_abbreviation(self) -> None:
        assert extract_month("tire count for sept") == 9

    def test_defaults_to_today(self) -> None:
        period = extract_period("how did I do", today=date(2025, 9, 15))
        assert period == Period(9, 2025)

    def test_month_only_defaults_year(self) -> None:
        period = extract_period("sales for march", today=date(2025, 9, 15))
        assert period == Period(3, 2025)

    def test_modal_may_is_not_a_month(self) -> None:
        assert extract_month("may I see my sales") is None
        assert extract_month("may I see my sales for may") == 5

    def test_year_only(self) -> None:
        assert extract_year("totals for 2024") == 2024
        assert extract_month("totals for 2024") is None


class TestNameCandidates:
    """Test cases for name span extraction and cleanup."""

    def test_possessive_without_apostrophe_trims_s(self) -> None:
        candidates = extract_name_candidates("show me jacksons scorecard for august 2025")

        assert candidates[0].name == "jackson"
        assert candidates[0].alternates == ["jacksons"]
        assert candidates[0].confidence == PatternConfidence.HIGH

    def test_possessive_apostrophe(self) -> None:
        candidates = extract_name_candidates("What were Akeen Jackson's sales?")

        assert candidates[0].name == "akeen jackson"
        assert candidates[0].pattern == "possessive_apostrophe"

    def test_known_misspelling_is_normalized(self) -> None:
        candidates = extract_name_candidates("Akeem Jackson's sales for august")

        assert candidates[0].name == "akeen jackson"
        assert candidates[0].normalized is True

    def test_has_name_sold(self) -> None:
        candidates = extract_name_candidates("how many tires has priya natarajan sold")

        assert "priya natarajan" in [c.name for c in candidates]

    def test_date_tokens_removed_before_trim(self) -> None:
        assert clean_name_span("jacksons august 2025", possessive=True) == ("jackson", ["jacksons"])

    def test_double_s_not_trimmed(self) -> None:
        assert clean_name_span("ross", possessive=True) == ("ross", [])

    def test_blocked_tokens_rejected(self) -> None:
        assert clean_name_span("store 27") is None
        assert clean_name_span("the team") is None

    def test_too_many_tokens_rejected(self) -> None:
        assert clean_name_span("one two three four") is None

    def test_duplicates_collapse(self) -> None:
        candidates = extract_name_candidates("Akeen Jackson's scorecard for akeen jackson")
        names = [c.name for c in candidates]

        assert names.count("akeen jackson") == 1

    def test_normalize_misspellings(self) -> None:
        assert normalize_misspellings("akiem jackson") == "akeen jackson"


class TestRefersToSelf:
    """Test cases for first-person detection."""

    @pytest.mark.parametrize(
        "query",
        [
            "what are my sales",
            "how did I do in august",
            "I sold how many tires?",
            "pull the numbers for me",
        ],
    )
    def test_first_person(self, query: str) -> None:
        assert refers_to_self(query)

    @pytest.mark.parametrize(
        "query",
        [
            "show me jacksons scorecard",
            "give me akeen jackson's numbers",
            "provide me with the store totals",
        ],
    )
    def test_phrasal_me_is_not_self(self, query: str) -> None:
        assert not refers_to_self(query)


class TestLevenshtein:
    """Test cases for edit distance."""

    def test_identical(self) -> None:
        assert levenshtein_distance("jackson", "jackson") == 0

    def test_single_substitution(self) -> None:
        assert levenshtein_distance("jacksen", "jackson") == 1

    def test_empty(self) -> None:
        assert levenshtein_distance("", "abc") == 3


class TestEntityResolver:
    """Test cases for EntityResolver."""

    @pytest.mark.asyncio
    async def test_self_reference(self, resolver: EntityResolver, advisor: Person) -> None:
        entity = await resolver.resolve("What are my sales this month?", advisor)

        assert entity.id == advisor.id
        assert entity.resolution_method == "self"
        assert entity.period == Period(9, 2025)

    @pytest.mark.asyncio
    async def test_possessive_without_apostrophe(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        entity = await resolver.resolve("show me jacksons scorecard for august 2025", manager)

        assert entity.kind == EntityKind.ADVISOR
        assert entity.id == "101"
        assert entity.display_name == "Akeen Jackson"
        assert entity.resolution_method == "exact"
        assert entity.period == Period(8, 2025)

    @pytest.mark.asyncio
    async def test_name_ending_in_s_matches_untrimmed(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        entity = await resolver.resolve("show me james scorecard", manager)

        assert entity.id == "102"
        assert entity.resolution_method == "exact"

    @pytest.mark.asyncio
    async def test_known_misspelling_resolves_fuzzy(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        entity = await resolver.resolve("Akeem Jackson's sales for august", manager)

        assert entity.id == "101"
        assert entity.display_name == "Akeen Jackson"
        assert entity.resolution_method == "fuzzy"
        assert entity.period == Period(8, 2025)

    @pytest.mark.asyncio
    async def test_prefix_match(self, resolver: EntityResolver, manager: Person) -> None:
        entity = await resolver.resolve("Akeam Jackson's numbers", manager)

        assert entity.id == "101"
        assert entity.resolution_method == "fuzzy"

    @pytest.mark.asyncio
    async def test_edit_distance_match(self, resolver: EntityResolver, manager: Person) -> None:
        entity = await resolver.resolve("What are Akeen Jacksen's stats?", manager)

        assert entity.id == "101"
        assert entity.resolution_method == "fuzzy"

    @pytest.mark.asyncio
    async def test_unknown_name_falls_back(self, resolver: EntityResolver, manager: Person) -> None:
        entity = await resolver.resolve("What are Zed Quorra's sales?", manager)

        assert entity.id == manager.id
        assert entity.resolution_method == "fallback"
        assert resolver.stats["fallback"] == 1

    @pytest.mark.asyncio
    async def test_inactive_people_are_ignored(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        entity = await resolver.resolve("Rob Dale's sales", manager)

        assert entity.id == manager.id
        assert entity.resolution_method == "fallback"

    @pytest.mark.asyncio
    async def test_my_store(self, resolver: EntityResolver, advisor: Person) -> None:
        entity = await resolver.resolve("How is my store doing this month?", advisor)

        assert entity.kind == EntityKind.STORE
        assert entity.id == "s1"
        assert entity.resolution_method == "store_lookup"

    @pytest.mark.asyncio
    async def test_store_by_number(self, resolver: EntityResolver, manager: Person) -> None:
        entity = await resolver.resolve("Show me store 27 sales", manager)

        assert entity.kind == EntityKind.STORE
        assert entity.id == "s2"
        assert entity.display_name == "Riverside"

    @pytest.mark.asyncio
    async def test_named_market(self, resolver: EntityResolver, admin: Person) -> None:
        entity = await resolver.resolve("How is the Northeast market doing on sales?", admin)

        assert entity.kind == EntityKind.MARKET
        assert entity.id == "m1"
        assert entity.resolution_method == "market_lookup"

    @pytest.mark.asyncio
    async def test_single_short_token_not_fuzzy_matched(self, directory) -> None:
        resolver = EntityResolver(directory, today=lambda: date(2025, 9, 15))
        user = Person(id="1", first_name="Test", last_name="User")

        entity = await resolver.resolve("What are Ro's sales?", user)

        assert entity.id == "1"


class TestParentMarket:
    """Test cases for looking up the market a store belongs to."""

    @pytest.mark.asyncio
    async def test_store_maps_to_its_market(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        store = await resolver.resolve("How did my store do in august?", manager)

        market = await resolver.parent_market(store)

        assert market is not None
        assert market.kind == EntityKind.MARKET
        assert market.id == "m1"
        assert market.display_name == "Northeast"
        assert market.period == store.period
        assert market.resolution_method == "parent_market"

    @pytest.mark.asyncio
    async def test_advisor_has_no_parent_market(
        self, resolver: EntityResolver, advisor: Person
    ) -> None:
        entity = await resolver.resolve("What are my sales?", advisor)

        assert await resolver.parent_market(entity) is None

    @pytest.mark.asyncio
    async def test_market_has_no_parent_market(
        self, resolver: EntityResolver, manager: Person
    ) -> None:
        market = await resolver.resolve("How is my market doing?", manager)

        assert market.kind == EntityKind.MARKET
        assert await resolver.parent_market(market) is None

    @pytest.mark.asyncio
    async def test_store_without_market(self) -> None:
        directory = InMemoryDirectory(stores=[Store(id="s5", name="Outlet", number="90")])
        resolver = EntityResolver(directory, today=lambda: date(2025, 9, 15))
        user = Person(id="9", first_name="Test", last_name="User")

        store = await resolver.resolve("store 90 sales", user)

        assert store.kind == EntityKind.STORE
        assert await resolver.parent_market(store) is None


class TestDirectorySnapshot:
    """Test cases for loading the directory from JSON."""

    @pytest.mark.asyncio
    async def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "directory.json"
        path.write_text(json.dumps({
            "people": [
                {"id": "7", "first_name": "Lena", "last_name": "Ortiz", "role": "store_manager"},
                {"id": "8", "first_name": "Lena", "last_name": "Ortiz", "store_id": "s9"},
            ],
            "stores": [{"id": "s9", "name": "Harbor", "number": "41"}],
            "markets": [{"id": "m3", "name": "Gulf"}],
        }), encoding="utf-8")

        directory = InMemoryDirectory.from_file(path)

        people = await directory.find_people("lena", "ortiz")
        assert [p.id for p in people] == ["8", "7"]
        assert (await directory.find_store("41")).id == "s9"
        assert (await directory.find_market("gulf")).id == "m3"
