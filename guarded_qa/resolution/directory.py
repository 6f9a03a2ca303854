"""
Entity directory interface.

The relational user/store/market store lives outside this subsystem; the
resolver only needs a small read-only view of it.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from guarded_qa.domain.models import Market, Person, Store

logger = structlog.get_logger(__name__)


def _advisors_first(people: list[Person]) -> list[Person]:
    return sorted(people, key=lambda p: (p.role != "advisor", p.id))


class EntityDirectory(ABC):
    """Read-only lookup of people, stores and markets."""

    @abstractmethod
    async def find_people(self, first: str, last: str | None = None) -> list[Person]:
        """
        Exact, case-insensitive name match over active people.

        With both tokens, matches first+last in either order. With one token,
        matches either first or last name. Advisors come first.
        """
        pass

    @abstractmethod
    async def list_active_people(self) -> list[Person]:
        pass

    @abstractmethod
    async def get_store(self, store_id: str) -> Store | None:
        pass

    @abstractmethod
    async def get_market(self, market_id: str) -> Market | None:
        pass

    @abstractmethod
    async def find_store(self, name_or_number: str) -> Store | None:
        pass

    @abstractmethod
    async def find_market(self, name: str) -> Market | None:
        pass


class InMemoryDirectory(EntityDirectory):
    """Directory backed by plain lists, for tests and local runs."""

    def __init__(
        self,
        people: list[Person] | None = None,
        stores: list[Store] | None = None,
        markets: list[Market] | None = None,
    ):
        self._people = {p.id: p for p in people or []}
        self._stores = {s.id: s for s in stores or []}
        self._markets = {m.id: m for m in markets or []}

    async def find_people(self, first: str, last: str | None = None) -> list[Person]:
        first = first.lower()
        last = last.lower() if last else None
        matches = []
        for person in self._people.values():
            if not person.is_active:
                continue
            pf, pl = person.first_name.lower(), person.last_name.lower()
            if last is None:
                if first in (pf, pl):
                    matches.append(person)
            elif (pf, pl) == (first, last) or (pf, pl) == (last, first):
                matches.append(person)
        return _advisors_first(matches)

    async def list_active_people(self) -> list[Person]:
        return _advisors_first([p for p in self._people.values() if p.is_active])

    async def get_store(self, store_id: str) -> Store | None:
        return self._stores.get(store_id)

    async def get_market(self, market_id: str) -> Market | None:
        return self._markets.get(market_id)

    async def find_store(self, name_or_number: str) -> Store | None:
        needle = name_or_number.strip().lower().lstrip("#")
        for store in self._stores.values():
            if store.number and store.number.lower() == needle:
                return store
            if store.name.lower() == needle:
                return store
        return None

    async def find_market(self, name: str) -> Market | None:
        needle = name.strip().lower()
        for market in self._markets.values():
            if market.name.lower() == needle:
                return market
        return None

    @classmethod
    def from_file(cls, path: str | Path) -> "InMemoryDirectory":
        """
        Load a directory snapshot from JSON.

        Expected shape: {"people": [...], "stores": [...], "markets": [...]},
        each item holding the dataclass fields by name.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        directory = cls(
            people=[Person(**item) for item in data.get("people", [])],
            stores=[Store(**item) for item in data.get("stores", [])],
            markets=[Market(**item) for item in data.get("markets", [])],
        )
        logger.info(
            "Directory snapshot loaded",
            path=str(path),
            people=len(directory._people),
            stores=len(directory._stores),
            markets=len(directory._markets),
        )
        return directory
