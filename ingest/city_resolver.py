"""Resolve free-form city names to canonical city ids."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from rapidfuzz.distance import Levenshtein

from scrapers.utils import normalize_text

from .schemas import City

if TYPE_CHECKING:
    from .event_store import EventStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _CityIndex:
    exact: dict[str, str]
    # Canonical names only; aliases are matched exactly, never fuzzily.
    fuzzy: list[tuple[str, str]]
    cities: dict[str, City]


class CityResolver:
    """Exact then fuzzy lookup over the cities known to the event store.

    The index is built on first use and kept until :meth:`invalidate`.
    """

    def __init__(self, store: "EventStore") -> None:
        self._store = store
        self._index: Optional[_CityIndex] = None
        self._lock = threading.Lock()

    def resolve(self, raw_name: Optional[str]) -> Optional[str]:
        normalized = normalize_text(raw_name)
        if not normalized:
            return None

        index = self._load()
        city_id = index.exact.get(normalized)
        if city_id:
            return city_id

        max_distance = 2 if len(normalized) <= 6 else 3
        best: Optional[tuple[str, int]] = None
        for candidate_id, name in index.fuzzy:
            distance = Levenshtein.distance(normalized, name, score_cutoff=max_distance)
            if distance <= max_distance and (best is None or distance < best[1]):
                best = (candidate_id, distance)

        if best is None:
            logger.debug("No city match for %r", raw_name)
            return None
        logger.debug("Fuzzy matched %r to city %s (distance %d)", raw_name, best[0], best[1])
        return best[0]

    def get_city(self, city_id: str) -> Optional[City]:
        return self._load().cities.get(city_id)

    def invalidate(self) -> None:
        with self._lock:
            self._index = None

    def _load(self) -> _CityIndex:
        index = self._index
        if index is not None:
            return index
        with self._lock:
            if self._index is None:
                self._index = self._build()
            return self._index

    def _build(self) -> _CityIndex:
        exact: dict[str, str] = {}
        fuzzy: list[tuple[str, str]] = []
        cities: dict[str, City] = {}
        for city in self._store.find_cities_with_aliases():
            cities[city.id] = city
            name = normalize_text(city.name)
            exact.setdefault(name, city.id)
            fuzzy.append((city.id, name))
            for alias in city.aliases:
                alias_key = normalize_text(alias)
                if alias_key:
                    exact.setdefault(alias_key, city.id)
        logger.info("Loaded %d cities into the resolver index", len(cities))
        return _CityIndex(exact=exact, fuzzy=fuzzy, cities=cities)
