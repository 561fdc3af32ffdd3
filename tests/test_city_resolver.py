import os
import sys
from unittest.mock import Mock

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.city_resolver import CityResolver
from ingest.schemas import City


def test_exact_name_and_alias(store):
    resolver = CityResolver(store)
    assert resolver.resolve("Córdoba") == "city-cba"
    assert resolver.resolve("cordoba") == "city-cba"
    assert resolver.resolve("Bs As") == "city-caba"
    assert resolver.resolve("  caba ") == "city-caba"


def test_fuzzy_match_on_canonical_names(store):
    resolver = CityResolver(store)
    assert resolver.resolve("Rosaryo") == "city-ros"
    assert resolver.resolve("Cordova") == "city-cba"


def test_unknown_city_returns_none(store):
    resolver = CityResolver(store)
    assert resolver.resolve("Ushuaia") is None
    assert resolver.resolve("") is None
    assert resolver.resolve(None) is None


def test_repeated_resolution_is_stable_and_cached():
    backing = Mock()
    backing.find_cities_with_aliases.return_value = [City(id="c1", name="Mendoza")]
    resolver = CityResolver(backing)
    assert resolver.resolve("Mendoza") == resolver.resolve("mendoza") == "c1"
    backing.find_cities_with_aliases.assert_called_once()


def test_invalidate_reloads_cities():
    backing = Mock()
    backing.find_cities_with_aliases.side_effect = [
        [City(id="c1", name="Mendoza")],
        [City(id="c1", name="Mendoza"), City(id="c2", name="Salta")],
    ]
    resolver = CityResolver(backing)
    assert resolver.resolve("Salta") is None
    resolver.invalidate()
    assert resolver.resolve("Salta") == "c2"
    assert resolver.get_city("c2").name == "Salta"
