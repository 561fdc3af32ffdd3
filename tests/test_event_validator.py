import os
import sys
from datetime import date

import pytest

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.schemas import RawEvent
from scrapers.event_validator import is_valid_url, is_wrong_location, parse_iso_date, validate_events

TODAY = date(2026, 3, 1)


def raw(**overrides):
    data = dict(
        title="Recital de tango",
        date="2026-03-14",
        venue="Teatro del Libertador",
        address="Av. Vélez Sarsfield 365, Córdoba",
        source_url="https://teatrodellibertador.com.ar/agenda",
    )
    data.update(overrides)
    return RawEvent(**data)


def test_parse_iso_date():
    assert parse_iso_date("2026-03-14") == date(2026, 3, 14)
    assert parse_iso_date("2026-02-30") is None
    assert parse_iso_date("14/03/2026") is None
    assert parse_iso_date("") is None


def test_is_valid_url():
    assert is_valid_url("https://example.com/a")
    assert not is_valid_url("ftp://example.com")
    assert not is_valid_url("example.com/agenda")


def test_valid_event_carries_flags():
    result = validate_events([raw()], "Córdoba", TODAY)
    assert len(result.valid) == 1
    flags = dict(result.valid[0].flags)
    assert flags["city_mentioned"] is True
    assert all(flags.values())


def test_city_mention_is_informational_only():
    result = validate_events([raw(address=None)], "Córdoba", TODAY)
    assert len(result.valid) == 1
    assert dict(result.valid[0].flags)["city_mentioned"] is False


def test_past_event_is_expired_not_invalid():
    result = validate_events([raw(date="2026-02-28")], "Córdoba", TODAY)
    assert result.valid == []
    assert len(result.expired) == 1
    assert result.invalid == []


def test_today_is_still_valid():
    assert len(validate_events([raw(date="2026-03-01")], "Córdoba", TODAY).valid) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"date": "sábado 14"},
        {"title": "Ok"},
        {"venue": "  "},
        {"source_url": "no-url"},
        {"address": "Calle Corrientes 1500, C.A.B.A."},
        {"address": "Plaza de las Tendillas, 14002 Córdoba"},
        {"venue": "Mezquita Catedral"},
    ],
)
def test_structural_failures_are_invalid(overrides):
    result = validate_events([raw(**overrides)], "Córdoba", TODAY)
    assert result.valid == []
    assert len(result.invalid) == 1


def test_wrong_location_rules():
    assert is_wrong_location("Palacio de Viana, Andalucía", "cordoba")
    assert is_wrong_location("Calle Mayor CP28013", "cordoba")
    assert not is_wrong_location("Centro Cultural España Córdoba", "cordoba")
    assert not is_wrong_location("Usina del Arte, Buenos Aires", "buenos aires")
    assert is_wrong_location("Teatro en Palermo", "rosario")
