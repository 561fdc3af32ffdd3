"""Deterministic checks on extracted events. No network or LLM calls."""
from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Iterable
from urllib.parse import urlparse

from ingest.schemas import RawEvent, ValidatedEvent, ValidationResult

from .utils import normalize_text

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SPANISH_POSTCODE = re.compile(r"cp\d{5}")
# Córdoba (Spain) postcodes; Argentine ones are a letter plus four digits.
_CORDOBA_SPAIN_POSTCODE = re.compile(r"\b14\d{3}\b")

SPAIN_MARKERS = ("andalucia", "espana", "spain", "comunidad autonoma", "junta de andalucia")

SPANISH_CORDOBA_LANDMARKS = (
    "mezquita catedral",
    "mezquita-catedral",
    "alcazar de los reyes",
    "sinagoga de cordoba",
    "palacio de viana",
    "juderia",
    "montilla-moriles",
)

# Marker -> target cities for which the marker means "wrong city".
CROSS_CITY_MARKERS = {
    marker: ("cordoba", "rosario", "mendoza")
    for marker in (
        "c. a. b. a.",
        "c.a.b.a.",
        "caba",
        "ciudad autonoma de buenos aires",
        "buenos aires",
        "palermo",
        "san telmo",
        "recoleta",
    )
}

STRUCTURAL_CHECKS = ("date_valid", "title_min_length", "venue_non_empty", "source_url_valid", "not_wrong_location")


def parse_iso_date(value: str) -> date | None:
    if not value or not _ISO_DATE.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value or "")
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_wrong_location(venue_and_address: str, target_city: str) -> bool:
    """True when the venue text points to Spain or another Argentine city.

    ``target_city`` must already be normalized.
    """
    text = normalize_text(venue_and_address)
    if _SPANISH_POSTCODE.search(text) or _CORDOBA_SPAIN_POSTCODE.search(text):
        return True
    # "Centro Cultural España Córdoba" is a real Argentine venue.
    if any(m in text for m in SPAIN_MARKERS) and target_city not in text:
        return True
    if any(landmark in text for landmark in SPANISH_CORDOBA_LANDMARKS):
        return True
    return any(
        marker in text and target_city in excluded
        for marker, excluded in CROSS_CITY_MARKERS.items()
    )


def validate_events(events: Iterable[RawEvent], city: str, today: date) -> ValidationResult:
    """Sort events into valid, expired (sound but past) and invalid buckets."""
    result = ValidationResult()
    target = normalize_text(city)

    for event in events:
        venue_and_address = " ".join(part for part in (event.venue, event.address) if part)
        parsed = parse_iso_date(event.date)
        flags = {
            "date_valid": parsed is not None,
            "date_future": parsed is not None and parsed >= today,
            "title_min_length": len((event.title or "").strip()) >= 3,
            "venue_non_empty": bool((event.venue or "").strip()),
            "source_url_valid": is_valid_url(event.source_url),
            "city_mentioned": target in normalize_text(venue_and_address),
            "not_wrong_location": not is_wrong_location(venue_and_address, target),
        }

        if all(flags[name] for name in STRUCTURAL_CHECKS):
            if flags["date_future"]:
                result.valid.append(ValidatedEvent(event=event, flags=tuple(flags.items())))
            else:
                result.expired.append(event)
            continue

        failed = [name for name in STRUCTURAL_CHECKS if not flags[name]]
        logger.info(
            "REJECTED '%s' | venue='%s' | date='%s' | failed: %s",
            event.title, event.venue, event.date, ", ".join(failed),
        )
        result.invalid.append(event)

    return result
