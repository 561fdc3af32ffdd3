"""Deterministic removal of URLs that never carry local event listings.

Only the URL is inspected: domain blocklists, homepage paths and hard
wrong-country signals. Page content is never looked at here.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable
from urllib.parse import urlparse

from ingest.schemas import CandidateUrl

logger = logging.getLogger(__name__)

SOCIAL_DOMAINS = (
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "youtube.com",
    "tiktok.com",
    "reddit.com",
    "linkedin.com",
    "threads.net",
)

# Ticketing platforms (Ticketek, Passline, AllAccess, ...) are deliberately
# absent: their listings carry dates, venues and prices.
AGGREGATOR_DOMAINS = (
    "eventbrite.com",
    "eventbrite.com.ar",
    "meetup.com",
    "feverup.com",
    "imdb.com",
    "songkick.com",
    "setlist.fm",
    "bandsintown.com",
    "last.fm",
)

TOURISM_DOMAINS = (
    "tripadvisor.com",
    "tripadvisor.com.ar",
    "viator.com",
    "getyourguide.com",
    "civitatis.com",
    "klook.com",
    "tiqets.com",
    "musement.com",
    "despegar.com",
    "booking.com",
    "airbnb.com",
    "tangol.com",
    "welcomeargentina.com",
    "minube.com",
    "lonelyplanet.com",
)

GENERIC_DOMAINS = (
    "wikipedia.org",
    "google.com",
    "google.com.ar",
)

BLOCKED_DOMAINS = SOCIAL_DOMAINS + AGGREGATOR_DOMAINS + TOURISM_DOMAINS + GENERIC_DOMAINS

WRONG_COUNTRY_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\.es$",
        r"/espana\b",
        r"/spain\b",
        r"/andaluc[ií]a\b",
        r"/cordoba-spain",
        r"/cordoba-espana",
        r"turismodecordoba\.org",
        r"andalucia\.org",
        r"diariocordoba\.com",
        r"ecartelera\.com",
        r"ecartelera\.es",
        r"sensacine\.com",
        r"cinesur\.com",
    )
)


def is_blocked_domain(domain: str) -> bool:
    normalized = domain.lower()
    return any(normalized == blocked or normalized.endswith(f".{blocked}") for blocked in BLOCKED_DOMAINS)


def is_homepage_url(url: str) -> bool:
    try:
        path = urlparse(url).path
    except ValueError:
        return False
    return path.rstrip("/") == ""


def is_wrong_country_url(url: str, domain: str) -> bool:
    return any(pattern.search(url) or pattern.search(domain) for pattern in WRONG_COUNTRY_PATTERNS)


def filter_domains(urls: Iterable[CandidateUrl]) -> list[CandidateUrl]:
    """Return the URLs that survive every rule, in their original order."""
    kept: list[CandidateUrl] = []
    for entry in urls:
        if is_blocked_domain(entry.domain):
            reason = "blocked domain"
        elif is_homepage_url(entry.url):
            reason = "homepage"
        elif is_wrong_country_url(entry.url, entry.domain):
            reason = "wrong country"
        else:
            kept.append(entry)
            continue
        logger.debug("Dropping %s (%s)", entry.url, reason)
    return kept
