"""Find candidate event-listing URLs for a city."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from ingest.concurrency import Deadline, run_bounded
from ingest.schemas import CandidateUrl

from .search_client import SearchProvider
from .utils import extract_domain

logger = logging.getLogger(__name__)

MAX_DISCOVERY_URLS = 45

# Excluded at query time to save provider credits; the domain filter runs
# again afterwards with the full blocklist.
EXCLUDED_DOMAINS = (
    "facebook.com",
    "instagram.com",
    "youtube.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "reddit.com",
    "wikipedia.org",
    "eventbrite.com",
    "eventbrite.com.ar",
    "meetup.com",
    "feverup.com",
    "tripadvisor.com",
    "tripadvisor.com.ar",
    "viator.com",
    "getyourguide.com",
    "civitatis.com",
    "despegar.com",
    "booking.com",
    "airbnb.com",
    "imdb.com",
    "songkick.com",
    "setlist.fm",
    "bandsintown.com",
    "last.fm",
    "ecartelera.com",
    "ecartelera.es",
    "sensacine.com",
    "cinesur.com",
)

QUERY_TEMPLATES = (
    "{city} secretaría de cultura sitio oficial",
    "{city} agenda cultural sitio oficial",
    "{city} centro cultural programación",
    "{city} teatro oficial programación",
    "{city} museo programación oficial",
    "{city} cine cartelera oficial",
)


def build_queries(city: str) -> list[str]:
    return [template.format(city=city) for template in QUERY_TEMPLATES]


def diversify_by_domain(urls: Iterable[CandidateUrl], limit: int) -> list[CandidateUrl]:
    """Round-robin ``urls`` by domain: one per domain per round, up to ``limit``.

    Domains keep the order in which they were first seen.
    """
    by_domain: dict[str, list[CandidateUrl]] = {}
    for url in urls:
        by_domain.setdefault(url.domain, []).append(url)

    result: list[CandidateUrl] = []
    round_index = 0
    while len(result) < limit:
        added = False
        for entries in by_domain.values():
            if len(result) >= limit:
                break
            if round_index < len(entries):
                result.append(entries[round_index])
                added = True
        if not added:
            break
        round_index += 1
    return result


def discover_urls(
    provider: Optional[SearchProvider],
    city: str,
    country: str,
    limit: int = MAX_DISCOVERY_URLS,
    deadline: Optional[Deadline] = None,
) -> list[CandidateUrl]:
    """Run every query concurrently and return deduplicated, diversified URLs.

    A query that fails is logged and contributes nothing; the others still
    count. Without a provider the result is empty.
    """
    if provider is None:
        logger.warning("No search provider configured, skipping discovery for %s", city)
        return []

    queries = build_queries(city)

    def run_query(query: str) -> list[CandidateUrl]:
        try:
            hits = provider.search(query, country=country, exclude_domains=EXCLUDED_DOMAINS)
        except Exception as exc:
            logger.warning("Query %r failed: %s", query, exc)
            return []
        return [
            CandidateUrl(
                url=hit.url,
                domain=extract_domain(hit.url),
                title=hit.title,
                snippet=hit.snippet,
                raw_content=hit.raw_content,
            )
            for hit in hits
        ]

    batches = run_bounded(run_query, queries, max_workers=len(queries), deadline=deadline, label="search")

    seen: set[str] = set()
    deduped: list[CandidateUrl] = []
    for batch in batches:
        for candidate in batch:
            if candidate.url not in seen:
                seen.add(candidate.url)
                deduped.append(candidate)

    results = diversify_by_domain(deduped, limit)
    with_content = sum(1 for r in results if r.raw_content)
    logger.info(
        "%s: %d unique URLs (%d with content) from %d queries",
        city, len(results), with_content, len(queries),
    )
    return results
