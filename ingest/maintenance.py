"""Housekeeping passes over stored events: late scoring and expiry."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .city_resolver import CityResolver
from .curator import Curator
from .event_store import EventStore
from .persistence import PersistenceGateway
from .ranker import rank_events
from .schemas import CanonicalEvent, Curation, RankableEvent

logger = logging.getLogger(__name__)

DEFAULT_SCORE_LIMIT = 50
UNKNOWN_CITY = "Argentina"


@dataclass
class ScoreReport:
    scored: int = 0
    errors: list[str] = field(default_factory=list)


def score_pending_events(
    store: EventStore,
    curator: Curator,
    resolver: Optional[CityResolver] = None,
    limit: int = DEFAULT_SCORE_LIMIT,
) -> ScoreReport:
    """Score ACTIVE events whose score fields are still empty.

    Events are curated per city and source, ranked together, and written in
    ranked order. A failing write is recorded and the pass moves on.
    """
    resolver = resolver or CityResolver(store)
    gateway = PersistenceGateway(store, resolver)
    pending = list(store.find_unscored_events(limit))
    if not pending:
        logger.info("No unscored events")
        return ScoreReport()
    logger.info("Scoring %d pending event(s)", len(pending))

    groups: dict[tuple[Optional[str], str], list[CanonicalEvent]] = {}
    for event in pending:
        groups.setdefault((event.city_id, event.source_id), []).append(event)

    curations: dict[str, tuple[CanonicalEvent, Curation]] = {}
    for (city_id, source_id), events in groups.items():
        city = resolver.get_city(city_id) if city_id else None
        source = store.find_source(source_id) if source_id else None
        reliability = source.reliability_score if source else None
        for event, curation in curator.score_stored(events, city.name if city else UNKNOWN_CITY, reliability):
            curations[event.id] = (event, curation)

    order = rank_events(
        [
            RankableEvent(
                event_id=event.id,
                final_score=curation.final_score,
                venue=event.venue_name or "",
                category=curation.cultural_category,
                independence=curation.independence,
            )
            for event, curation in curations.values()
        ]
    )

    report = ScoreReport()
    for event_id in order:
        _, curation = curations[event_id]
        try:
            gateway.apply_curation(event_id, curation)
        except Exception as exc:
            report.errors.append(f"Event {event_id}: {exc}")
            logger.error("Could not store scores for %s: %s", event_id, exc)
            continue
        report.scored += 1

    logger.info("Scored %d/%d pending events", report.scored, len(pending))
    return report


def expire_events(store: EventStore, now: datetime) -> int:
    """Mark ACTIVE events that have ended as PAST; nothing is deleted.

    An event without an end date gets a one-day grace period after its start.
    """
    expired = store.expire_past_events(now)
    logger.info("Marked %d event(s) as PAST", expired)
    return expired
