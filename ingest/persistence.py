"""Writes pipeline results to the event store.

Handles deduplication and merging, slugs, category detection, source health
and the pipeline run log.
"""
from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Callable, Iterable, Optional

from scrapers.utils import normalize_text

from .city_resolver import CityResolver
from .constants import (
    CATEGORY_KEYWORDS,
    DEFAULT_SOURCE_RELIABILITY,
    PIPELINE_SOURCE_NAME,
    PIPELINE_SOURCE_RELIABILITY,
    PIPELINE_SOURCE_TYPE,
    STALE_RUN_MESSAGE,
)
from .deduplicator import changed_fields, find_duplicate, merge_events
from .event_store import EventStore
from .schemas import (
    CanonicalEvent,
    Curation,
    EventDraft,
    Outcome,
    PipelineRun,
    ProcessOutcome,
    RunStatus,
    Source,
    now_in,
)
from .settings import DEFAULT_TIMEZONE
from .slugs import generate_event_slug

logger = logging.getLogger(__name__)


def detect_category(title: str, description: Optional[str] = None, tags: Iterable[str] = ()) -> str:
    """First category whose keyword appears in the title, description or tags."""
    text = normalize_text(" ".join(part for part in (title, description, *tags) if part))
    for category, keywords in CATEGORY_KEYWORDS.items():
        if category == "OTRO":
            continue
        if any(keyword in text for keyword in keywords):
            return category
    return "OTRO"


def curation_fields(curation: Curation) -> dict[str, object]:
    return {
        "cultural_score": curation.cultural_score,
        "originality_score": curation.originality_score,
        "cultural_category": curation.cultural_category,
        "editorial_highlight": curation.editorial_highlight or None,
        "final_score": curation.final_score,
    }


class PersistenceGateway:
    def __init__(
        self,
        store: EventStore,
        resolver: CityResolver,
        timezone: str = DEFAULT_TIMEZONE,
        stale_after: timedelta = timedelta(minutes=5),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.stale_after = stale_after
        self.clock = clock or (lambda: now_in(timezone))

    # Events

    def process(self, draft: EventDraft, source: Source, curation: Optional[Curation] = None) -> ProcessOutcome:
        """Create, merge or skip one event."""
        if not draft.title.strip():
            return ProcessOutcome.SKIPPED

        start_of_today = datetime.combine(self.clock().date(), time.min)
        if draft.start_date is not None and draft.start_date < start_of_today:
            return ProcessOutcome.SKIPPED

        city_id = self.resolver.resolve(draft.city_name) if draft.city_name else None

        duplicate = find_duplicate(self.store, draft, city_id)
        if duplicate.is_duplicate and duplicate.existing is not None:
            return self._merge(duplicate.existing, draft, source, curation)

        category = draft.category or detect_category(draft.title, draft.description, draft.tags)
        province = draft.province
        if not province and city_id:
            city = self.resolver.get_city(city_id)
            province = city.province if city else None

        data = {
            "title": draft.title,
            "slug": generate_event_slug(self.store, draft.title, draft.start_date),
            "description": draft.description,
            "start_date": draft.start_date,
            "end_date": draft.end_date,
            "venue_name": draft.venue_name,
            "address": draft.address,
            "latitude": draft.latitude,
            "longitude": draft.longitude,
            "city_id": city_id,
            "province": province,
            "category": category,
            "tags": tuple(draft.tags),
            "artists": tuple(draft.artists),
            "price_min": draft.price_min,
            "price_max": draft.price_max,
            "currency": draft.currency or "ARS",
            "source_id": source.id,
            "source_url": draft.source_url,
            "source_event_id": draft.source_event_id,
            "image_url": draft.image_url,
            "status": draft.status,
        }
        if curation is not None:
            data.update(curation_fields(curation))

        created = self.store.create_event(data)
        logger.debug("Created event %s (%s)", created.id, created.slug)
        return ProcessOutcome.CREATED

    def _merge(
        self,
        existing: CanonicalEvent,
        draft: EventDraft,
        source: Source,
        curation: Optional[Curation],
    ) -> ProcessOutcome:
        existing_source = self.store.find_source(existing.source_id) if existing.source_id else None
        existing_reliability = (
            existing_source.reliability_score if existing_source else DEFAULT_SOURCE_RELIABILITY
        )
        incoming_reliability = (
            source.reliability_score if source.reliability_score is not None else DEFAULT_SOURCE_RELIABILITY
        )

        merged = merge_events(existing, draft, existing_reliability, incoming_reliability, source.id, curation)
        changes = changed_fields(existing, merged)
        if not changes:
            return ProcessOutcome.DUPLICATE
        self.store.update_event(existing.id, changes)
        logger.debug("Merged '%s' into %s (%s)", draft.title, existing.id, ", ".join(sorted(changes)))
        return ProcessOutcome.UPDATED

    def apply_curation(self, event_id: str, curation: Curation) -> CanonicalEvent:
        return self.store.update_event(event_id, curation_fields(curation))

    # Sources

    def get_or_create_pipeline_source(self) -> Source:
        existing = self.store.find_source_by_name(PIPELINE_SOURCE_NAME)
        if existing is not None:
            return existing
        logger.info("Creating pipeline source %s", PIPELINE_SOURCE_NAME)
        return self.store.create_source(
            {
                "name": PIPELINE_SOURCE_NAME,
                "type": PIPELINE_SOURCE_TYPE,
                "reliability_score": PIPELINE_SOURCE_RELIABILITY,
                "is_active": True,
            }
        )

    def update_source_health(self, source_id: str, success: bool) -> None:
        self.store.upsert_source_health(source_id, success, self.clock())

    # Run log

    def start_run(self, source: Source, city: str) -> PipelineRun:
        return self.store.create_run_log(source.id, city, self.clock())

    def find_running(self, city: str) -> Optional[PipelineRun]:
        """Return the live RUNNING run for ``city`` after failing stale ones."""
        now = self.clock()
        cutoff = now - self.stale_after
        for stale in self.store.find_stale_running_logs(city, cutoff):
            if self.store.update_run_log(
                stale.id,
                RunStatus.FAILED,
                stale.counts,
                error_message=STALE_RUN_MESSAGE,
                finished_at=now,
                only_if_running=True,
            ):
                logger.warning("Marked stale run %s for %s as FAILED", stale.id, city)
        return self.store.find_running_log(city, cutoff)

    def complete_run(self, run_id: str, outcome: Outcome) -> bool:
        """Move a RUNNING run to its terminal state. Only the first call wins."""
        completed = self.store.update_run_log(
            run_id,
            outcome.status,
            outcome.counts,
            error_message=outcome.error_message,
            duration_ms=outcome.duration_ms,
            finished_at=self.clock(),
            only_if_running=True,
        )
        if not completed:
            logger.warning("Run %s was already completed; ignoring %s", run_id, outcome.status.value)
        return completed
