"""Similarity scoring against stored events and record merging."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Iterable, Optional, TypeVar

from rapidfuzz.distance import Levenshtein

from scrapers.utils import normalize_text, round_half_up

from .constants import (
    DUPLICATE_CANDIDATE_LIMIT,
    DUPLICATE_DATE_WINDOW_DAYS,
    DUPLICATE_SCORE_THRESHOLD,
)
from .schemas import CandidateFilter, CanonicalEvent, Curation, DuplicateResult, EventDraft, EventStatus

if TYPE_CHECKING:
    from .event_store import EventStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DATE_WINDOW = timedelta(days=DUPLICATE_DATE_WINDOW_DAYS)


def title_similarity(a: Optional[str], b: Optional[str]) -> float:
    """Normalized Levenshtein similarity in ``[0, 1]``; two blanks are identical."""
    return Levenshtein.normalized_similarity(normalize_text(a), normalize_text(b))


def compute_similarity_score(incoming: EventDraft, existing: CanonicalEvent) -> int:
    """Score 0-100: 40 for the title, 20 each for venue, date and artists."""
    score = int(round_half_up(title_similarity(incoming.title, existing.title) * 40))

    if incoming.venue_name and existing.venue_name:
        if title_similarity(incoming.venue_name, existing.venue_name) > 0.7:
            score += 20

    if incoming.start_date and existing.start_date:
        if abs(incoming.start_date - existing.start_date) <= _DATE_WINDOW:
            score += 20

    if incoming.artists and existing.artists:
        wanted = {normalize_text(a) for a in incoming.artists}
        if any(normalize_text(a) in wanted for a in existing.artists):
            score += 20

    return min(score, 100)


def find_duplicate(store: "EventStore", draft: EventDraft, city_id: Optional[str]) -> DuplicateResult:
    """Return the best-scoring stored candidate for ``draft``."""
    date_from, date_to = date_window(draft.start_date)
    query = CandidateFilter(
        status=EventStatus.ACTIVE,
        city_id=city_id,
        date_from=date_from,
        date_to=date_to,
        limit=DUPLICATE_CANDIDATE_LIMIT,
    )
    candidates = store.find_candidate_events(query)

    best: Optional[CanonicalEvent] = None
    best_score = 0
    for candidate in candidates:
        score = compute_similarity_score(draft, candidate)
        if score > best_score:
            best, best_score = candidate, score

    if best is None:
        return DuplicateResult(is_duplicate=False, score=0)

    is_duplicate = best_score >= DUPLICATE_SCORE_THRESHOLD
    if is_duplicate:
        logger.debug("'%s' duplicates event %s (score %d)", draft.title, best.id, best_score)
    return DuplicateResult(
        is_duplicate=is_duplicate,
        score=best_score,
        existing_id=best.id,
        existing=best,
    )


def merge_events(
    existing: CanonicalEvent,
    incoming: EventDraft,
    existing_reliability: int,
    incoming_reliability: int,
    incoming_source_id: str,
    curation: Optional[Curation] = None,
) -> CanonicalEvent:
    """Return ``existing`` enriched with ``incoming``. Neither argument is mutated.

    The incoming side only wins contested text fields when its source is
    strictly more reliable.
    """
    prefer_incoming = incoming_reliability > existing_reliability

    def pick(mine: Optional[T], theirs: Optional[T]) -> Optional[T]:
        if prefer_incoming:
            return theirs if theirs is not None else mine
        return mine if mine is not None else theirs

    price_min, price_max = _merge_price_range(
        (existing.price_min, existing.price_max), (incoming.price_min, incoming.price_max)
    )

    merged = replace(
        existing,
        description=pick(existing.description, incoming.description),
        venue_name=pick(existing.venue_name, incoming.venue_name),
        address=pick(existing.address, incoming.address),
        image_url=pick(existing.image_url, incoming.image_url),
        source_url=pick(existing.source_url, incoming.source_url),
        source_id=incoming_source_id if prefer_incoming else existing.source_id,
        latitude=_more_precise(existing.latitude, incoming.latitude),
        longitude=_more_precise(existing.longitude, incoming.longitude),
        price_min=price_min,
        price_max=price_max,
        tags=_union(existing.tags, incoming.tags),
        artists=_union(existing.artists, incoming.artists),
    )

    if curation is not None:
        merged = replace(
            merged,
            cultural_score=_first_set(merged.cultural_score, curation.cultural_score),
            originality_score=_first_set(merged.originality_score, curation.originality_score),
            cultural_category=_first_set(merged.cultural_category, curation.cultural_category),
            editorial_highlight=_first_set(merged.editorial_highlight, curation.editorial_highlight or None),
            final_score=_first_set(merged.final_score, curation.final_score),
        )
    return merged


def changed_fields(before: CanonicalEvent, after: CanonicalEvent) -> dict[str, object]:
    """Fields of ``after`` that differ from ``before``, ignoring timestamps."""
    ignored = {"id", "created_at", "updated_at"}
    return {
        name: getattr(after, name)
        for name in before.__dataclass_fields__
        if name not in ignored and getattr(before, name) != getattr(after, name)
    }


def _union(first: Iterable[str], second: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys([*first, *second]))


def _first_set(current: Optional[T], fallback: Optional[T]) -> Optional[T]:
    return current if current is not None else fallback


def _decimals(value: float) -> int:
    text = repr(float(value))
    if "e" in text or "E" in text:
        return 0
    return len(text.split(".")[1].rstrip("0")) if "." in text else 0


def _more_precise(mine: Optional[float], theirs: Optional[float]) -> Optional[float]:
    if mine is None or theirs is None:
        return theirs if mine is None else mine
    return mine if _decimals(mine) > _decimals(theirs) else theirs


def _merge_price_range(
    mine: tuple[Optional[float], Optional[float]],
    theirs: tuple[Optional[float], Optional[float]],
) -> tuple[Optional[float], Optional[float]]:
    mine_known = sum(v is not None for v in mine)
    theirs_known = sum(v is not None for v in theirs)
    if mine_known > theirs_known:
        return mine
    if theirs_known == 0:
        return mine
    return theirs


def date_window(start: Optional[datetime]) -> tuple[Optional[datetime], Optional[datetime]]:
    if start is None:
        return None, None
    return start - _DATE_WINDOW, start + _DATE_WINDOW
