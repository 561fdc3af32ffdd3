"""Score ordering with venue and category diversity."""
from __future__ import annotations

from typing import Sequence

from scrapers.utils import normalize_text

from .schemas import RankableEvent

MAX_PER_VENUE = 2
MAX_CONSECUTIVE_CATEGORY = 2
INDEPENDENT_WINDOW = 5


def rank_events(events: Sequence[RankableEvent]) -> list[str]:
    """Return event ids in display order.

    Rules, in priority order:

    * highest ``final_score`` first (stable for ties);
    * at most two events per venue;
    * no three consecutive events of the same category while another
      candidate remains;
    * at least one ``independent`` event in the top five when one exists.

    When no candidate satisfies the constraints the best remaining one is
    taken anyway, so the output is always a permutation of the input.
    """
    remaining = sorted(events, key=lambda e: e.final_score, reverse=True)
    ranked: list[RankableEvent] = []
    venue_counts: dict[str, int] = {}

    while remaining:
        chosen_index = None
        for index, candidate in enumerate(remaining):
            venue = normalize_text(candidate.venue)
            if venue_counts.get(venue, 0) >= MAX_PER_VENUE:
                continue
            if _would_repeat_category(ranked, candidate) and len(remaining) > 1:
                continue
            chosen_index = index
            break

        if chosen_index is None:
            chosen_index = 0
        chosen = remaining.pop(chosen_index)
        ranked.append(chosen)
        venue = normalize_text(chosen.venue)
        venue_counts[venue] = venue_counts.get(venue, 0) + 1

    _ensure_independent_in_top(ranked)
    return [event.event_id for event in ranked]


def _would_repeat_category(ranked: list[RankableEvent], candidate: RankableEvent) -> bool:
    if len(ranked) < MAX_CONSECUTIVE_CATEGORY:
        return False
    tail = ranked[-MAX_CONSECUTIVE_CATEGORY:]
    return all(event.category == candidate.category for event in tail)


def _ensure_independent_in_top(ranked: list[RankableEvent]) -> None:
    if len(ranked) <= INDEPENDENT_WINDOW:
        return
    if any(event.independence == "independent" for event in ranked[:INDEPENDENT_WINDOW]):
        return
    for index in range(INDEPENDENT_WINDOW, len(ranked)):
        if ranked[index].independence == "independent":
            last = INDEPENDENT_WINDOW - 1
            ranked[last], ranked[index] = ranked[index], ranked[last]
            return
