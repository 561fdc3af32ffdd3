"""Cultural scoring, categorisation and editorial highlights."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from scrapers.llm_client import StructuredLLM
from scrapers.utils import round_half_up

from .concurrency import chunked, retry_call
from .constants import CULTURAL_EVENT_TAGS, INDEPENDENCE_VALUES, PIPELINE_SOURCE_RELIABILITY
from .errors import ScoringFailure
from .schemas import CanonicalEvent, Curation, ScoredEvent, ValidatedEvent

logger = logging.getLogger(__name__)

CURATOR_TEMPERATURE = 0.4
CURATOR_BATCH_SIZE = 25
CURATOR_ATTEMPTS = 2
HIGHLIGHT_MAX_CHARS = 240

CulturalTag = Literal[CULTURAL_EVENT_TAGS]
Independence = Literal[INDEPENDENCE_VALUES]


class EventScore(BaseModel):
    event_index: int = Field(description="Zero-based index of the event in the input list")
    cultural_category: CulturalTag = Field(description="Exactly one tag from the closed set")
    cultural_score: float = Field(description="Cultural interest from 0 to 10")
    originality_score: float = Field(description="Originality compared to standard programming, 0 to 10")
    commercial_vs_independent: Independence = Field(description="Commercial venue/event or independent/cultural")
    editorial_highlight: str = Field(description="At most 40 words. One factual sentence in rioplatense Spanish. Never promotional")


class CurationBatch(BaseModel):
    events: List[EventScore] = Field(default_factory=list)


def build_curator_prompt(city: str) -> str:
    return (
        f"You are a cultural curator for {city}, Argentina.\n"
        "You receive a numbered list of cultural events. Evaluate the cultural value of each one.\n"
        "Do not modify factual data. Only evaluate and annotate.\n\n"
        "Scoring guide:\n"
        "0-2: purely commercial, generic chain cinema, imported blockbuster\n"
        "3-4: standard commercial programming\n"
        "5-6: good standard programming, notable artists, established venues\n"
        "7-8: culturally notable, independent productions, community events, local artists\n"
        "9-10: exceptional, landmark event, rare opportunity, high quality free public events\n"
        "Use the whole range. Free admission, community focus and independent production deserve higher scores.\n\n"
        f"cultural_category must be one of {', '.join(CULTURAL_EVENT_TAGS)}. "
        "Stand-up and comedy are TEATRO; talks and book presentations are TALLER; "
        "markets are FERIA; multi-day events are FESTIVAL; family activities are INFANTIL.\n"
        "editorial_highlight: one factual sentence, at most 40 words, in rioplatense Spanish, never hyperbolic."
    )


@dataclass(frozen=True)
class _Item:
    title: str
    venue: str
    category: str
    date: str
    description: str


def compute_final_score(cultural: float, originality: float, reliability: Optional[int]) -> float:
    """Weighted 0-10 score; ``reliability`` is the source's 0-100 score."""
    source_score = (PIPELINE_SOURCE_RELIABILITY if reliability is None else reliability) / 10
    return round_half_up(0.5 * cultural + 0.3 * originality + 0.2 * source_score, 2)


def fallback_curation(reliability: Optional[int]) -> Curation:
    return Curation(
        cultural_score=5.0,
        originality_score=5.0,
        cultural_category="OTRO",
        independence="mixed",
        editorial_highlight="",
        final_score=compute_final_score(5.0, 5.0, reliability),
    )


def _clamp(value: float) -> float:
    return max(0.0, min(10.0, float(value)))


class Curator:
    def __init__(
        self,
        llm: StructuredLLM,
        batch_size: int = CURATOR_BATCH_SIZE,
        attempts: int = CURATOR_ATTEMPTS,
        backoff: float = 1.0,
    ) -> None:
        self.llm = llm
        self.batch_size = batch_size
        self.attempts = attempts
        self.backoff = backoff

    def score(
        self,
        events: Sequence[ValidatedEvent],
        city: str,
        source_reliability: Optional[int] = None,
    ) -> list[ScoredEvent]:
        """Curate ``events``, returning one :class:`ScoredEvent` each, in order.

        Never raises: a batch that keeps failing gets fallback scores.
        """
        items = [
            _Item(
                title=e.event.title,
                venue=e.event.venue,
                category=e.event.category_guess,
                date=e.event.date,
                description=e.event.description,
            )
            for e in events
        ]
        curations = self._curate(items, city, source_reliability)
        return [ScoredEvent(event=e, curation=c) for e, c in zip(events, curations)]

    def score_stored(
        self,
        events: Sequence[CanonicalEvent],
        city: str,
        source_reliability: Optional[int] = None,
    ) -> list[tuple[CanonicalEvent, Curation]]:
        items = [
            _Item(
                title=e.title,
                venue=e.venue_name or "",
                category=e.category,
                date=e.start_date.date().isoformat() if e.start_date else "",
                description=e.description or "",
            )
            for e in events
        ]
        return list(zip(events, self._curate(items, city, source_reliability)))

    def _curate(self, items: list[_Item], city: str, reliability: Optional[int]) -> list[Curation]:
        curations: list[Curation] = []
        for number, batch in enumerate(chunked(items, self.batch_size)):
            try:
                curations.extend(self._curate_batch(list(batch), city, reliability))
            except ScoringFailure as exc:
                logger.warning("Curator batch %d failed, using fallback scores: %s", number, exc)
                curations.extend(fallback_curation(reliability) for _ in batch)
        logger.info("Curated %d events", len(curations))
        return curations

    def _curate_batch(self, batch: list[_Item], city: str, reliability: Optional[int]) -> list[Curation]:
        listing = "\n\n".join(
            f'[{i}] "{item.title}" | {item.venue} | {item.category} | {item.date}\n{item.description}'
            for i, item in enumerate(batch)
        )
        prompt = f"Curate these {len(batch)} events:\n\n{listing}"
        try:
            result = retry_call(
                lambda: self.llm.generate_structured(
                    build_curator_prompt(city), prompt, CurationBatch, CURATOR_TEMPERATURE
                ),
                attempts=self.attempts,
                backoff=self.backoff,
                label="curator batch",
            )
        except Exception as exc:
            raise ScoringFailure(str(exc)) from exc

        by_index: dict[int, Curation] = {}
        for score in result.events:
            if not 0 <= score.event_index < len(batch) or score.event_index in by_index:
                continue
            cultural = _clamp(score.cultural_score)
            originality = _clamp(score.originality_score)
            by_index[score.event_index] = Curation(
                cultural_score=cultural,
                originality_score=originality,
                cultural_category=score.cultural_category,
                independence=score.commercial_vs_independent,
                editorial_highlight=score.editorial_highlight.strip()[:HIGHLIGHT_MAX_CHARS],
                final_score=compute_final_score(cultural, originality, reliability),
            )

        missing = len(batch) - len(by_index)
        if missing:
            logger.info("Curator skipped %d event(s); using fallback scores for them", missing)
        return [by_index.get(i) or fallback_curation(reliability) for i in range(len(batch))]
