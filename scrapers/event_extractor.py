"""Extract cultural events from page text with a structured LLM call."""
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field

from ingest.concurrency import Deadline, retry_call, run_bounded
from ingest.errors import ExtractionFailure
from ingest.schemas import Page, PageExtraction, RawEvent

from .llm_client import StructuredLLM

logger = logging.getLogger(__name__)

EXTRACTION_TEMPERATURE = 0.2
EXTRACTION_CONCURRENCY = 10
CONTENT_MAX_CHARS = 8_000
CONTENT_MIN_CHARS = 200
DESCRIPTION_MAX_CHARS = 300
EXTRACTION_ATTEMPTS = 2


class ExtractedEvent(BaseModel):
    title: str = Field(description="Exact event title as written in the content")
    date: str = Field(description="Date in ISO 8601 format YYYY-MM-DD. Skip the event if there is no explicit date")
    time: Optional[str] = Field(description="Start time in HH:MM 24h format, null if not found")
    venue: str = Field(description="Exact venue name. Skip the event if there is no venue")
    address: Optional[str] = Field(description="Street address of the venue, null if not found")
    category_guess: str = Field(description="One of: cine, teatro, musica, exposicion, feria, festival, taller, otro")
    description: str = Field(description="Factual description in Spanish, at most 300 characters. Never invent")
    price_min: Optional[float] = Field(description="Lowest ticket price in ARS, 0 if free, null if not mentioned")
    price_max: Optional[float] = Field(description="Highest ticket price in ARS, null if same as price_min or not mentioned")
    artists: List[str] = Field(description="Artist, performer or band names mentioned. Empty if none")
    source_url: str = Field(description="URL of the page where this event was found")


class ExtractedEvents(BaseModel):
    events: List[ExtractedEvent] = Field(default_factory=list)


_MONTHS = "enero|febrero|marzo|abril|mayo|junio|julio|agosto|septiembre|octubre|noviembre|diciembre"

DATE_PATTERNS = (
    re.compile(rf"\d{{1,2}}\s+de\s+({_MONTHS})"),
    re.compile(r"\d{1,2}/\d{1,2}"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"(lunes|martes|miércoles|miercoles|jueves|viernes|sábado|sabado|domingo)\s+\d"),
)

TIME_PATTERNS = (
    re.compile(r"\d{1,2}:\d{2}"),
    re.compile(r"\d{1,2}\s*h\b"),
    re.compile(r"de\s+\d{1,2}\s+a\s+\d{1,2}"),
)

EVENT_KEYWORDS = (
    "teatro", "cine", "museo", "sala", "centro cultural",
    "exposición", "exposicion", "concierto", "recital",
    "función", "funcion", "estreno", "entradas", "localidades",
    "gratis", "entrada libre", "bono contribución",
)

_NAV_LINK_LINE = re.compile(r"^[\s*-]*\[([^\]]{1,40})\]\([^)]+\)\s*$", re.MULTILINE)
_BARE_URL_LINE = re.compile(r"^https?://\S+\s*$", re.MULTILINE)
_BLANK_RUN = re.compile(r"\n{3,}")


def looks_like_event_content(text: str) -> bool:
    """Cheap check for a date plus a time or an event keyword."""
    lower = text.lower()
    has_date = any(p.search(lower) for p in DATE_PATTERNS)
    if not has_date:
        return False
    return any(p.search(lower) for p in TIME_PATTERNS) or any(k in lower for k in EVENT_KEYWORDS)


def clean_and_truncate(text: str, max_chars: int = CONTENT_MAX_CHARS) -> str:
    """Drop navigation-only lines and cap the text to ``max_chars``.

    The cut lands on the last newline when that newline is in the final
    fifth of the allowed length.
    """
    cleaned = _NAV_LINK_LINE.sub("", text)
    cleaned = _BARE_URL_LINE.sub("", cleaned)
    cleaned = _BLANK_RUN.sub("\n\n", cleaned).strip()

    if len(cleaned) <= max_chars:
        return cleaned
    truncated = cleaned[:max_chars]
    last_newline = truncated.rfind("\n")
    return truncated[:last_newline] if last_newline > max_chars * 0.8 else truncated


def build_system_prompt(city: str, today_iso: str) -> str:
    year = today_iso[:4]
    return (
        "You are a strict structured data extraction engine.\n"
        "Extract future cultural events from the provided content.\n\n"
        "RULES:\n"
        "- Only extract events with an explicit calendar date.\n"
        f"- Only include events dated today ({today_iso}) or later. Ignore past events.\n"
        "- Ignore recurring schedules without a specific date and permanent exhibitions.\n"
        "- Ignore blog posts, press releases and news summaries.\n"
        "- Do not guess or infer missing dates or venue names. If a required field is unclear, discard the event.\n"
        "- Never fabricate information. If there are no valid events, return an empty list.\n\n"
        "YEAR INFERENCE:\n"
        f"- The current year is {year}. A date with an explicit year keeps it.\n"
        "- Without a year, use the year the page is scoped to (e.g. 'Agenda 2026'); otherwise assume the current "
        "year only if the date falls within the next 90 days, else skip the event.\n"
        "- Skip events marked 'evento finalizado', 'ya fue', 'finalizada' or similar.\n\n"
        "GEOGRAPHY:\n"
        f"- The target city is {city}, Argentina. Only include events physically in {city} or its metropolitan area.\n"
        "- Reject events in other cities and in Spain. Skip venues whose address mentions 'C. A. B. A.', "
        "'Buenos Aires', 'España' or a Spanish postal code (CP + 5 digits) unless that is the target city.\n\n"
        "LANGUAGE:\n"
        "- Write descriptions in rioplatense Spanish, translating if needed. Keep titles and venue names as written.\n\n"
        "PRICES:\n"
        "- Prices are numbers in ARS. Remove thousands separators ('40.000' is 40000).\n"
        "- With several tiers use the lowest as price_min and the highest as price_max.\n"
        "- Free or 'entrada libre' means price_min = 0. No price mentioned means null.\n"
        "- Prices in EUR or USD become null."
    )


def _to_raw_event(item: ExtractedEvent, page_url: str) -> RawEvent:
    return RawEvent(
        title=item.title,
        date=item.date,
        time=item.time,
        venue=item.venue,
        address=item.address,
        category_guess=item.category_guess,
        description=item.description[:DESCRIPTION_MAX_CHARS],
        price_min=item.price_min,
        price_max=item.price_max,
        artists=tuple(item.artists),
        source_url=item.source_url or page_url,
    )


class EventExtractor:
    def __init__(
        self,
        llm: StructuredLLM,
        concurrency: int = EXTRACTION_CONCURRENCY,
        attempts: int = EXTRACTION_ATTEMPTS,
        backoff: float = 0.0,
    ) -> None:
        self.llm = llm
        self.concurrency = concurrency
        self.attempts = attempts
        self.backoff = backoff

    def extract(self, page: Page, city: str, today_iso: str) -> list[RawEvent]:
        """Extract events from one already-cleaned page.

        Raises :class:`ExtractionFailure` once every attempt has failed.
        """
        system = build_system_prompt(city, today_iso)
        prompt = f"Extract all future cultural events from this page ({page.url}):\n\n{page.content}"
        try:
            result = retry_call(
                lambda: self.llm.generate_structured(system, prompt, ExtractedEvents, EXTRACTION_TEMPERATURE),
                attempts=self.attempts,
                backoff=self.backoff,
                label=f"extract {page.url}",
            )
        except Exception as exc:
            raise ExtractionFailure(page.url, str(exc)) from exc
        return [_to_raw_event(item, page.url) for item in result.events]

    def extract_from_page(self, page: Page, city: str, today_iso: str) -> Optional[PageExtraction]:
        try:
            events = self.extract(page, city, today_iso)
        except ExtractionFailure as exc:
            logger.warning("Discarding page after %d attempts: %s", self.attempts, exc)
            return None
        return PageExtraction(source_url=page.url, domain=page.domain, events=tuple(events), raw_count=len(events))

    def extract_pages(
        self,
        pages: Iterable[Page],
        city: str,
        today_iso: str,
        deadline: Optional[Deadline] = None,
    ) -> list[PageExtraction]:
        pages = list(pages)
        candidates: list[Page] = []
        for page in pages:
            if len(page.content) < CONTENT_MIN_CHARS:
                logger.info("SKIP (too short: %d chars) %s", len(page.content), page.url)
            elif not looks_like_event_content(page.content):
                logger.info("SKIP (no event patterns) %s", page.url)
            else:
                candidates.append(Page(url=page.url, domain=page.domain, content=clean_and_truncate(page.content)))
        logger.info("%d/%d pages passed the pre-filter", len(candidates), len(pages))

        results = run_bounded(
            lambda page: self.extract_from_page(page, city, today_iso),
            candidates,
            self.concurrency,
            deadline=deadline,
            label="extract",
        )
        extractions = [r for r in results if r is not None]
        total = sum(len(r.events) for r in extractions)
        logger.info("%d events from %d/%d pages", total, len(extractions), len(candidates))
        return extractions
