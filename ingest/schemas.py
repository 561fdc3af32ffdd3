"""Shared data models for the collector pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo


class RunStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class EventStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAST = "PAST"
    CANCELLED = "CANCELLED"


class ProcessOutcome(str, Enum):
    """Result of handing one event to the persistence gateway."""

    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class City:
    id: str
    name: str
    aliases: tuple[str, ...] = ()
    province: Optional[str] = None


@dataclass
class Source:
    """A named origin of event data with reliability and health metadata."""

    id: str
    name: str
    type: str = "WEB_DISCOVERY"
    reliability_score: int = 70
    is_active: bool = True
    last_fetched_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    error_count: int = 0
    config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    url: str
    title: str
    snippet: str = ""
    raw_content: Optional[str] = None


@dataclass(frozen=True)
class CandidateUrl:
    """URL found by discovery, optionally with page content from the provider."""

    url: str
    domain: str
    title: str
    snippet: str = ""
    raw_content: Optional[str] = None


@dataclass(frozen=True)
class Page:
    url: str
    domain: str
    content: str


@dataclass(frozen=True)
class RawEvent:
    """Unverified extraction output for a single event."""

    title: str
    date: str
    venue: str
    source_url: str
    time: Optional[str] = None
    address: Optional[str] = None
    category_guess: str = ""
    description: str = ""
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    artists: tuple[str, ...] = ()


@dataclass(frozen=True)
class PageExtraction:
    source_url: str
    domain: str
    events: tuple[RawEvent, ...]
    raw_count: int


@dataclass(frozen=True)
class ValidatedEvent:
    """A RawEvent that passed the deterministic checks."""

    event: RawEvent
    flags: tuple[tuple[str, bool], ...] = ()

    @property
    def title(self) -> str:
        return self.event.title

    @property
    def date(self) -> str:
        return self.event.date

    @property
    def venue(self) -> str:
        return self.event.venue


@dataclass
class ValidationResult:
    valid: list[ValidatedEvent] = field(default_factory=list)
    expired: list[RawEvent] = field(default_factory=list)
    invalid: list[RawEvent] = field(default_factory=list)

    @property
    def accepted(self) -> list[ValidatedEvent]:
        return self.valid

    @property
    def rejected_count(self) -> int:
        return len(self.expired) + len(self.invalid)


@dataclass
class DomainResult:
    """Validation buckets aggregated for one domain."""

    domain: str
    valid: list[ValidatedEvent] = field(default_factory=list)
    invalid: list[RawEvent] = field(default_factory=list)
    expired: list[RawEvent] = field(default_factory=list)


@dataclass(frozen=True)
class YieldReport:
    domain: str
    total_extracted: int
    valid_count: int
    invalid_count: int
    invalid_rate: float
    accepted: bool


@dataclass(frozen=True)
class Curation:
    """Scores the curator assigns to one event."""

    cultural_score: float
    originality_score: float
    cultural_category: str
    independence: str
    editorial_highlight: str
    final_score: float


@dataclass(frozen=True)
class ScoredEvent:
    event: ValidatedEvent
    curation: Curation

    @property
    def final_score(self) -> float:
        return self.curation.final_score


@dataclass(frozen=True)
class RankableEvent:
    event_id: str
    final_score: float
    venue: str
    category: str
    independence: str = "mixed"


@dataclass(frozen=True)
class EventDraft:
    """Normalized event handed to the persistence gateway."""

    title: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    description: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city_name: Optional[str] = None
    province: Optional[str] = None
    category: Optional[str] = None
    tags: tuple[str, ...] = ()
    artists: tuple[str, ...] = ()
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: str = "ARS"
    source_url: Optional[str] = None
    source_event_id: Optional[str] = None
    image_url: Optional[str] = None
    status: EventStatus = EventStatus.ACTIVE


@dataclass(frozen=True)
class CanonicalEvent:
    """The durable event record."""

    id: str
    title: str
    slug: str
    category: str
    source_id: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    description: Optional[str] = None
    venue_name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city_id: Optional[str] = None
    province: Optional[str] = None
    tags: tuple[str, ...] = ()
    artists: tuple[str, ...] = ()
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    currency: Optional[str] = "ARS"
    source_url: Optional[str] = None
    source_event_id: Optional[str] = None
    image_url: Optional[str] = None
    status: EventStatus = EventStatus.ACTIVE
    cultural_score: Optional[float] = None
    originality_score: Optional[float] = None
    cultural_category: Optional[str] = None
    editorial_highlight: Optional[str] = None
    final_score: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_scored(self) -> bool:
        return self.cultural_score is not None


@dataclass(frozen=True)
class CandidateFilter:
    """Query for stored events that may duplicate an incoming one."""

    status: EventStatus = EventStatus.ACTIVE
    city_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: int = 50


@dataclass(frozen=True)
class DuplicateResult:
    is_duplicate: bool
    score: int
    existing_id: Optional[str] = None
    existing: Optional[CanonicalEvent] = None


@dataclass(frozen=True)
class RunCounts:
    events_found: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_duplicate: int = 0


@dataclass
class PipelineRun:
    id: str
    source_id: str
    city: str
    status: RunStatus
    started_at: datetime
    counts: RunCounts = field(default_factory=RunCounts)
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None
    finished_at: Optional[datetime] = None


@dataclass
class Outcome:
    """Single record returned for every pipeline run."""

    status: RunStatus
    events_found: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_duplicate: int = 0
    duration_ms: int = 0
    error_message: Optional[str] = None
    source_id: Optional[str] = None
    source_name: Optional[str] = None
    run_id: Optional[str] = None
    stage_timings: dict[str, int] = field(default_factory=dict)
    yield_reports: list[YieldReport] = field(default_factory=list)

    @property
    def counts(self) -> RunCounts:
        return RunCounts(
            events_found=self.events_found,
            events_created=self.events_created,
            events_updated=self.events_updated,
            events_duplicate=self.events_duplicate,
        )


@dataclass(frozen=True)
class TriggerResult:
    started: bool
    already_running: bool
    started_at: Optional[datetime] = None
    run_id: Optional[str] = None
    outcome: Optional[Outcome] = None


def today_in(tz_name: str) -> date:
    """Return the current calendar date in ``tz_name``."""
    return datetime.now(ZoneInfo(tz_name)).date()


def now_in(tz_name: str) -> datetime:
    """Return the current wall-clock time in ``tz_name`` as a naive datetime."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)
