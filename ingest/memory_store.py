"""Process-local event store used for dry runs and tests."""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from .errors import PersistenceError
from .schemas import (
    CandidateFilter,
    CanonicalEvent,
    City,
    EventStatus,
    PipelineRun,
    RunCounts,
    RunStatus,
    Source,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class InMemoryEventStore:
    """Dictionary backed implementation of :class:`~ingest.event_store.EventStore`."""

    def __init__(self, cities: Iterable[City] = (), clock=datetime.now) -> None:
        self._lock = threading.RLock()
        self._clock = clock
        self.cities: list[City] = list(cities)
        self.events: dict[str, CanonicalEvent] = {}
        self.sources: dict[str, Source] = {}
        self.runs: dict[str, PipelineRun] = {}

    # Cities

    def find_cities_with_aliases(self) -> list[City]:
        return list(self.cities)

    # Events

    def find_candidate_events(self, query: CandidateFilter) -> list[CanonicalEvent]:
        with self._lock:
            matches = [
                event for event in self.events.values()
                if event.status == query.status
                and (query.city_id is None or event.city_id == query.city_id)
                and _in_window(event.start_date, query.date_from, query.date_to)
            ]
        matches.sort(key=lambda e: (e.start_date is None, e.start_date or datetime.min))
        return matches[: query.limit]

    def find_event(self, event_id: str) -> Optional[CanonicalEvent]:
        return self.events.get(event_id)

    def find_event_by_slug(self, slug: str) -> Optional[CanonicalEvent]:
        with self._lock:
            for event in self.events.values():
                if event.slug == slug:
                    return event
        return None

    def create_event(self, data: dict[str, Any]) -> CanonicalEvent:
        with self._lock:
            if self.find_event_by_slug(data["slug"]) is not None:
                raise PersistenceError(f"slug already exists: {data['slug']}")
            now = self._clock()
            event = CanonicalEvent(id=_new_id(), created_at=now, updated_at=now, **data)
            self.events[event.id] = event
            return event

    def update_event(self, event_id: str, data: dict[str, Any]) -> CanonicalEvent:
        with self._lock:
            existing = self.events.get(event_id)
            if existing is None:
                raise PersistenceError(f"event not found: {event_id}")
            updated = replace(existing, updated_at=self._clock(), **data)
            self.events[event_id] = updated
            return updated

    def find_unscored_events(self, limit: int) -> list[CanonicalEvent]:
        with self._lock:
            rows = [
                event for event in self.events.values()
                if event.status == EventStatus.ACTIVE and not event.is_scored
            ]
        rows.sort(key=lambda e: e.created_at or datetime.min, reverse=True)
        return rows[:limit]

    def expire_past_events(self, now: datetime) -> int:
        grace_cutoff = now - timedelta(days=1)
        expired = 0
        with self._lock:
            for event_id, event in list(self.events.items()):
                if event.status != EventStatus.ACTIVE:
                    continue
                if event.end_date is not None:
                    is_past = event.end_date < now
                else:
                    is_past = event.start_date is not None and event.start_date < grace_cutoff
                if is_past:
                    self.events[event_id] = replace(event, status=EventStatus.PAST, updated_at=now)
                    expired += 1
        return expired

    # Sources

    def find_source(self, source_id: str) -> Optional[Source]:
        return self.sources.get(source_id)

    def find_source_by_name(self, name: str) -> Optional[Source]:
        with self._lock:
            for source in self.sources.values():
                if source.name == name:
                    return source
        return None

    def create_source(self, data: dict[str, Any]) -> Source:
        with self._lock:
            if self.find_source_by_name(data["name"]) is not None:
                raise PersistenceError(f"source already exists: {data['name']}")
            source = Source(id=_new_id(), **data)
            self.sources[source.id] = source
            return source

    def upsert_source_health(self, source_id: str, success: bool, at: datetime) -> None:
        with self._lock:
            source = self.sources.get(source_id)
            if source is None:
                raise PersistenceError(f"source not found: {source_id}")
            source.last_fetched_at = at
            if success:
                source.last_success_at = at
                source.error_count = 0
            else:
                source.error_count += 1

    # Run log

    def create_run_log(self, source_id: str, city: str, started_at: datetime) -> PipelineRun:
        run = PipelineRun(
            id=_new_id(),
            source_id=source_id,
            city=city,
            status=RunStatus.RUNNING,
            started_at=started_at,
        )
        with self._lock:
            self.runs[run.id] = run
        return run

    def update_run_log(
        self,
        run_id: str,
        status: RunStatus,
        counts: RunCounts,
        *,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        finished_at: Optional[datetime] = None,
        only_if_running: bool = False,
    ) -> bool:
        with self._lock:
            run = self.runs.get(run_id)
            if run is None:
                raise PersistenceError(f"run not found: {run_id}")
            if only_if_running and run.status != RunStatus.RUNNING:
                return False
            run.status = status
            run.counts = counts
            run.error_message = error_message
            run.duration_ms = duration_ms
            run.finished_at = finished_at
            return True

    def find_stale_running_logs(self, city: str, cutoff: datetime) -> list[PipelineRun]:
        with self._lock:
            return [
                run for run in self.runs.values()
                if run.city == city and run.status == RunStatus.RUNNING and run.started_at < cutoff
            ]

    def find_running_log(self, city: str, since: datetime) -> Optional[PipelineRun]:
        with self._lock:
            running = [
                run for run in self.runs.values()
                if run.city == city and run.status == RunStatus.RUNNING and run.started_at >= since
            ]
        if not running:
            return None
        return max(running, key=lambda run: run.started_at)


def _in_window(value: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is None and end is None:
        return True
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True
