"""Interface between the pipeline and whatever stores events durably."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from .schemas import (
    CandidateFilter,
    CanonicalEvent,
    City,
    PipelineRun,
    RunCounts,
    RunStatus,
    Source,
)


class EventStore(Protocol):
    """Operations the pipeline needs from the event store.

    ``create_event`` and ``update_event`` take plain field dictionaries using
    the :class:`CanonicalEvent` attribute names. ``update_run_log`` with
    ``only_if_running=True`` must be atomic and return ``False`` when the row
    had already left the RUNNING state.
    """

    def find_cities_with_aliases(self) -> Sequence[City]: ...

    def find_candidate_events(self, query: CandidateFilter) -> Sequence[CanonicalEvent]: ...

    def find_event(self, event_id: str) -> Optional[CanonicalEvent]: ...

    def find_event_by_slug(self, slug: str) -> Optional[CanonicalEvent]: ...

    def create_event(self, data: dict[str, Any]) -> CanonicalEvent: ...

    def update_event(self, event_id: str, data: dict[str, Any]) -> CanonicalEvent: ...

    def find_unscored_events(self, limit: int) -> Sequence[CanonicalEvent]: ...

    def expire_past_events(self, now: datetime) -> int: ...

    def find_source(self, source_id: str) -> Optional[Source]: ...

    def find_source_by_name(self, name: str) -> Optional[Source]: ...

    def create_source(self, data: dict[str, Any]) -> Source: ...

    def upsert_source_health(self, source_id: str, success: bool, at: datetime) -> None: ...

    def create_run_log(self, source_id: str, city: str, started_at: datetime) -> PipelineRun: ...

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
    ) -> bool: ...

    def find_stale_running_logs(self, city: str, cutoff: datetime) -> Sequence[PipelineRun]: ...

    def find_running_log(self, city: str, since: datetime) -> Optional[PipelineRun]: ...
