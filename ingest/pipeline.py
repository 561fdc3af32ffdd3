"""Pipeline orchestrator: discovery through persistence for one city.

Stages run in order: discover, filter, content, extract, validate, yield,
curate, rank, persist. Every run produces exactly one :class:`Outcome` and
never raises; unexpected errors become a FAILED outcome.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, Optional

from scrapers.domain_filter import filter_domains
from scrapers.event_extractor import EventExtractor
from scrapers.event_validator import validate_events
from scrapers.llm_client import StructuredLLM
from scrapers.page_fetcher import PageFetcher, pages_from_candidates
from scrapers.search_client import SearchProvider, build_search_provider
from scrapers.url_discovery import discover_urls
from scrapers.utils import combine_date_time, make_external_id

from .api_client import ApiEventStore
from .city_resolver import CityResolver
from .concurrency import Deadline
from .constants import PIPELINE_SOURCE_NAME
from .curator import Curator
from .event_store import EventStore
from .persistence import PersistenceGateway
from .ranker import rank_events
from .schemas import (
    DomainResult,
    EventDraft,
    Outcome,
    PipelineRun,
    ProcessOutcome,
    RankableEvent,
    RunStatus,
    Source,
    TriggerResult,
    ValidatedEvent,
    YieldReport,
    today_in,
)
from .settings import PipelineSettings
from .source_yield import enforce_source_yield

logger = logging.getLogger(__name__)

# Thread pool for fire-and-forget runs
executor = ThreadPoolExecutor(max_workers=4)

# Shared by every pipeline instance so the live-run check and the new row are atomic
_trigger_lock = threading.Lock()


def validated_event_to_draft(event: ValidatedEvent, city: str) -> EventDraft:
    """Map a validated extraction onto the shape the gateway persists."""
    raw = event.event
    return EventDraft(
        title=raw.title,
        description=raw.description or None,
        start_date=combine_date_time(raw.date, raw.time),
        venue_name=raw.venue,
        address=raw.address,
        city_name=city,
        tags=(raw.category_guess,) if raw.category_guess else (),
        artists=raw.artists,
        price_min=raw.price_min,
        price_max=raw.price_max,
        currency="ARS",
        source_url=raw.source_url,
        source_event_id=make_external_id(raw.source_url, raw.title, raw.date),
    )


class _StageClock:
    def __init__(self) -> None:
        self.timings: dict[str, int] = {}

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = int((time.perf_counter() - started) * 1000)


def log_timings(timings: dict[str, int]) -> None:
    total = sum(timings.values())
    logger.info("Stage timings (total %.1fs):", total / 1000)
    for stage, ms in timings.items():
        share = round(ms * 100 / total) if total else 0
        logger.info("  %s: %.1fs (%d%%)", stage, ms / 1000, share)


def log_yield_reports(reports: list[YieldReport]) -> None:
    for report in reports:
        logger.info(
            "yield: %s -> %s (%d valid, %d invalid, %d%% invalid)",
            report.domain,
            "ACCEPTED" if report.accepted else "REJECTED",
            report.valid_count,
            report.invalid_count,
            round(report.invalid_rate * 100),
        )


class EventPipeline:
    """Wires the pipeline stages to their collaborators."""

    def __init__(
        self,
        store: EventStore,
        search_provider: Optional[SearchProvider],
        extractor: EventExtractor,
        curator: Curator,
        settings: Optional[PipelineSettings] = None,
        fetcher: Optional[PageFetcher] = None,
        resolver: Optional[CityResolver] = None,
        gateway: Optional[PersistenceGateway] = None,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.store = store
        self.search_provider = search_provider
        self.extractor = extractor
        self.curator = curator
        self.fetcher = fetcher
        self.resolver = resolver or CityResolver(store)
        self.gateway = gateway or PersistenceGateway(
            store,
            self.resolver,
            timezone=self.settings.timezone,
            stale_after=timedelta(minutes=self.settings.stale_run_minutes),
        )

    @classmethod
    def from_settings(cls, settings: PipelineSettings, store: Optional[EventStore] = None) -> "EventPipeline":
        llm = StructuredLLM.from_settings(settings)
        return cls(
            store=store or ApiEventStore.from_settings(settings),
            search_provider=build_search_provider(settings),
            extractor=EventExtractor(llm, concurrency=settings.extraction_concurrency),
            curator=Curator(llm),
            settings=settings,
            fetcher=PageFetcher(max_pages=settings.max_fetch_pages),
        )

    # Runs

    def run(
        self,
        city: str,
        country: str,
        run: Optional[PipelineRun] = None,
        source: Optional[Source] = None,
    ) -> Outcome:
        """Run every stage for ``city`` and return the outcome. Never raises."""
        started = time.perf_counter()
        clock = _StageClock()
        run_id = run.id if run else None

        try:
            source = source or self.gateway.get_or_create_pipeline_source()
            if run_id is None:
                run_id = self.gateway.start_run(source, city).id
            outcome = self._run_stages(city, country, source, clock)
        except Exception as exc:
            logger.exception("Pipeline for %s failed", city)
            outcome = Outcome(status=RunStatus.FAILED, error_message=str(exc) or type(exc).__name__)
            if source is not None:
                try:
                    self.gateway.update_source_health(source.id, False)
                except Exception:
                    logger.exception("Could not record source health for %s", source.name)

        outcome.duration_ms = int((time.perf_counter() - started) * 1000)
        outcome.stage_timings = clock.timings
        outcome.run_id = run_id
        if source is not None:
            outcome.source_id = source.id
            outcome.source_name = source.name
        else:
            outcome.source_name = PIPELINE_SOURCE_NAME

        log_timings(clock.timings)
        if run_id is not None:
            try:
                self.gateway.complete_run(run_id, outcome)
            except Exception:
                logger.exception("Could not complete run log %s", run_id)

        logger.info(
            "Pipeline %s for %s: %d found, %d created, %d updated, %d duplicate",
            outcome.status.value, city, outcome.events_found, outcome.events_created,
            outcome.events_updated, outcome.events_duplicate,
        )
        return outcome

    def _partial(self, source: Source, message: str, **counts: int) -> Outcome:
        logger.warning(message)
        self.gateway.update_source_health(source.id, False)
        return Outcome(status=RunStatus.PARTIAL, error_message=message, **counts)

    def _run_stages(self, city: str, country: str, source: Source, clock: _StageClock) -> Outcome:
        deadline = Deadline(self.settings.run_timeout_seconds)
        today = today_in(self.settings.timezone)
        logger.info("Ingesting events for %s, %s", city, country)

        with clock.stage("1-discover"):
            candidates = discover_urls(
                self.search_provider,
                city,
                country,
                limit=self.settings.max_discovery_urls,
                deadline=deadline,
            )
        if not candidates:
            return self._partial(source, "Search provider returned no URLs")

        with clock.stage("2-filter"):
            filtered = filter_domains(candidates)
        logger.info("%d/%d URLs after domain filtering", len(filtered), len(candidates))
        if not filtered:
            return self._partial(source, "All discovered URLs were filtered out")

        with clock.stage("3-content"):
            pages = pages_from_candidates(filtered, self.fetcher, deadline=deadline)
        if not pages:
            return self._partial(source, "No page content available for any discovered URL")

        with clock.stage("4-extract"):
            extractions = self.extractor.extract_pages(pages, city, today.isoformat(), deadline=deadline)
        if deadline.expired:
            logger.warning("Run deadline reached during extraction; continuing with %d page(s)", len(extractions))

        with clock.stage("5-validate"):
            per_domain: dict[str, DomainResult] = {}
            for extraction in extractions:
                checked = validate_events(extraction.events, city, today)
                bucket = per_domain.setdefault(extraction.domain, DomainResult(domain=extraction.domain))
                bucket.valid.extend(checked.valid)
                bucket.expired.extend(checked.expired)
                bucket.invalid.extend(checked.invalid)

        with clock.stage("6-yield"):
            accepted, reports = enforce_source_yield(per_domain.values())
        log_yield_reports(reports)
        if not accepted:
            outcome = self._partial(
                source,
                "All sources rejected by yield control",
                events_found=sum(report.total_extracted for report in reports),
            )
            outcome.yield_reports = reports
            return outcome

        with clock.stage("7-curate"):
            scored = self.curator.score(accepted, city, source.reliability_score)

        with clock.stage("8-rank"):
            order = rank_events(
                [
                    RankableEvent(
                        event_id=str(index),
                        final_score=item.final_score,
                        venue=item.event.venue,
                        category=item.curation.cultural_category,
                        independence=item.curation.independence,
                    )
                    for index, item in enumerate(scored)
                ]
            )

        counts = {ProcessOutcome.CREATED: 0, ProcessOutcome.UPDATED: 0, ProcessOutcome.DUPLICATE: 0}
        errors: list[str] = []
        with clock.stage("9-persist"):
            for event_id in order:
                item = scored[int(event_id)]
                try:
                    result = self.gateway.process(validated_event_to_draft(item.event, city), source, item.curation)
                except Exception as exc:
                    errors.append(f'"{item.event.title}": {exc}')
                    logger.error('persist error: "%s": %s', item.event.title, exc)
                    continue
                if result in counts:
                    counts[result] += 1
                else:
                    logger.info('persist: "%s" -> %s', item.event.title, result.value)

        created = counts[ProcessOutcome.CREATED]
        self.gateway.update_source_health(source.id, created > 0)

        return Outcome(
            status=RunStatus.SUCCESS if created > 0 else RunStatus.PARTIAL,
            events_found=len(accepted),
            events_created=created,
            events_updated=counts[ProcessOutcome.UPDATED],
            events_duplicate=counts[ProcessOutcome.DUPLICATE],
            error_message="; ".join(errors) if errors else None,
            yield_reports=reports,
        )

    # Triggers

    def _claim(self, city: str) -> tuple[Optional[PipelineRun], Optional[PipelineRun], Optional[Source]]:
        """Return ``(running, new_run, source)``; exactly one of the runs is set."""
        with _trigger_lock:
            running = self.gateway.find_running(city)
            if running is not None:
                return running, None, None
            source = self.gateway.get_or_create_pipeline_source()
            return None, self.gateway.start_run(source, city), source

    def trigger(self, city: str, country: str) -> TriggerResult:
        """Run synchronously unless a run for ``city`` is already live."""
        try:
            running, run, source = self._claim(city)
        except Exception as exc:
            logger.exception("Could not start pipeline for %s", city)
            return TriggerResult(
                started=False,
                already_running=False,
                outcome=Outcome(status=RunStatus.FAILED, error_message=str(exc)),
            )
        if running is not None:
            logger.info("Pipeline for %s already running since %s", city, running.started_at)
            return TriggerResult(started=False, already_running=True, started_at=running.started_at, run_id=running.id)

        outcome = self.run(city, country, run=run, source=source)
        return TriggerResult(started=True, already_running=False, started_at=run.started_at, run_id=run.id, outcome=outcome)

    def trigger_in_background(self, city: str, country: str, pool: Optional[Executor] = None) -> TriggerResult:
        """Register a RUNNING row and run the pipeline on ``pool``."""
        try:
            running, run, source = self._claim(city)
        except Exception as exc:
            logger.exception("Could not start pipeline for %s", city)
            return TriggerResult(
                started=False,
                already_running=False,
                outcome=Outcome(status=RunStatus.FAILED, error_message=str(exc)),
            )
        if running is not None:
            return TriggerResult(started=False, already_running=True, started_at=running.started_at, run_id=running.id)

        (pool or executor).submit(self.run, city, country, run, source)
        return TriggerResult(started=True, already_running=False, started_at=run.started_at, run_id=run.id)


def _pipeline(pipeline: Optional[EventPipeline]) -> EventPipeline:
    return pipeline or EventPipeline.from_settings(PipelineSettings.from_env())


def run_pipeline(city: str, country: str, pipeline: Optional[EventPipeline] = None) -> Outcome:
    try:
        pipeline = _pipeline(pipeline)
    except Exception as exc:
        logger.exception("Could not build pipeline")
        return Outcome(status=RunStatus.FAILED, error_message=str(exc), source_name=PIPELINE_SOURCE_NAME)
    return pipeline.run(city, country)


def trigger_pipeline(city: str, country: str, pipeline: Optional[EventPipeline] = None) -> TriggerResult:
    try:
        pipeline = _pipeline(pipeline)
    except Exception as exc:
        logger.exception("Could not build pipeline")
        return TriggerResult(False, False, outcome=Outcome(status=RunStatus.FAILED, error_message=str(exc)))
    return pipeline.trigger(city, country)


def trigger_pipeline_in_background(
    city: str,
    country: str,
    pipeline: Optional[EventPipeline] = None,
    pool: Optional[Executor] = None,
) -> TriggerResult:
    try:
        pipeline = _pipeline(pipeline)
    except Exception as exc:
        logger.exception("Could not build pipeline")
        return TriggerResult(False, False, outcome=Outcome(status=RunStatus.FAILED, error_message=str(exc)))
    return pipeline.trigger_in_background(city, country, pool)
