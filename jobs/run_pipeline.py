"""Run the event discovery pipeline for one city."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from ingest.errors import ConfigurationError
from ingest.memory_store import InMemoryEventStore
from ingest.pipeline import EventPipeline, executor
from ingest.schemas import City, RunStatus
from ingest.settings import PipelineSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover, score and store cultural events for a city")
    parser.add_argument("--city", required=True, help="City name, e.g. 'Córdoba'")
    parser.add_argument("--country", default="AR", help="ISO 3166-1 alpha-2 country code (default: AR)")
    parser.add_argument(
        "--background",
        action="store_true",
        help="Register the run and return once it has been handed to the worker pool",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Keep results in memory instead of writing to the backend API",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = PipelineSettings.from_env()
    except ConfigurationError as exc:
        print("❌ Invalid configuration:", exc)
        return 2

    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, format="%(message)s")

    store = InMemoryEventStore(cities=[City(id="dry-run", name=args.city)]) if args.dry_run else None
    pipeline = EventPipeline.from_settings(settings, store=store)

    if args.background:
        result = pipeline.trigger_in_background(args.city, args.country)
        if result.already_running:
            print(f"⏳ Pipeline for {args.city} already running since {result.started_at}")
            return 0
        if not result.started:
            print("❌ Could not start pipeline:", result.outcome.error_message if result.outcome else "unknown error")
            return 1
        print(f"🚀 Pipeline for {args.city} started (run {result.run_id})")
        # Let the queued run finish before the interpreter exits.
        executor.shutdown(wait=True)
        return 0

    result = pipeline.trigger(args.city, args.country)
    if result.already_running:
        print(f"⏳ Pipeline for {args.city} already running since {result.started_at}")
        return 0

    outcome = result.outcome
    if outcome is None:
        print("❌ Pipeline did not produce an outcome")
        return 1
    icon = {RunStatus.SUCCESS: "✅", RunStatus.PARTIAL: "⚠️", RunStatus.FAILED: "❌"}.get(outcome.status, "•")
    print(
        f"{icon} {outcome.status.value}: {outcome.events_found} found, {outcome.events_created} created, "
        f"{outcome.events_updated} updated, {outcome.events_duplicate} duplicate in {outcome.duration_ms} ms"
    )
    if outcome.error_message:
        print("   ", outcome.error_message)
    return 1 if outcome.status == RunStatus.FAILED else 0


if __name__ == "__main__":
    sys.exit(main())
