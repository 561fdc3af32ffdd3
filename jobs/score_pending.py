"""Score stored events that were persisted without curator scores."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from ingest.api_client import ApiEventStore
from ingest.curator import Curator
from ingest.maintenance import DEFAULT_SCORE_LIMIT, score_pending_events
from ingest.settings import PipelineSettings
from scrapers.llm_client import StructuredLLM

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Score pending cultural events")
    parser.add_argument("--limit", type=int, default=DEFAULT_SCORE_LIMIT, help="Max events to score")
    args = parser.parse_args(argv)

    settings = PipelineSettings.from_env()
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, format="%(message)s")

    store = ApiEventStore.from_settings(settings)
    curator = Curator(StructuredLLM.from_settings(settings))
    report = score_pending_events(store, curator, limit=args.limit)

    print(f"✅ Scored {report.scored} event(s)")
    for error in report.errors:
        print("❌", error)
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
