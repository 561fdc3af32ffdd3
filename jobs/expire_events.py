"""Mark cultural events that have already happened as PAST."""
from __future__ import annotations

import logging
import sys

from ingest.api_client import ApiEventStore
from ingest.maintenance import expire_events
from ingest.schemas import now_in
from ingest.settings import PipelineSettings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = PipelineSettings.from_env()
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, format="%(message)s")

    store = ApiEventStore.from_settings(settings)
    expired = expire_events(store, now_in(settings.timezone))
    print(f"✅ Expired {expired} event(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
