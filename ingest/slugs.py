"""URL-safe, globally unique event slugs such as ``titulo-del-evento-2026-02-23``."""
from __future__ import annotations

import random
import re
import string
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional, Union

from scrapers.utils import normalize_text

if TYPE_CHECKING:
    from .event_store import EventStore

MAX_SLUG_LENGTH = 100
MAX_COUNTER = 99

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    return _NON_ALNUM.sub("-", normalize_text(text)).strip("-")


def truncate_slug(slug: str, limit: int = MAX_SLUG_LENGTH) -> str:
    """Cut ``slug`` to ``limit`` characters, preferring a hyphen boundary."""
    if len(slug) <= limit:
        return slug
    truncated = slug[:limit]
    last_hyphen = truncated.rfind("-")
    if last_hyphen > 20:
        truncated = truncated[:last_hyphen]
    return truncated.rstrip("-")


def compose_slug(base: str, *suffixes: str) -> str:
    """Join ``base`` and ``suffixes``, shortening only ``base`` to fit.

    Suffixes always survive intact, so different suffixes give different slugs.
    """
    suffix = "-".join(s for s in suffixes if s)
    if not suffix:
        return truncate_slug(base)
    room = MAX_SLUG_LENGTH - len(suffix) - 1
    trimmed = truncate_slug(base, room) if room > 0 else ""
    return f"{trimmed}-{suffix}" if trimmed else suffix


def _date_suffix(value: Optional[Union[date, datetime]]) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d")


def _random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(random.choice(alphabet) for _ in range(length))


def generate_event_slug(
    store: "EventStore",
    title: str,
    start: Optional[Union[date, datetime]] = None,
) -> str:
    """Return a slug for ``title`` not yet used by any stored event.

    Collisions get ``-2`` through ``-99``; past that a random suffix is used.
    The date and counter are never cut; long titles are shortened instead.
    """
    base = slugify(title)
    day = _date_suffix(start)

    candidate = compose_slug(base, day)
    if store.find_event_by_slug(candidate) is None:
        return candidate

    for counter in range(2, MAX_COUNTER + 1):
        numbered = compose_slug(base, day, str(counter))
        if store.find_event_by_slug(numbered) is None:
            return numbered

    return compose_slug(base, day, _random_suffix())
