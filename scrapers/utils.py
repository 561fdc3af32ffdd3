"""Text, URL and date helpers shared by the pipeline stages."""
from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from hashlib import sha1
from urllib.parse import urlparse

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_text(value: str | None) -> str:
    """Strip accents, lowercase and trim ``value`` for comparisons."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower().strip()


def extract_domain(url: str) -> str:
    """Return the host of ``url`` without a leading ``www.``.

    Unparseable input is returned unchanged.
    """
    try:
        host = urlparse(url).hostname
    except ValueError:
        return url
    if not host:
        return url
    return host[4:] if host.startswith("www.") else host


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, unlike the banker's rounding of ``round``."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def combine_date_time(date_str: str, time_str: str | None) -> datetime | None:
    """Combine ``YYYY-MM-DD`` with an optional ``HH:MM`` into a naive datetime.

    Common local spellings such as ``21:00h`` or ``21.30`` are accepted. A
    time that still does not parse is ignored and midnight is used.
    """
    try:
        day = datetime.strptime(date_str, "%Y-%m-%d")
    except (TypeError, ValueError):
        return None
    if not time_str:
        return day

    cleaned = re.sub(r"h$", "", time_str.strip(), flags=re.IGNORECASE).replace(".", ":", 1).strip()
    match = _TIME_RE.match(cleaned)
    if not match:
        return day
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return day
    return day.replace(hour=hours, minute=minutes)


def make_external_id(page_url: str, title: str, start: str) -> str:
    """Create a stable external identifier from metadata."""
    host = urlparse(page_url).netloc
    raw = f"{host}|{title}|{start}"
    return f"{host}:{sha1(raw.encode()).hexdigest()[:16]}"
