"""Fetch pages the search provider returned without content."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import requests
from bs4 import BeautifulSoup

from ingest.concurrency import Deadline, run_bounded
from ingest.schemas import CandidateUrl, Page

from .utils import extract_domain

logger = logging.getLogger(__name__)

MAX_FETCH_PAGES = 25
FETCH_CONCURRENCY = 3
FETCH_TIMEOUT = 20

_NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "iframe", "svg", "form"]


def html_to_text(html: str) -> str:
    """Visible text of ``html`` with page chrome removed, one block per line."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


class PageFetcher:
    def __init__(
        self,
        max_pages: int = MAX_FETCH_PAGES,
        concurrency: int = FETCH_CONCURRENCY,
        timeout: float = FETCH_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.max_pages = max_pages
        self.concurrency = concurrency
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, url: str) -> Page:
        resp = self.session.get(url, timeout=self.timeout, headers={"User-Agent": "Mozilla/5.0"})
        resp.raise_for_status()
        return Page(url=url, domain=extract_domain(url), content=html_to_text(resp.text))

    def fetch_pages(self, urls: Iterable[str], deadline: Optional[Deadline] = None) -> list[Page]:
        """Fetch up to ``max_pages`` URLs; failures are logged and skipped."""
        targets = list(urls)[: self.max_pages]
        pages = run_bounded(self.fetch, targets, self.concurrency, deadline=deadline, label="fetch")
        logger.info("Fetched %d/%d pages without provider content", len(pages), len(targets))
        return pages


def pages_from_candidates(
    candidates: Iterable[CandidateUrl],
    fetcher: Optional[PageFetcher] = None,
    deadline: Optional[Deadline] = None,
) -> list[Page]:
    """Turn candidates into pages, fetching those the provider left empty.

    Without a fetcher, candidates lacking raw content are dropped.
    """
    pages: list[Page] = []
    missing: list[str] = []
    for candidate in candidates:
        if candidate.raw_content:
            pages.append(Page(url=candidate.url, domain=candidate.domain, content=candidate.raw_content))
        else:
            missing.append(candidate.url)

    if missing and fetcher is not None:
        pages.extend(fetcher.fetch_pages(missing, deadline=deadline))
    elif missing:
        logger.info("Skipping %d URLs without content", len(missing))
    return pages
