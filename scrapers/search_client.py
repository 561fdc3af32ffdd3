"""Web search providers used for URL discovery."""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

import requests

from ingest.errors import ConfigurationError, SearchProviderError
from ingest.schemas import SearchResult

from .utils import extract_domain

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT = 15
SNIPPET_MAX_LENGTH = 300

# ISO 3166-1 alpha-2 codes to the country names Tavily accepts.
TAVILY_COUNTRIES = {
    "AR": "argentina",
    "BO": "bolivia",
    "BR": "brazil",
    "CL": "chile",
    "CO": "colombia",
    "CR": "costa rica",
    "CU": "cuba",
    "DO": "dominican republic",
    "EC": "ecuador",
    "SV": "el salvador",
    "GT": "guatemala",
    "HN": "honduras",
    "MX": "mexico",
    "NI": "nicaragua",
    "PA": "panama",
    "PY": "paraguay",
    "PE": "peru",
    "ES": "spain",
    "UY": "uruguay",
    "VE": "venezuela",
    "US": "united states",
}


class SearchProvider(Protocol):
    name: str

    def search(
        self,
        query: str,
        country: Optional[str] = None,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]: ...


def _snippet(text: Optional[str]) -> str:
    return (text or "")[:SNIPPET_MAX_LENGTH]


class TavilySearchProvider:
    """Tavily search returning page markdown alongside each hit."""

    name = "tavily"
    endpoint = "https://api.tavily.com/search"

    def __init__(
        self,
        api_key: str,
        max_results: int = 7,
        timeout: float = SEARCH_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.max_results = max_results
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(
        self,
        query: str,
        country: Optional[str] = None,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        payload = {
            "query": query,
            "search_depth": "advanced",
            "include_raw_content": "markdown",
            "max_results": self.max_results,
            "topic": "general",
            "exclude_domains": list(exclude_domains),
        }
        hint = TAVILY_COUNTRIES.get((country or "").upper())
        if hint:
            payload["country"] = hint

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            resp = self.session.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise SearchProviderError(f"Tavily search failed for {query!r}: {exc}") from exc

        return [
            SearchResult(
                url=item["url"],
                title=item["title"],
                snippet=_snippet(item.get("content")),
                raw_content=item.get("raw_content") or None,
            )
            for item in data.get("results", [])
            if item.get("title") and item.get("url")
        ]


class SerperSearchProvider:
    """Google results through Serper. Snippets only, no page content."""

    name = "serper"
    endpoint = "https://google.serper.dev/search"

    def __init__(
        self,
        api_key: str,
        num_results: int = 20,
        timeout: float = SEARCH_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.num_results = num_results
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(
        self,
        query: str,
        country: Optional[str] = None,
        exclude_domains: Sequence[str] = (),
    ) -> list[SearchResult]:
        payload = {"q": query, "num": self.num_results, "hl": "es"}
        if country:
            payload["gl"] = country.lower()

        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}
        try:
            resp = self.session.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise SearchProviderError(f"Serper search failed for {query!r}: {exc}") from exc

        # Serper has no server-side exclusion, so drop excluded hosts here.
        excluded = tuple(exclude_domains)
        results = []
        for item in data.get("organic", []):
            link, title = item.get("link"), item.get("title")
            if not link or not title:
                continue
            if excluded and _host_matches(link, excluded):
                continue
            results.append(SearchResult(url=link, title=title, snippet=_snippet(item.get("snippet"))))
        return results


def _host_matches(url: str, domains: Sequence[str]) -> bool:
    host = extract_domain(url).lower()
    return any(host == d or host.endswith(f".{d}") for d in domains)


PROVIDERS = {
    "tavily": TavilySearchProvider,
    "serper": SerperSearchProvider,
}


def build_search_provider(settings) -> Optional[SearchProvider]:
    """Instantiate the provider named by ``settings.search_provider``.

    Returns ``None`` when the provider's API key is missing so discovery can
    degrade to an empty result instead of failing the run.
    """
    try:
        provider_cls = PROVIDERS[settings.search_provider]
    except KeyError as exc:
        raise ConfigurationError(f"unknown search provider {settings.search_provider!r}") from exc

    api_key = settings.search_api_key
    if not api_key:
        logger.warning("No API key configured for search provider %s", settings.search_provider)
        return None
    return provider_cls(api_key=api_key)
