import os
import sys

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.errors import SearchProviderError
from ingest.schemas import CandidateUrl, SearchResult
from scrapers.url_discovery import EXCLUDED_DOMAINS, QUERY_TEMPLATES, build_queries, discover_urls, diversify_by_domain


class FakeProvider:
    name = "fake"

    def __init__(self, results_by_query, failing=()):
        self.results_by_query = results_by_query
        self.failing = set(failing)
        self.calls = []

    def search(self, query, country=None, exclude_domains=()):
        self.calls.append((query, country, tuple(exclude_domains)))
        if query in self.failing:
            raise SearchProviderError("quota")
        return self.results_by_query.get(query, [])


def cand(domain, n):
    return CandidateUrl(url=f"https://{domain}/p{n}", domain=domain, title=f"{domain} {n}")


def test_build_queries_uses_every_template():
    queries = build_queries("Rosario")
    assert len(queries) == len(QUERY_TEMPLATES)
    assert all(q.startswith("Rosario ") for q in queries)


def test_diversify_round_robins_domains():
    urls = [cand("a.com", 1), cand("a.com", 2), cand("a.com", 3), cand("b.com", 1), cand("c.com", 1)]
    result = diversify_by_domain(urls, limit=4)
    assert [u.url for u in result] == [
        "https://a.com/p1",
        "https://b.com/p1",
        "https://c.com/p1",
        "https://a.com/p2",
    ]


def test_diversify_returns_everything_under_limit():
    urls = [cand("a.com", 1), cand("a.com", 2)]
    assert diversify_by_domain(urls, limit=10) == urls


def test_discover_dedupes_and_isolates_failing_queries():
    queries = build_queries("Córdoba")
    hit = SearchResult(url="https://cultura.cba.gov.ar/agenda", title="Agenda", raw_content="contenido")
    provider = FakeProvider(
        {
            queries[0]: [hit],
            queries[2]: [hit, SearchResult(url="https://www.teatro.com.ar/cartelera", title="Cartelera")],
        },
        failing=[queries[1]],
    )
    results = discover_urls(provider, "Córdoba", "AR", limit=45)

    assert [r.url for r in results] == ["https://cultura.cba.gov.ar/agenda", "https://www.teatro.com.ar/cartelera"]
    assert results[0].raw_content == "contenido"
    assert results[1].domain == "teatro.com.ar"
    assert len(provider.calls) == len(queries)
    assert all(call[1] == "AR" and call[2] == EXCLUDED_DOMAINS for call in provider.calls)


def test_discover_without_provider_is_empty():
    assert discover_urls(None, "Córdoba", "AR") == []
