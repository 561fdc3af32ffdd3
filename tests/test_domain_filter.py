import os
import sys

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.schemas import CandidateUrl
from scrapers.domain_filter import filter_domains, is_blocked_domain, is_homepage_url, is_wrong_country_url
from scrapers.utils import extract_domain


def cand(url):
    return CandidateUrl(url=url, domain=extract_domain(url), title="t")


def test_blocked_domains_and_subdomains():
    assert is_blocked_domain("facebook.com")
    assert is_blocked_domain("m.facebook.com")
    assert is_blocked_domain("es.wikipedia.org")
    assert not is_blocked_domain("ticketek.com.ar")
    assert not is_blocked_domain("notfacebook.com")


def test_homepage_detection():
    assert is_homepage_url("https://teatro.com.ar")
    assert is_homepage_url("https://teatro.com.ar/")
    assert not is_homepage_url("https://teatro.com.ar/agenda")


def test_wrong_country():
    assert is_wrong_country_url("https://cultura.es/agenda", "cultura.es")
    assert is_wrong_country_url("https://www.diariocordoba.com/agenda", "diariocordoba.com")
    assert not is_wrong_country_url("https://cultura.cba.gov.ar/agenda", "cultura.cba.gov.ar")


def test_filter_domains_keeps_order():
    urls = [
        cand("https://cultura.cba.gov.ar/agenda"),
        cand("https://www.instagram.com/teatro"),
        cand("https://teatro.com.ar/"),
        cand("https://www.ticketek.com.ar/cordoba"),
        cand("https://www.andalucia.org/es/cordoba-agenda"),
    ]
    kept = filter_domains(urls)
    assert [c.url for c in kept] == ["https://cultura.cba.gov.ar/agenda", "https://www.ticketek.com.ar/cordoba"]
