import os
import sys

import pytest

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.errors import ConfigurationError
from ingest.settings import DEFAULT_TIMEZONE, PipelineSettings


def test_defaults_from_empty_environment():
    settings = PipelineSettings.from_env({})
    assert settings.search_provider == "tavily"
    assert settings.timezone == DEFAULT_TIMEZONE
    assert settings.extraction_concurrency == 10
    assert settings.max_discovery_urls == 45
    assert settings.run_timeout_seconds == 240.0
    assert settings.debug is False


def test_serper_chosen_when_only_its_key_is_set():
    settings = PipelineSettings.from_env({"SERPER_API_KEY": "s-key"})
    assert settings.search_provider == "serper"
    assert settings.search_api_key == "s-key"


def test_explicit_provider_wins():
    settings = PipelineSettings.from_env(
        {"SEARCH_PROVIDER": "Tavily", "SERPER_API_KEY": "s", "TAVILY_API_KEY": "t"}
    )
    assert settings.search_provider == "tavily"
    assert settings.search_api_key == "t"


def test_unknown_provider_rejected():
    with pytest.raises(ConfigurationError):
        PipelineSettings.from_env({"SEARCH_PROVIDER": "bing"})


@pytest.mark.parametrize("value", ["ten", "0", "-3"])
def test_bad_numbers_rejected(value):
    with pytest.raises(ConfigurationError):
        PipelineSettings.from_env({"EXTRACTION_CONCURRENCY": value})


def test_api_url_trailing_slash_stripped_and_debug_flag():
    settings = PipelineSettings.from_env({"API_URL": "https://api.example.com/v1/", "COLLECTOR_DEBUG": "1"})
    assert settings.api_url == "https://api.example.com/v1"
    assert settings.debug is True
    assert PipelineSettings.from_env({"COLLECTOR_DEBUG": "false"}).debug is False
