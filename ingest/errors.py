"""Exception types raised by the collector."""
from __future__ import annotations


class CollectorError(Exception):
    """Base class for collector failures."""


class ConfigurationError(CollectorError):
    """An environment setting is missing or malformed."""


class SearchProviderError(CollectorError):
    """The search provider could not be reached or answered with an error."""


class ExtractionFailure(CollectorError):
    """Structured extraction of a page failed."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class ScoringFailure(CollectorError):
    """The curator could not score a batch of events."""


class PersistenceError(CollectorError):
    """The event store rejected a read or write."""
