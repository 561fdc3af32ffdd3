"""Runtime configuration read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

DEFAULT_TIMEZONE = "America/Argentina/Buenos_Aires"
DEFAULT_API_URL = "http://localhost:8000/api/v1"
SEARCH_PROVIDERS = ("tavily", "serper")


@dataclass(frozen=True)
class PipelineSettings:
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    search_provider: str = "tavily"
    tavily_api_key: Optional[str] = None
    serper_api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    api_token: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    extraction_concurrency: int = 10
    max_discovery_urls: int = 45
    max_fetch_pages: int = 25
    run_timeout_seconds: float = 240.0
    stale_run_minutes: int = 5
    debug: bool = False

    @property
    def search_api_key(self) -> Optional[str]:
        if self.search_provider == "serper":
            return self.serper_api_key
        return self.tavily_api_key

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineSettings":
        """Build settings from ``environ`` (defaults to ``os.environ``).

        Numeric variables that do not parse raise :class:`ConfigurationError`
        rather than silently falling back to the default.
        """
        env = os.environ if environ is None else environ

        provider = env.get("SEARCH_PROVIDER", "").strip().lower()
        if not provider:
            # Tavily returns page content, so prefer it whenever a key is present.
            provider = "serper" if env.get("SERPER_API_KEY") and not env.get("TAVILY_API_KEY") else "tavily"
        if provider not in SEARCH_PROVIDERS:
            raise ConfigurationError(
                f"SEARCH_PROVIDER must be one of {', '.join(SEARCH_PROVIDERS)}, got {provider!r}"
            )

        return cls(
            openai_api_key=env.get("OPENAI_API_KEY") or None,
            openai_model=env.get("OPENAI_MODEL") or "gpt-4o-mini",
            openai_base_url=env.get("OPENAI_BASE_URL") or None,
            search_provider=provider,
            tavily_api_key=env.get("TAVILY_API_KEY") or None,
            serper_api_key=env.get("SERPER_API_KEY") or None,
            api_url=(env.get("API_URL") or DEFAULT_API_URL).rstrip("/"),
            api_token=env.get("API_TOKEN") or None,
            timezone=env.get("PIPELINE_TIMEZONE") or DEFAULT_TIMEZONE,
            extraction_concurrency=_positive_int(env, "EXTRACTION_CONCURRENCY", 10),
            max_discovery_urls=_positive_int(env, "MAX_DISCOVERY_URLS", 45),
            max_fetch_pages=_positive_int(env, "MAX_FETCH_PAGES", 25),
            run_timeout_seconds=_positive_float(env, "RUN_TIMEOUT_SECONDS", 240.0),
            stale_run_minutes=_positive_int(env, "STALE_RUN_MINUTES", 5),
            debug=_flag(env.get("COLLECTOR_DEBUG")),
        )


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _flag(raw: Optional[str]) -> bool:
    return bool(raw) and raw.strip().lower() not in {"0", "false", "no", "off"}
