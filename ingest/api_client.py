"""Event store backed by the collector backend's REST API."""
from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import requests

from .errors import PersistenceError
from .schemas import (
    CandidateFilter,
    CanonicalEvent,
    City,
    EventStatus,
    PipelineRun,
    RunCounts,
    RunStatus,
    Source,
)

if TYPE_CHECKING:
    from .settings import PipelineSettings

REQUEST_TIMEOUT = 30

logger = logging.getLogger(__name__)

_EVENT_FIELDS = {f.name for f in fields(CanonicalEvent)}
_EVENT_DATETIME_FIELDS = {"start_date", "end_date", "created_at", "updated_at"}
_EVENT_TUPLE_FIELDS = {"tags", "artists"}


def _make_headers(token: Optional[str] = None) -> dict[str, str]:
    """Return headers for API requests, including the auth token if set."""
    headers: dict[str, str] = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def _log_request(method: str, url: str, payload: Any | None = None) -> None:
    """Log details about an outgoing HTTP request."""
    logger.debug("%s %s", method.upper(), url)
    if payload is not None:
        logger.debug("Payload: %s", payload)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def event_to_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Convert event fields to JSON-friendly values."""
    payload: dict[str, Any] = {}
    for key, value in data.items():
        if key in _EVENT_DATETIME_FIELDS:
            payload[key] = _format_datetime(value)
        elif key in _EVENT_TUPLE_FIELDS:
            payload[key] = list(value or ())
        elif isinstance(value, EventStatus):
            payload[key] = value.value
        else:
            payload[key] = value
    return payload


def event_from_payload(payload: dict[str, Any]) -> CanonicalEvent:
    """Build a :class:`CanonicalEvent` from an API response body.

    Unknown keys are ignored so the backend can add fields freely.
    """
    data: dict[str, Any] = {}
    for key, value in payload.items():
        if key not in _EVENT_FIELDS:
            continue
        if key in _EVENT_DATETIME_FIELDS:
            value = _parse_datetime(value)
        elif key in _EVENT_TUPLE_FIELDS:
            value = tuple(value or ())
        elif key == "status" and value:
            value = EventStatus(value)
        data[key] = value
    data["id"] = str(data["id"])
    return CanonicalEvent(**data)


def _source_from_payload(payload: dict[str, Any]) -> Source:
    return Source(
        id=str(payload["id"]),
        name=payload["name"],
        type=payload.get("type", "WEB_DISCOVERY"),
        reliability_score=payload.get("reliability_score", 70),
        is_active=payload.get("is_active", True),
        last_fetched_at=_parse_datetime(payload.get("last_fetched_at")),
        last_success_at=_parse_datetime(payload.get("last_success_at")),
        error_count=payload.get("error_count", 0),
        config=payload.get("config") or {},
    )


def _run_from_payload(payload: dict[str, Any]) -> PipelineRun:
    return PipelineRun(
        id=str(payload["id"]),
        source_id=str(payload["source_id"]),
        city=payload["city"],
        status=RunStatus(payload["status"]),
        started_at=_parse_datetime(payload["started_at"]),
        counts=RunCounts(
            events_found=payload.get("events_found", 0),
            events_created=payload.get("events_created", 0),
            events_updated=payload.get("events_updated", 0),
            events_duplicate=payload.get("events_duplicate", 0),
        ),
        error_message=payload.get("error_message"),
        duration_ms=payload.get("duration_ms"),
        finished_at=_parse_datetime(payload.get("finished_at")),
    )


def _results(body: Any) -> list[dict[str, Any]]:
    """Unwrap list endpoints that may or may not be paginated."""
    if isinstance(body, dict):
        return list(body.get("results", []))
    return list(body or [])


class ApiEventStore:
    """:class:`~ingest.event_store.EventStore` over HTTP."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(_make_headers(token))

    @classmethod
    def from_settings(cls, settings: "PipelineSettings", session: Optional[requests.Session] = None) -> "ApiEventStore":
        return cls(settings.api_url, settings.api_token, session=session)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        allow: tuple[int, ...] = (),
    ) -> Optional[requests.Response]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        _log_request(method, url, json)
        try:
            response = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
            if response.status_code in allow:
                return response
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PersistenceError(f"{method.upper()} {url} failed: {exc}") from exc
        return response

    def _get_json(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self._request("get", path, params=params).json()

    def _get_optional(self, path: str) -> Optional[dict[str, Any]]:
        response = self._request("get", path, allow=(404,))
        if response.status_code == 404:
            return None
        return response.json()

    # Cities

    def find_cities_with_aliases(self) -> list[City]:
        rows = _results(self._get_json("cities/"))
        return [
            City(
                id=str(row["id"]),
                name=row["name"],
                aliases=tuple(row.get("aliases") or ()),
                province=row.get("province"),
            )
            for row in rows
        ]

    # Events

    def find_candidate_events(self, query: CandidateFilter) -> list[CanonicalEvent]:
        params: dict[str, Any] = {"status": query.status.value, "limit": query.limit, "ordering": "start_date"}
        if query.city_id:
            params["city_id"] = query.city_id
        if query.date_from:
            params["start_date_after"] = query.date_from.isoformat()
        if query.date_to:
            params["start_date_before"] = query.date_to.isoformat()
        return [event_from_payload(row) for row in _results(self._get_json("events/", params))]

    def find_event(self, event_id: str) -> Optional[CanonicalEvent]:
        body = self._get_optional(f"events/{event_id}/")
        return event_from_payload(body) if body else None

    def find_event_by_slug(self, slug: str) -> Optional[CanonicalEvent]:
        rows = _results(self._get_json("events/", {"slug": slug}))
        return event_from_payload(rows[0]) if rows else None

    def create_event(self, data: dict[str, Any]) -> CanonicalEvent:
        response = self._request("post", "events/", json=event_to_payload(data))
        return event_from_payload(response.json())

    def update_event(self, event_id: str, data: dict[str, Any]) -> CanonicalEvent:
        response = self._request("patch", f"events/{event_id}/", json=event_to_payload(data))
        return event_from_payload(response.json())

    def find_unscored_events(self, limit: int) -> list[CanonicalEvent]:
        params = {"status": EventStatus.ACTIVE.value, "unscored": "true", "limit": limit, "ordering": "-created_at"}
        return [event_from_payload(row) for row in _results(self._get_json("events/", params))]

    def expire_past_events(self, now: datetime) -> int:
        response = self._request("post", "events/expire/", json={"now": now.isoformat()})
        return int(response.json().get("expired", 0))

    # Sources

    def find_source(self, source_id: str) -> Optional[Source]:
        body = self._get_optional(f"sources/{source_id}/")
        return _source_from_payload(body) if body else None

    def find_source_by_name(self, name: str) -> Optional[Source]:
        rows = _results(self._get_json("sources/", {"name": name}))
        return _source_from_payload(rows[0]) if rows else None

    def create_source(self, data: dict[str, Any]) -> Source:
        response = self._request("post", "sources/", json=data)
        return _source_from_payload(response.json())

    def upsert_source_health(self, source_id: str, success: bool, at: datetime) -> None:
        self._request("post", f"sources/{source_id}/health/", json={"success": success, "at": at.isoformat()})

    # Run log

    def create_run_log(self, source_id: str, city: str, started_at: datetime) -> PipelineRun:
        payload = {
            "source_id": source_id,
            "city": city,
            "status": RunStatus.RUNNING.value,
            "started_at": started_at.isoformat(),
        }
        response = self._request("post", "pipeline-runs/", json=payload)
        return _run_from_payload(response.json())

    def update_run_log(
        self,
        run_id: str,
        status: RunStatus,
        counts: RunCounts,
        *,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
        finished_at: Optional[datetime] = None,
        only_if_running: bool = False,
    ) -> bool:
        payload = {
            "status": status.value,
            "events_found": counts.events_found,
            "events_created": counts.events_created,
            "events_updated": counts.events_updated,
            "events_duplicate": counts.events_duplicate,
            "error_message": error_message,
            "duration_ms": duration_ms,
            "finished_at": _format_datetime(finished_at),
            "only_if_running": only_if_running,
        }
        # The backend answers 409 when the conditional update finds the row
        # already terminal.
        response = self._request("patch", f"pipeline-runs/{run_id}/", json=payload, allow=(409,))
        return response.status_code != 409

    def find_stale_running_logs(self, city: str, cutoff: datetime) -> list[PipelineRun]:
        params = {"city": city, "status": RunStatus.RUNNING.value, "started_before": cutoff.isoformat()}
        return [_run_from_payload(row) for row in _results(self._get_json("pipeline-runs/", params))]

    def find_running_log(self, city: str, since: datetime) -> Optional[PipelineRun]:
        params = {
            "city": city,
            "status": RunStatus.RUNNING.value,
            "started_after": since.isoformat(),
            "ordering": "-started_at",
            "limit": 1,
        }
        rows = _results(self._get_json("pipeline-runs/", params))
        return _run_from_payload(rows[0]) if rows else None
