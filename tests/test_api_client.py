import os
import sys
from datetime import datetime
from unittest.mock import Mock, patch

import pytest
import requests

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.api_client import ApiEventStore, event_from_payload, event_to_payload
from ingest.errors import PersistenceError
from ingest.settings import PipelineSettings
from ingest.schemas import CandidateFilter, EventStatus, RunCounts, RunStatus


def response(status=200, body=None):
    resp = Mock()
    resp.status_code = status
    resp.json.return_value = body
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_store(*responses):
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return ApiEventStore("https://api.example.com/v1/", token="secret", session=session), session


EVENT_BODY = {
    "id": 12,
    "title": "Hamlet",
    "slug": "hamlet-2026-03-14",
    "category": "TEATRO",
    "source_id": "3",
    "start_date": "2026-03-14T21:00:00",
    "tags": ["teatro"],
    "status": "ACTIVE",
    "unknown_field": "ignored",
}


def test_token_header_is_set():
    _, session = make_store()
    assert session.headers["Authorization"] == "Bearer secret"


def test_find_candidate_events_query_and_pagination():
    store, session = make_store(response(body={"results": [EVENT_BODY]}))
    query = CandidateFilter(city_id="c1", date_from=datetime(2026, 3, 13), date_to=datetime(2026, 3, 15), limit=50)
    events = store.find_candidate_events(query)

    assert events[0].id == "12"
    assert events[0].tags == ("teatro",)
    assert events[0].start_date == datetime(2026, 3, 14, 21, 0)
    method, url = session.request.call_args.args
    params = session.request.call_args.kwargs["params"]
    assert (method, url) == ("get", "https://api.example.com/v1/events/")
    assert params["city_id"] == "c1"
    assert params["start_date_after"] == "2026-03-13T00:00:00"
    assert params["status"] == "ACTIVE"


def test_find_event_returns_none_on_404():
    store, _ = make_store(response(404))
    assert store.find_event("99") is None


def test_errors_become_persistence_errors():
    store, _ = make_store(response(500))
    with pytest.raises(PersistenceError):
        store.find_event_by_slug("x")


def test_create_event_serializes_payload():
    store, session = make_store(response(201, EVENT_BODY))
    created = store.create_event(
        {"title": "Hamlet", "start_date": datetime(2026, 3, 14, 21, 0), "tags": ("teatro",), "status": EventStatus.ACTIVE}
    )
    assert created.slug == "hamlet-2026-03-14"
    payload = session.request.call_args.kwargs["json"]
    assert payload == {"title": "Hamlet", "start_date": "2026-03-14T21:00:00", "tags": ["teatro"], "status": "ACTIVE"}


def test_update_run_log_conflict_means_already_terminal():
    store, session = make_store(response(200, {}), response(409))
    assert store.update_run_log("r1", RunStatus.SUCCESS, RunCounts(events_created=2), only_if_running=True) is True
    assert store.update_run_log("r1", RunStatus.FAILED, RunCounts(), only_if_running=True) is False
    payload = session.request.call_args_list[0].kwargs["json"]
    assert payload["events_created"] == 2
    assert payload["only_if_running"] is True


def test_find_running_log():
    body = [{"id": 5, "source_id": 3, "city": "Córdoba", "status": "RUNNING", "started_at": "2026-03-01T12:00:00"}]
    store, _ = make_store(response(body=body))
    run = store.find_running_log("Córdoba", datetime(2026, 3, 1, 11, 55))
    assert run.id == "5"
    assert run.status == RunStatus.RUNNING


def test_payload_helpers():
    event = event_from_payload(EVENT_BODY)
    assert event.status == EventStatus.ACTIVE
    assert event_to_payload({"artists": None, "end_date": None}) == {"artists": [], "end_date": None}


def test_headers_come_only_from_explicit_token():
    session = Mock()
    session.headers = {}
    with patch.dict(os.environ, {"API_TOKEN": "from-env", "API_URL": "https://env.example.com"}):
        store = ApiEventStore("https://api.example.com/v1/", session=session)
    assert "Authorization" not in session.headers
    assert store.base_url == "https://api.example.com/v1"


def test_from_settings_uses_settings_url_and_token():
    session = Mock()
    session.headers = {}
    settings = PipelineSettings.from_env({"API_URL": "https://backend.example.com/api/v1/", "API_TOKEN": "tok"})
    store = ApiEventStore.from_settings(settings, session=session)
    assert store.base_url == "https://backend.example.com/api/v1"
    assert session.headers["Authorization"] == "Bearer tok"
