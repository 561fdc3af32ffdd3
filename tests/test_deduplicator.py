import os
import sys
from datetime import datetime

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.deduplicator import (
    changed_fields,
    compute_similarity_score,
    find_duplicate,
    merge_events,
    title_similarity,
)
from ingest.schemas import CanonicalEvent, Curation, EventDraft, EventStatus

START = datetime(2026, 3, 14, 21, 0)


def make_existing(**overrides):
    data = dict(
        id="e1",
        title="Hamlet en el Real",
        slug="hamlet-en-el-real-2026-03-14",
        category="TEATRO",
        source_id="src-old",
        start_date=START,
        venue_name="Teatro Real",
        artists=("Compañía Nacional",),
        city_id="city-cba",
    )
    data.update(overrides)
    return CanonicalEvent(**data)


def test_title_similarity_is_symmetric_and_accent_blind():
    assert title_similarity("Música en el parque", "musica en el parque") == 1.0
    assert title_similarity("abc", "abd") == title_similarity("abd", "abc")


def test_full_match_scores_100():
    draft = EventDraft(
        title="Hamlet en el Real",
        start_date=START,
        venue_name="Teatro Real",
        artists=("compañía nacional",),
    )
    assert compute_similarity_score(draft, make_existing()) == 100


def test_disjoint_event_scores_zero():
    draft = EventDraft(title="xyz", start_date=None, venue_name=None)
    existing = make_existing(title="abc", venue_name=None, artists=())
    assert compute_similarity_score(draft, existing) == 0


def test_date_window_is_one_day():
    existing = make_existing(title="zzz", venue_name=None, artists=())
    near = EventDraft(title="qqq", start_date=datetime(2026, 3, 15, 20, 0))
    far = EventDraft(title="qqq", start_date=datetime(2026, 3, 16, 0, 0))
    assert compute_similarity_score(near, existing) == 20
    assert compute_similarity_score(far, existing) == 0


def test_find_duplicate_uses_threshold(store):
    store.create_event(
        dict(
            title="Hamlet en el Real",
            slug="hamlet",
            category="TEATRO",
            source_id="src",
            start_date=START,
            venue_name="Teatro Real",
            city_id="city-cba",
        )
    )
    hit = find_duplicate(store, EventDraft(title="Hamlet en el Real", start_date=START, venue_name="Teatro Real"), "city-cba")
    assert hit.is_duplicate is True
    assert hit.score == 80

    other_city = find_duplicate(store, EventDraft(title="Hamlet en el Real", start_date=START), "city-ros")
    assert other_city.is_duplicate is False
    assert other_city.score == 0


def test_find_duplicate_ignores_inactive_events(store):
    store.create_event(
        dict(
            title="Hamlet",
            slug="hamlet",
            category="TEATRO",
            source_id="src",
            start_date=START,
            status=EventStatus.PAST,
        )
    )
    assert find_duplicate(store, EventDraft(title="Hamlet", start_date=START), None).is_duplicate is False


def test_merge_keeps_existing_text_when_incoming_not_more_reliable():
    existing = make_existing(description="Original", address=None)
    incoming = EventDraft(title="Hamlet", description="Nueva", address="Av. Colón 100", tags=("teatro",))
    merged = merge_events(existing, incoming, 70, 70, "src-new")
    assert merged.description == "Original"
    assert merged.address == "Av. Colón 100"
    assert merged.source_id == "src-old"
    assert merged.tags == ("teatro",)
    assert existing.address is None


def test_merge_prefers_more_reliable_incoming():
    existing = make_existing(description="Original")
    incoming = EventDraft(title="Hamlet", description="Nueva", venue_name=None)
    merged = merge_events(existing, incoming, 50, 90, "src-new")
    assert merged.description == "Nueva"
    assert merged.venue_name == "Teatro Real"
    assert merged.source_id == "src-new"


def test_merge_coordinates_prices_and_lists():
    existing = make_existing(latitude=-31.4, longitude=-64.18345, price_min=1000.0, artists=("A", "B"))
    incoming = EventDraft(
        title="Hamlet",
        latitude=-31.41352,
        longitude=-64.18,
        price_min=800.0,
        price_max=2000.0,
        artists=("B", "C"),
    )
    merged = merge_events(existing, incoming, 70, 70, "src-new")
    assert merged.latitude == -31.41352
    assert merged.longitude == -64.18345
    assert (merged.price_min, merged.price_max) == (800.0, 2000.0)
    assert merged.artists == ("A", "B", "C")


def test_merge_fills_only_missing_scores():
    curation = Curation(8.0, 7.0, "TEATRO", "independent", "Una obra clásica.", 7.9)
    existing = make_existing(cultural_score=6.0)
    merged = merge_events(existing, EventDraft(title="Hamlet"), 70, 70, "src", curation)
    assert merged.cultural_score == 6.0
    assert merged.originality_score == 7.0
    assert merged.final_score == 7.9


def test_changed_fields_ignores_timestamps():
    before = make_existing(updated_at=datetime(2026, 1, 1))
    after = make_existing(updated_at=datetime(2026, 2, 1), address="Calle 1")
    assert changed_fields(before, after) == {"address": "Calle 1"}
