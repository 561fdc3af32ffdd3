import os
import sys
from datetime import datetime
from unittest.mock import Mock

# Ensure the project root is on the import path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ingest.slugs import MAX_SLUG_LENGTH, compose_slug, generate_event_slug, slugify, truncate_slug


def test_slugify_strips_accents_and_punctuation():
    assert slugify("¡Música en el Parque!") == "musica-en-el-parque"
    assert slugify("  Jazz & Blues  ") == "jazz-blues"


def test_truncate_slug_cuts_on_hyphen():
    slug = "-".join(["palabra"] * 20)
    truncated = truncate_slug(slug)
    assert len(truncated) <= MAX_SLUG_LENGTH
    assert not truncated.endswith("-")
    assert truncated.endswith("palabra")


def _event(store, slug):
    store.create_event(dict(title="x", slug=slug, category="OTRO", source_id="s"))


def test_generate_slug_with_date_and_collision_counter(store):
    start = datetime(2026, 2, 23, 20, 0)
    first = generate_event_slug(store, "Título del Evento", start)
    assert first == "titulo-del-evento-2026-02-23"
    _event(store, first)

    second = generate_event_slug(store, "Título del Evento", start)
    assert second == "titulo-del-evento-2026-02-23-2"
    _event(store, second)

    assert generate_event_slug(store, "Título del Evento", start) == "titulo-del-evento-2026-02-23-3"


def test_generate_slug_without_date(store):
    assert generate_event_slug(store, "Feria Franca") == "feria-franca"


def test_generate_slug_random_suffix_after_counter_exhausted():
    backing = Mock()
    backing.find_event_by_slug.return_value = object()
    slug = generate_event_slug(backing, "Feria Franca")
    assert slug.startswith("feria-franca-")
    assert len(slug) == len("feria-franca-") + 6
    assert backing.find_event_by_slug.call_count == 99


def test_long_title_collision_gets_distinct_slug(store):
    start = datetime(2026, 12, 1, 20, 0)
    title = "x" * 88

    first = generate_event_slug(store, title, start)
    assert first == "x" * 88 + "-2026-12-01"
    _event(store, first)

    second = generate_event_slug(store, title, start)
    assert second != first
    assert second.endswith("-2026-12-01-2")
    assert len(second) <= MAX_SLUG_LENGTH
    _event(store, second)

    third = generate_event_slug(store, title, start)
    assert third not in (first, second)
    assert third.endswith("-2026-12-01-3")


def test_long_titles_keep_their_full_date(store):
    title = "Gran concierto sinfónico de la orquesta estable con solistas invitados " * 3
    first = generate_event_slug(store, title, datetime(2026, 12, 1))
    second = generate_event_slug(store, title, datetime(2026, 12, 2))
    assert first.endswith("-2026-12-01")
    assert second.endswith("-2026-12-02")
    assert len(first) <= MAX_SLUG_LENGTH
    assert len(second) <= MAX_SLUG_LENGTH


def test_compose_slug_never_cuts_suffixes():
    slug = compose_slug("-".join(["palabra"] * 20), "2026-03-14", "99")
    assert slug.endswith("-2026-03-14-99")
    assert len(slug) <= MAX_SLUG_LENGTH
    assert compose_slug("", "2026-03-14") == "2026-03-14"
    assert compose_slug("feria-franca") == "feria-franca"
