"""Per-domain quality gate applied after validation.

Expired events are structurally sound and only count toward
``total_extracted``: agendas routinely list the whole month, so a past date
says nothing about the quality of the source.
"""
from __future__ import annotations

from typing import Iterable

from scrapers.utils import round_half_up

from .schemas import DomainResult, ValidatedEvent, YieldReport

MIN_VALID_EVENTS = 1
MAX_INVALID_RATE = 0.8


def enforce_source_yield(
    results: Iterable[DomainResult],
) -> tuple[list[ValidatedEvent], list[YieldReport]]:
    """Return the valid events of accepted domains plus one report per domain."""
    accepted_events: list[ValidatedEvent] = []
    reports: list[YieldReport] = []

    for result in results:
        valid_count = len(result.valid)
        invalid_count = len(result.invalid)
        quality_total = valid_count + invalid_count
        invalid_rate = invalid_count / quality_total if quality_total else 0.0

        accepted = valid_count >= MIN_VALID_EVENTS and invalid_rate <= MAX_INVALID_RATE
        reports.append(
            YieldReport(
                domain=result.domain,
                total_extracted=quality_total + len(result.expired),
                valid_count=valid_count,
                invalid_count=invalid_count,
                invalid_rate=round_half_up(invalid_rate, 2),
                accepted=accepted,
            )
        )
        if accepted:
            accepted_events.extend(result.valid)

    return accepted_events, reports
