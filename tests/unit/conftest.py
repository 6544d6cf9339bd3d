"""Unit test fixtures: an in-memory CandidateStore."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any

import pytest

from athletics_match.candidates import CandidateQuery
from athletics_match.models import CandidateEvent, Edition, EditionRace
from athletics_match.normalize import normalize_text


class FakeCandidateStore:
    """Filters a fixed list of events the way the SQL store does."""

    def __init__(
        self,
        events: list[CandidateEvent],
        races: dict[Any, list[EditionRace]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.events = events
        self.races = races or {}
        self.error = error
        self.queries: list[CandidateQuery] = []
        self.race_requests: list[Any] = []

    def query_candidates(self, query: CandidateQuery) -> list[CandidateEvent]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        out: list[CandidateEvent] = []
        for event in self.events:
            if event.id in query.exclude_ids:
                continue
            editions = tuple(
                e for e in event.editions
                if e.start_date is not None
                and query.window_start <= e.start_date <= query.window_end
            )
            if not editions:
                continue
            if query.department and event.department != query.department:
                continue
            if query.has_text_filter:
                name = normalize_text(event.name)
                city = normalize_text(event.city)
                if not (
                    any(w in name for w in query.name_words)
                    or any(w in city for w in query.city_words)
                ):
                    continue
            out.append(replace(event, editions=editions))
            if len(out) >= query.limit:
                break
        return out

    def fetch_edition_races(self, edition_id: Any) -> list[EditionRace]:
        self.race_requests.append(edition_id)
        return list(self.races.get(edition_id, []))


def make_event(
    event_id: int,
    name: str,
    city: str,
    department: str | None,
    start_date: date,
    edition_id: int | None = None,
) -> CandidateEvent:
    return CandidateEvent(
        id=event_id,
        name=name,
        city=city,
        department=department,
        editions=(
            Edition(
                id=edition_id if edition_id is not None else event_id * 100,
                year=start_date.year,
                start_date=start_date,
            ),
        ),
    )


@pytest.fixture
def store_factory():
    return FakeCandidateStore


@pytest.fixture
def event_factory():
    return make_event
