"""athletics_match.models

Records exchanged between the scraped feed, the candidate store and the
matcher.  Everything here lives for one matching invocation only; nothing is
persisted by the matcher itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from athletics_match.normalize import trim


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InvalidRecordError(ValueError):
    """Raised when a scraped record lacks a field the matcher cannot do without."""


# ---------------------------------------------------------------------------
# Races
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RaceRecord:
    """One race of a scraped competition.

    `start_time` may hold a bare time of day while the race is read on its
    own; it becomes a datetime once attached to its competition date.
    """

    name: str
    distance_meters: float | None = None
    elevation_meters: float | None = None
    start_time: datetime | time | None = None


@dataclass(frozen=True)
class EditionRace:
    """A race already stored for an edition.

    Distances are split by discipline in the reference store; the total is
    `distance_meters` when given, else the sum of the discipline distances.
    """

    id: Any
    name: str
    distance_meters: float | None = None
    run_distance_meters: float | None = None
    walk_distance_meters: float | None = None
    swim_distance_meters: float | None = None
    bike_distance_meters: float | None = None
    elevation_meters: float | None = None
    start_time: datetime | None = None

    @property
    def total_distance_meters(self) -> float:
        if self.distance_meters:
            return float(self.distance_meters)
        return float(
            (self.run_distance_meters or 0)
            + (self.walk_distance_meters or 0)
            + (self.swim_distance_meters or 0)
            + (self.bike_distance_meters or 0)
        )


@dataclass(frozen=True)
class RaceMatch:
    scraped: RaceRecord
    stored: EditionRace
    score: float


@dataclass
class RaceMatchResult:
    matched: list[RaceMatch] = field(default_factory=list)
    unmatched: list[RaceRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": [
                {
                    "scraped_name": m.scraped.name,
                    "scraped_distance_meters": m.scraped.distance_meters,
                    "race_id": m.stored.id,
                    "race_name": m.stored.name,
                    "score": round(m.score, 4),
                }
                for m in self.matched
            ],
            "unmatched": [
                {"name": r.name, "distance_meters": r.distance_meters}
                for r in self.unmatched
            ],
        }


# ---------------------------------------------------------------------------
# Scraped competition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScrapedCompetition:
    """One observed (name, place, date) occurrence from the federation calendar."""

    name: str
    city: str
    department: str | None
    date: date | None
    source_id: str | None = None
    level: str | None = None
    organizer_email: str | None = None
    organizer_website: str | None = None
    races: tuple[RaceRecord, ...] = ()

    def validate(self) -> None:
        """Raise InvalidRecordError if the name or date is missing."""
        if trim(self.name) is None:
            raise InvalidRecordError(f"missing_name: source_id={self.source_id!r}")
        if self.date is None:
            raise InvalidRecordError(
                f"missing_date: name={self.name!r} source_id={self.source_id!r}"
            )

    @property
    def has_organizer_info(self) -> bool:
        return bool(trim(self.organizer_email) or trim(self.organizer_website))


# ---------------------------------------------------------------------------
# Candidate events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Edition:
    id: Any
    year: int
    start_date: date | None = None


@dataclass(frozen=True)
class CandidateEvent:
    """Reference-store event with its editions inside the query window."""

    id: Any
    name: str
    city: str
    department: str | None
    editions: tuple[Edition, ...] = ()
    slug: str | None = None

    def edition_for_year(self, year: int) -> Edition | None:
        for edition in self.editions:
            if edition.year == year:
                return edition
        return None


# ---------------------------------------------------------------------------
# Scoring output
# ---------------------------------------------------------------------------

class MatchType(str, Enum):
    EXACT_MATCH = "EXACT_MATCH"
    FUZZY_MATCH = "FUZZY_MATCH"
    NO_MATCH = "NO_MATCH"


@dataclass
class ScoredCandidate:
    """Per-candidate partial scores; `combined` is always within [0, 1]."""

    event: CandidateEvent
    name_score: float = 0.0
    keyword_score: float = 0.0
    city_score: float = 0.0
    department_match: bool = False
    date_proximity: float = 0.0
    combined: float = 0.0


@dataclass(frozen=True)
class RejectedMatch:
    """Summary of a scored candidate, kept so a reviewer can override a miss."""

    event_id: Any
    event_name: str
    event_city: str
    event_department: str | None
    edition_id: Any
    edition_year: int | None
    match_score: float
    name_score: float
    keyword_score: float
    city_score: float
    department_match: bool
    date_proximity: float

    @classmethod
    def from_scored(cls, scored: ScoredCandidate, year: int) -> "RejectedMatch":
        edition = scored.event.edition_for_year(year)
        return cls(
            event_id=scored.event.id,
            event_name=scored.event.name,
            event_city=scored.event.city,
            event_department=scored.event.department,
            edition_id=edition.id if edition else None,
            edition_year=edition.year if edition else None,
            match_score=scored.combined,
            name_score=scored.name_score,
            keyword_score=scored.keyword_score,
            city_score=scored.city_score,
            department_match=scored.department_match,
            date_proximity=scored.date_proximity,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_name": self.event_name,
            "event_city": self.event_city,
            "event_department": self.event_department,
            "edition_id": self.edition_id,
            "edition_year": self.edition_year,
            "match_score": round(self.match_score, 4),
            "name_score": round(self.name_score, 4),
            "keyword_score": round(self.keyword_score, 4),
            "city_score": round(self.city_score, 4),
            "department_match": self.department_match,
            "date_proximity": round(self.date_proximity, 4),
        }


@dataclass
class MatchResult:
    type: MatchType
    confidence: float
    event: CandidateEvent | None = None
    edition: Edition | None = None
    rejected_matches: list[RejectedMatch] = field(default_factory=list)

    @property
    def is_match(self) -> bool:
        return self.type in (MatchType.EXACT_MATCH, MatchType.FUZZY_MATCH)

    @property
    def best_rejected_score(self) -> float:
        """Score of the strongest candidate that was turned down (0 if none)."""
        if self.is_match:
            return 0.0
        return self.confidence

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 4),
            "event_id": self.event.id if self.event else None,
            "event_name": self.event.name if self.event else None,
            "edition_id": self.edition.id if self.edition else None,
            "edition_year": self.edition.year if self.edition else None,
            "rejected_matches": [r.to_dict() for r in self.rejected_matches],
        }
