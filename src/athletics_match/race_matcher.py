"""athletics_match.race_matcher

Pairs the races of a scraped competition with the races already stored for
the resolved edition.

Distance is the primary discriminant: stored races are grouped by total
distance (relative tolerance), and a scraped race is paired with the group
at its distance.  Names only break ties inside a group, or rescue races
stored without any distance.
"""

from __future__ import annotations

import logging
from typing import Sequence

from athletics_match.fuzzy import WeightedFieldIndex
from athletics_match.keywords import remove_stopwords
from athletics_match.models import EditionRace, RaceMatch, RaceMatchResult, RaceRecord
from athletics_match.normalize import normalize_race_name

log = logging.getLogger(__name__)

DEFAULT_DISTANCE_TOLERANCE = 0.05

RACE_FIELD_WEIGHTS = {"name": 0.6, "keywords": 0.4}

# Minimum name score to accept within a same-distance group.
GROUP_NAME_MIN_SCORE = 0.5
# Minimum name score to accept a race stored without distance.
FALLBACK_NAME_MIN_SCORE = 0.7


class DistanceGroup:
    """Stored races sharing (within tolerance) the distance of the first member."""

    def __init__(self, representative: float, races: list[EditionRace] | None = None) -> None:
        self.representative = representative
        self.races: list[EditionRace] = races or []

    def accepts(self, distance: float, tolerance: float) -> bool:
        return abs(self.representative - distance) <= self.representative * tolerance

    def __repr__(self) -> str:
        return f"DistanceGroup({self.representative!r}, {[r.name for r in self.races]!r})"


def group_races_by_distance(
    races: Sequence[EditionRace],
    tolerance: float = DEFAULT_DISTANCE_TOLERANCE,
) -> tuple[list[DistanceGroup], list[EditionRace]]:
    """Return (distance groups, races without distance).

    A race joins the first group whose representative distance is within
    `tolerance` (relative), otherwise it starts a new group.
    """
    groups: list[DistanceGroup] = []
    without_distance: list[EditionRace] = []
    for race in races:
        distance = race.total_distance_meters
        if distance <= 0:
            without_distance.append(race)
            continue
        for group in groups:
            if group.accepts(distance, tolerance):
                group.races.append(race)
                break
        else:
            groups.append(DistanceGroup(distance, [race]))
    return groups, without_distance


def fuzzy_match_race_name(
    scraped: RaceRecord,
    candidates: Sequence[EditionRace],
) -> tuple[EditionRace | None, float]:
    """Return the best-named candidate and its score (None, 0.0 if none scored).

    Names are compared after normalize_race_name; the score weighs the full
    name 0.6 and the stopword-free keywords 0.4.
    """
    entries = []
    for race in candidates:
        norm = normalize_race_name(race.name)
        entries.append((race, {"name": norm, "keywords": remove_stopwords(norm)}))
    index: WeightedFieldIndex[EditionRace] = WeightedFieldIndex(
        entries, RACE_FIELD_WEIGHTS, min_similarity=0.0
    )

    search_name = normalize_race_name(scraped.name)
    hits = index.search({"name": search_name, "keywords": remove_stopwords(search_name)})
    if not hits:
        return None, 0.0
    best = hits[0]
    return best.item, best.score


def match_races(
    scraped_races: Sequence[RaceRecord],
    stored_races: Sequence[EditionRace],
    tolerance: float = DEFAULT_DISTANCE_TOLERANCE,
) -> RaceMatchResult:
    """Pair scraped races with stored races of the same edition.

    A scraped race without a distance (None or 0) is always unmatched.
    """
    groups, without_distance = group_races_by_distance(stored_races, tolerance)
    log.debug(
        "grouped %d stored races into %d distance groups (%d without distance)",
        len(stored_races), len(groups), len(without_distance),
    )

    result = RaceMatchResult()
    for race in scraped_races:
        distance = race.distance_meters or 0
        if distance <= 0:
            log.debug("race %r has no distance: unmatched", race.name)
            result.unmatched.append(race)
            continue

        group = next((g for g in groups if g.accepts(distance, tolerance)), None)

        if group is None:
            stored, score = (
                fuzzy_match_race_name(race, without_distance)
                if without_distance
                else (None, 0.0)
            )
            if stored is not None and score >= FALLBACK_NAME_MIN_SCORE:
                log.debug("fallback match %r -> %r (%.2f)", race.name, stored.name, score)
                result.matched.append(RaceMatch(race, stored, score))
            else:
                result.unmatched.append(race)
        elif len(group.races) == 1:
            stored = group.races[0]
            log.debug("race %r -> %r (unique distance)", race.name, stored.name)
            result.matched.append(RaceMatch(race, stored, 1.0))
        else:
            stored, score = fuzzy_match_race_name(race, group.races)
            if stored is not None and score >= GROUP_NAME_MIN_SCORE:
                log.debug("race %r -> %r (%.2f)", race.name, stored.name, score)
                result.matched.append(RaceMatch(race, stored, score))
            else:
                result.unmatched.append(race)

    return result
