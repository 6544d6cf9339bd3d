"""athletics_match.confidence

Confidence of the proposal built from a match verdict.

  adjusted_confidence:  a match was found; the proposal updates an existing
                        event or edition.
  new_event_confidence: no acceptable match; the proposal creates an event.
                        Inverted: a close rejected candidate hints at a
                        duplicate and lowers the confidence.
"""

from __future__ import annotations

from athletics_match.models import MatchResult, MatchType
from athletics_match.normalize import normalize_text

EXACT_MATCH_BONUS = 0.05
ORGANIZER_BONUS = 0.02
MULTI_RACE_BONUS = 0.01
LEVEL_BONUS = 0.01
NO_CANDIDATE_BONUS = 0.05

# Below this verdict confidence the proposal confidence is scaled by it.
WEAK_MATCH_CONFIDENCE = 0.8

REGIONAL_OR_ABOVE_LEVELS = frozenset({"regional", "national", "international"})


def _add(confidence: float, bonus: float) -> float:
    return min(confidence + bonus, 1.0)


def is_regional_or_above(level: str | None) -> bool:
    """True for "Régional", "National" or "International" (any case/accents)."""
    return normalize_text(level) in REGIONAL_OR_ABOVE_LEVELS


def adjusted_confidence(
    base: float,
    result: MatchResult,
    has_organizer_info: bool = False,
    race_count: int = 1,
) -> float:
    confidence = base
    if result.type is MatchType.EXACT_MATCH:
        confidence = _add(confidence, EXACT_MATCH_BONUS)
    if has_organizer_info:
        confidence = _add(confidence, ORGANIZER_BONUS)
    if race_count > 1:
        confidence = _add(confidence, MULTI_RACE_BONUS)
    if result.confidence < WEAK_MATCH_CONFIDENCE:
        confidence *= result.confidence
    return round(confidence, 2)


def new_event_confidence(
    base: float,
    rejected_score: float,
    has_organizer_info: bool = False,
    race_count: int = 1,
    level: str | None = None,
) -> float:
    """Confidence that creating a new event is right, given the best rejected score.

    Non-increasing in `rejected_score`.
    """
    if rejected_score <= 0:
        confidence = _add(base, NO_CANDIDATE_BONUS)
    else:
        confidence = base * (1 - min(rejected_score, 1.0) * 0.5)
    if has_organizer_info:
        confidence = _add(confidence, ORGANIZER_BONUS)
    if race_count > 1:
        confidence = _add(confidence, MULTI_RACE_BONUS)
    if is_regional_or_above(level):
        confidence = _add(confidence, LEVEL_BONUS)
    return round(confidence, 2)
