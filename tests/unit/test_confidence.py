"""Unit tests for athletics_match.confidence."""

from __future__ import annotations

import pytest

from athletics_match.confidence import (
    adjusted_confidence,
    is_regional_or_above,
    new_event_confidence,
)
from athletics_match.models import MatchResult, MatchType


def _result(type_, confidence):
    return MatchResult(type=type_, confidence=confidence)


# ---------------------------------------------------------------------------
# adjusted_confidence
# ---------------------------------------------------------------------------

class TestAdjustedConfidence:
    def test_exact_match_with_all_bonuses(self):
        result = _result(MatchType.EXACT_MATCH, 0.95)
        assert adjusted_confidence(0.9, result, has_organizer_info=True, race_count=3) == 0.98

    def test_exact_match_without_bonuses(self):
        assert adjusted_confidence(0.9, _result(MatchType.EXACT_MATCH, 0.95)) == 0.95

    def test_weak_fuzzy_match_scaled(self):
        # 0.9 * 0.78
        assert adjusted_confidence(0.9, _result(MatchType.FUZZY_MATCH, 0.78)) == 0.7

    def test_strong_fuzzy_match_not_scaled(self):
        assert adjusted_confidence(0.9, _result(MatchType.FUZZY_MATCH, 0.85)) == 0.9

    def test_capped_at_one(self):
        result = _result(MatchType.EXACT_MATCH, 1.0)
        assert adjusted_confidence(1.0, result, has_organizer_info=True, race_count=2) == 1.0

    def test_single_race_no_bonus(self):
        result = _result(MatchType.FUZZY_MATCH, 0.85)
        assert adjusted_confidence(0.9, result, race_count=1) == 0.9
        assert adjusted_confidence(0.9, result, race_count=2) == 0.91


# ---------------------------------------------------------------------------
# new_event_confidence
# ---------------------------------------------------------------------------

class TestNewEventConfidence:
    def test_no_candidate_at_all(self):
        assert new_event_confidence(0.9, 0.0) == 0.95

    def test_inverted_by_rejected_score(self):
        # 0.9 * (1 - 0.4 * 0.5)
        assert new_event_confidence(0.9, 0.4) == 0.72

    def test_regional_level_bonus(self):
        assert new_event_confidence(0.9, 0.0, level="Régional") == 0.96
        assert new_event_confidence(0.9, 0.0, level="Départemental") == 0.95

    def test_organizer_and_races(self):
        assert new_event_confidence(0.9, 0.4, has_organizer_info=True, race_count=2) == 0.75

    def test_non_increasing_in_rejected_score(self):
        values = [new_event_confidence(0.9, s / 20) for s in range(21)]
        assert values == sorted(values, reverse=True)

    @pytest.mark.parametrize("score", [0.75, 0.8, 0.9, 0.95, 1.0])
    def test_close_candidate_favors_update(self, score):
        match_type = MatchType.EXACT_MATCH if score >= 0.95 else MatchType.FUZZY_MATCH
        assert new_event_confidence(0.9, score) < adjusted_confidence(
            0.9, _result(match_type, score)
        )


class TestIsRegionalOrAbove:
    @pytest.mark.parametrize("level", ["Régional", "NATIONAL", " international "])
    def test_true(self, level):
        assert is_regional_or_above(level)

    @pytest.mark.parametrize("level", [None, "", "Départemental", "Club"])
    def test_false(self, level):
        assert not is_regional_or_above(level)
