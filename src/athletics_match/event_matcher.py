"""athletics_match.event_matcher

Fuzzy scoring engine: decides whether a scraped competition is an event
already present in the reference store.

Flow for one competition:
  1. validate + normalize the scraped name / city / department
  2. retrieve candidates (candidates.find_candidates)
  3. three fuzzy searches over the candidates: full name, stopword-free
     keywords, city
  4. anti-false-positive guard on keyword-driven matches
  5. combine name / keyword / city scores with the department bonus and the
     date-proximity multiplier
  6. classify the best candidate and attach the edition of the scraped year

Usage:
    from athletics_match.event_matcher import match_competition

    result = match_competition(scraped, store, config)
    if result.is_match:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from athletics_match.candidates import DATE_WINDOW_DAYS, CandidateStore, find_candidates
from athletics_match.config import MatchingConfig
from athletics_match.fuzzy import WeightedFieldIndex
from athletics_match.keywords import (
    DISTINCTIVE_KEYWORD_LENGTH,
    common_keywords,
    extract_keywords,
    remove_sponsors,
    remove_stopwords,
)
from athletics_match.models import (
    CandidateEvent,
    Edition,
    MatchResult,
    MatchType,
    RejectedMatch,
    ScoredCandidate,
    ScrapedCompetition,
)
from athletics_match.normalize import (
    normalize_department_code,
    normalize_text,
    strip_edition_markers,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Scoring constants
# ---------------------------------------------------------------------------

FIELD_WEIGHTS = {"name": 0.5, "keywords": 0.3, "city": 0.2}

EXACT_MATCH_SCORE = 0.95
MIN_CANDIDATE_SCORE = 0.3

DEPARTMENT_BONUS = 0.15
# Above this city similarity the city already vouches for the location.
DEPARTMENT_BONUS_MAX_CITY_SCORE = 0.9

NEAR_PERFECT_NAME_SCORE = 0.9
KEYWORD_GUARD_MAX_NAME_SCORE = 0.5
KEYWORD_GUARD_PENALTY = 0.3

SCORE_PRECISION = 6


# ---------------------------------------------------------------------------
# Candidate preparation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PreparedCandidate:
    event: CandidateEvent
    name_norm: str
    keywords_norm: str
    city_norm: str
    department: str | None
    date_proximity: float


def clean_name(name: str | None) -> str:
    """strip_edition_markers + normalize_text."""
    return normalize_text(strip_edition_markers(name))


def keyword_form(name_norm: str) -> str:
    """Stopword- and sponsor-free form of a normalized name."""
    return remove_stopwords(remove_sponsors(name_norm))


def date_proximity(on_date: date, editions: Sequence[Edition]) -> float:
    """1.0 on the same day, decaying linearly to 0 at DATE_WINDOW_DAYS.

    Uses the edition whose start date is closest to `on_date`; 0.0 when no
    edition carries a start date.
    """
    diffs = [
        abs((edition.start_date - on_date).days)
        for edition in editions
        if edition.start_date is not None
    ]
    if not diffs:
        return 0.0
    return max(0.0, 1.0 - min(diffs) / DATE_WINDOW_DAYS)


def date_multiplier(proximity: float) -> float:
    """0.8 at DATE_WINDOW_DAYS or more, 1.0 on the same day."""
    return 0.8 + max(0.0, min(1.0, proximity)) * 0.2


def prepare_candidate(event: CandidateEvent, on_date: date) -> PreparedCandidate:
    name_norm = clean_name(event.name)
    return PreparedCandidate(
        event=event,
        name_norm=name_norm,
        keywords_norm=keyword_form(name_norm),
        city_norm=normalize_text(event.city),
        department=normalize_department_code(event.department),
        date_proximity=date_proximity(on_date, event.editions),
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def validate_keyword_match(
    search_keywords: Sequence[str],
    candidate_keywords: Sequence[str],
) -> bool:
    """Return True if a keyword-driven match is backed by shared keywords.

    Accepted with two or more common keywords, or with a single common
    keyword of at least DISTINCTIVE_KEYWORD_LENGTH characters.
    """
    if not search_keywords or not candidate_keywords:
        return False
    common = common_keywords(list(search_keywords), list(candidate_keywords))
    if len(common) >= 2:
        return True
    return any(len(k) >= DISTINCTIVE_KEYWORD_LENGTH for k in common)


def combine_scores(
    name_score: float,
    keyword_score: float,
    city_score: float,
    department_match: bool,
    proximity: float,
) -> float:
    """Combine the partial scores into one value, clamped to [0, 1]."""
    best = max(name_score, keyword_score)
    department_bonus = (
        DEPARTMENT_BONUS
        if department_match and city_score < DEPARTMENT_BONUS_MAX_CITY_SCORE
        else 0.0
    )
    multiplier = date_multiplier(proximity)

    if best >= NEAR_PERFECT_NAME_SCORE:
        # Name alone is convincing; the city only nudges (adjoining towns).
        if department_match:
            raw = (best * 0.90 + city_score * 0.05 + department_bonus) * multiplier
        else:
            raw = (best * 0.95 + city_score * 0.05) * multiplier
    else:
        alt = min(name_score, keyword_score)
        raw = (best * 0.5 + city_score * 0.3 + alt * 0.2 + department_bonus) * multiplier

    return round(max(0.0, min(1.0, raw)), SCORE_PRECISION)


def score_candidate(
    scored: ScoredCandidate,
    search_keywords: Sequence[str],
    candidate_keywords: Sequence[str],
) -> ScoredCandidate:
    """Apply the keyword guard and fill in `scored.combined`."""
    if (
        scored.keyword_score > scored.name_score
        and scored.name_score < KEYWORD_GUARD_MAX_NAME_SCORE
        and not validate_keyword_match(search_keywords, candidate_keywords)
    ):
        log.debug(
            "keyword match suspect for %r: keyword score %.3f penalized",
            scored.event.name, scored.keyword_score,
        )
        scored.keyword_score *= KEYWORD_GUARD_PENALTY

    scored.combined = combine_scores(
        scored.name_score,
        scored.keyword_score,
        scored.city_score,
        scored.department_match,
        scored.date_proximity,
    )
    return scored


def classify(combined: float, similarity_threshold: float) -> MatchType:
    if combined >= EXACT_MATCH_SCORE:
        return MatchType.EXACT_MATCH
    if combined >= similarity_threshold:
        return MatchType.FUZZY_MATCH
    return MatchType.NO_MATCH


def score_candidates(
    search_name: str,
    search_city: str,
    search_department: str | None,
    prepared: Sequence[PreparedCandidate],
) -> list[ScoredCandidate]:
    """Run the three fuzzy searches and return scored candidates, best first.

    Candidates that none of the searches hit are left out.
    """
    index: WeightedFieldIndex[PreparedCandidate] = WeightedFieldIndex(
        (
            (p, {"name": p.name_norm, "keywords": p.keywords_norm, "city": p.city_norm})
            for p in prepared
        ),
        FIELD_WEIGHTS,
    )
    search_keywords_norm = keyword_form(search_name)

    by_id: dict[object, ScoredCandidate] = {}
    keywords_by_id: dict[object, list[str]] = {}

    def _entry(p: PreparedCandidate) -> ScoredCandidate:
        if p.event.id not in by_id:
            by_id[p.event.id] = ScoredCandidate(
                event=p.event,
                department_match=(
                    search_department is not None and p.department == search_department
                ),
                date_proximity=p.date_proximity,
            )
            keywords_by_id[p.event.id] = extract_keywords(p.keywords_norm)
        return by_id[p.event.id]

    for field_name, query, attr in (
        ("name", search_name, "name_score"),
        ("keywords", search_keywords_norm, "keyword_score"),
        ("city", search_city, "city_score"),
    ):
        hits = index.search({field_name: query})
        log.debug("%s search: %d hits", field_name, len(hits))
        for hit in hits:
            entry = _entry(hit.item)
            setattr(entry, attr, max(getattr(entry, attr), hit.field_scores[field_name]))

    search_keywords = extract_keywords(search_keywords_norm)
    scored = [
        score_candidate(s, search_keywords, keywords_by_id[event_id])
        for event_id, s in by_id.items()
    ]
    scored.sort(key=lambda s: s.combined, reverse=True)
    return scored


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def match_competition(
    scraped: ScrapedCompetition,
    store: CandidateStore,
    config: MatchingConfig | None = None,
) -> MatchResult:
    """Match one scraped competition against the reference store.

    Raises:
        InvalidRecordError: if the scraped record has no name or no date.
        RetrievalError: if the candidate store could not be queried.
    """
    config = config or MatchingConfig()
    scraped.validate()
    on_date: date = scraped.date  # type: ignore[assignment]  # validated above

    search_name = clean_name(scraped.name)
    search_city = normalize_text(scraped.city)
    search_department = normalize_department_code(scraped.department)
    log.info(
        "matching %r in %r (dept: %s) on %s; normalized name=%r city=%r",
        scraped.name, scraped.city, search_department or "unknown", on_date,
        search_name, search_city,
    )

    candidates = find_candidates(
        store, scraped.name, scraped.city, scraped.department, on_date
    )
    if not candidates:
        log.info("  -> NO_MATCH (no candidates)")
        return MatchResult(type=MatchType.NO_MATCH, confidence=0.0)

    prepared = [prepare_candidate(c, on_date) for c in candidates]
    scored = score_candidates(search_name, search_city, search_department, prepared)
    if not scored:
        log.info("  -> NO_MATCH (no fuzzy hits among %d candidates)", len(candidates))
        return MatchResult(type=MatchType.NO_MATCH, confidence=0.0)

    for i, s in enumerate(scored[:3], start=1):
        log.info(
            "  %d. %r (%s, dept %s%s) score=%.3f name=%.3f kw=%.3f city=%.3f date=%.2f",
            i, s.event.name, s.event.city, s.event.department,
            " match" if s.department_match else "",
            s.combined, s.name_score, s.keyword_score, s.city_score, s.date_proximity,
        )

    year = on_date.year
    rejected = [
        RejectedMatch.from_scored(s, year)
        for s in scored[: config.rejected_match_limit]
    ]
    best = scored[0]

    if best.combined < MIN_CANDIDATE_SCORE:
        log.info("  -> NO_MATCH (best score %.3f < %.1f)", best.combined, MIN_CANDIDATE_SCORE)
        return MatchResult(type=MatchType.NO_MATCH, confidence=0.0, rejected_matches=rejected)

    match_type = classify(best.combined, config.similarity_threshold)
    if match_type is MatchType.NO_MATCH:
        log.info(
            "  -> NO_MATCH (best score %.3f below threshold %.2f)",
            best.combined, config.similarity_threshold,
        )
        return MatchResult(
            type=MatchType.NO_MATCH, confidence=best.combined, rejected_matches=rejected
        )

    edition = best.event.edition_for_year(year)
    log.info(
        "  -> %s with %r (confidence %.3f, edition: %s)",
        match_type.value, best.event.name, best.combined,
        edition.id if edition else "none",
    )
    return MatchResult(
        type=match_type,
        confidence=best.combined,
        event=best.event,
        edition=edition,
        rejected_matches=rejected,
    )
