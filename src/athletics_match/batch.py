"""athletics_match.batch

Runs the matcher over a batch of scraped competitions and turns each verdict
into a review proposal.

Per record:
  match_competition → (edition found)  fetch stored races, match_races,
                                       EDITION_UPDATE, adjusted confidence
                    → (event, no edition for the year)  EVENT_UPDATE
                    → (no acceptable match)  NEW_EVENT, inverted confidence

Each record is isolated: an invalid record, a retrieval failure or an
unexpected scoring error is counted and reported without stopping the other
records of the batch.  Proposals are deduplicated batch-wide (dedup.py).
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Sequence

from athletics_match.candidates import CandidateStore, RetrievalError
from athletics_match.confidence import adjusted_confidence, new_event_confidence
from athletics_match.config import MatchingConfig
from athletics_match.dedup import ProposalDeduplicator
from athletics_match.event_matcher import match_competition
from athletics_match.models import (
    InvalidRecordError,
    MatchResult,
    MatchType,
    RaceMatchResult,
    RaceRecord,
    ScrapedCompetition,
)
from athletics_match.normalize import department_name, normalize_department_code, trim
from athletics_match.race_matcher import match_races
from athletics_match.shared import RejectWriter

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------

class ProposalType(str, Enum):
    EDITION_UPDATE = "EDITION_UPDATE"
    EVENT_UPDATE = "EVENT_UPDATE"
    NEW_EVENT = "NEW_EVENT"


@dataclass
class Proposal:
    type: ProposalType
    target: Hashable
    confidence: float
    changes: dict[str, Any]
    justification: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "target": list(self.target) if isinstance(self.target, tuple) else self.target,
            "confidence": self.confidence,
            "changes": self.changes,
            "justification": self.justification,
        }


def _race_dict(race: RaceRecord) -> dict[str, Any]:
    return {
        "name": race.name,
        "distance_meters": race.distance_meters,
        "elevation_meters": race.elevation_meters,
        "start_time": race.start_time,
    }


def _organizer_dict(competition: ScrapedCompetition) -> dict[str, Any]:
    organizer = {
        "email": trim(competition.organizer_email),
        "website": trim(competition.organizer_website),
    }
    return {k: v for k, v in organizer.items() if v}


def build_proposal(
    competition: ScrapedCompetition,
    result: MatchResult,
    race_result: RaceMatchResult | None,
    config: MatchingConfig,
) -> Proposal:
    race_count = len(competition.races)
    organizer = _organizer_dict(competition)

    if result.is_match and result.event is not None and result.edition is not None:
        race_result = race_result or RaceMatchResult()
        changes: dict[str, Any] = {
            "event_id": result.event.id,
            "edition_id": result.edition.id,
            "start_date": competition.date,
            "races_to_update": [
                {
                    "race_id": m.stored.id,
                    "name": m.scraped.name,
                    "distance_meters": m.scraped.distance_meters,
                    "elevation_meters": m.scraped.elevation_meters,
                    "start_time": m.scraped.start_time,
                }
                for m in race_result.matched
            ],
            "races_to_add": [_race_dict(r) for r in race_result.unmatched],
        }
        if organizer:
            changes["organizer"] = organizer
        return Proposal(
            type=ProposalType.EDITION_UPDATE,
            target=("edition", result.edition.id),
            confidence=adjusted_confidence(
                config.confidence_base, result, competition.has_organizer_info, race_count
            ),
            changes=changes,
            justification={"match": result.to_dict(), "races": race_result.to_dict()},
        )

    if result.is_match and result.event is not None:
        changes = {
            "event_id": result.event.id,
            "edition_to_create": {
                "year": competition.date.year if competition.date else None,
                "start_date": competition.date,
                "races": [_race_dict(r) for r in competition.races],
            },
        }
        if organizer:
            changes["organizer"] = organizer
        return Proposal(
            type=ProposalType.EVENT_UPDATE,
            target=("event", result.event.id),
            confidence=adjusted_confidence(
                config.confidence_base, result, competition.has_organizer_info, race_count
            ),
            changes=changes,
            justification={"match": result.to_dict()},
        )

    department = normalize_department_code(competition.department)
    changes = {
        "name": competition.name,
        "city": competition.city,
        "department": department,
        "department_name": department_name(department),
        "level": competition.level,
        "start_date": competition.date,
        "races": [_race_dict(r) for r in competition.races],
    }
    if organizer:
        changes["organizer"] = organizer
    return Proposal(
        type=ProposalType.NEW_EVENT,
        target=("new_event", None),
        confidence=new_event_confidence(
            config.confidence_base,
            result.best_rejected_score,
            competition.has_organizer_info,
            race_count,
            competition.level,
        ),
        changes=changes,
        justification={"match": result.to_dict()},
    )


# ---------------------------------------------------------------------------
# Outcome + counters
# ---------------------------------------------------------------------------

@dataclass
class MatchOutcome:
    competition: ScrapedCompetition
    result: MatchResult | None = None
    race_result: RaceMatchResult | None = None
    proposal: Proposal | None = None
    duplicate: bool = False
    error_kind: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_row(self) -> dict[str, Any]:
        c = self.competition
        r = self.result
        best_rejected = r.rejected_matches[0] if r and r.rejected_matches else None
        return {
            "source_id": c.source_id or "",
            "name": c.name,
            "city": c.city,
            "department": c.department or "",
            "date": c.date.isoformat() if c.date else "",
            "match_type": r.type.value if r else "",
            "match_confidence": round(r.confidence, 4) if r else "",
            "event_id": r.event.id if r and r.event else "",
            "event_name": r.event.name if r and r.event else "",
            "edition_id": r.edition.id if r and r.edition else "",
            "proposal_type": self.proposal.type.value if self.proposal else "",
            "proposal_confidence": self.proposal.confidence if self.proposal else "",
            "duplicate": self.duplicate,
            "races_matched": len(self.race_result.matched) if self.race_result else "",
            "races_unmatched": len(self.race_result.unmatched) if self.race_result else "",
            "best_candidate_id": best_rejected.event_id if best_rejected else "",
            "best_candidate_score": round(best_rejected.match_score, 4) if best_rejected else "",
            "error_kind": self.error_kind or "",
            "error": self.error or "",
        }


@dataclass
class BatchCounters:
    rows_read: int = 0
    rows_rejected: int = 0
    competitions_processed: int = 0
    exact_matches: int = 0
    fuzzy_matches: int = 0
    no_matches: int = 0
    proposals_edition_update: int = 0
    proposals_event_update: int = 0
    proposals_new_event: int = 0
    duplicate_proposals: int = 0
    races_matched: int = 0
    races_unmatched: int = 0
    invalid_records: int = 0
    retrieval_errors: int = 0
    scoring_errors: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "rows_rejected": self.rows_rejected,
            "competitions_processed": self.competitions_processed,
            "exact_matches": self.exact_matches,
            "fuzzy_matches": self.fuzzy_matches,
            "no_matches": self.no_matches,
            "proposals_edition_update": self.proposals_edition_update,
            "proposals_event_update": self.proposals_event_update,
            "proposals_new_event": self.proposals_new_event,
            "duplicate_proposals": self.duplicate_proposals,
            "races_matched": self.races_matched,
            "races_unmatched": self.races_unmatched,
            "invalid_records": self.invalid_records,
            "retrieval_errors": self.retrieval_errors,
            "scoring_errors": self.scoring_errors,
            "warnings": self.warnings,
        }


_PROPOSAL_COUNTER = {
    ProposalType.EDITION_UPDATE: "proposals_edition_update",
    ProposalType.EVENT_UPDATE: "proposals_event_update",
    ProposalType.NEW_EVENT: "proposals_new_event",
}

_MATCH_COUNTER = {
    MatchType.EXACT_MATCH: "exact_matches",
    MatchType.FUZZY_MATCH: "fuzzy_matches",
    MatchType.NO_MATCH: "no_matches",
}


def _tally(ctrs: BatchCounters, outcome: MatchOutcome) -> None:
    ctrs.competitions_processed += 1
    label = f"{outcome.competition.name!r} (source_id={outcome.competition.source_id})"
    if outcome.error_kind == "invalid_record":
        ctrs.invalid_records += 1
        ctrs.warnings.append(f"invalid record {label}: {outcome.error}")
        return
    if outcome.error_kind == "retrieval_error":
        ctrs.retrieval_errors += 1
        ctrs.warnings.append(f"retrieval failed for {label}: {outcome.error}")
        return
    if outcome.error_kind is not None:
        ctrs.scoring_errors += 1
        ctrs.warnings.append(f"scoring failed for {label}: {outcome.error}")
        return

    if outcome.result is not None:
        counter = _MATCH_COUNTER[outcome.result.type]
        setattr(ctrs, counter, getattr(ctrs, counter) + 1)
    if outcome.race_result is not None:
        ctrs.races_matched += len(outcome.race_result.matched)
        ctrs.races_unmatched += len(outcome.race_result.unmatched)
    if outcome.duplicate:
        ctrs.duplicate_proposals += 1
    elif outcome.proposal is not None:
        counter = _PROPOSAL_COUNTER[outcome.proposal.type]
        setattr(ctrs, counter, getattr(ctrs, counter) + 1)


# ---------------------------------------------------------------------------
# Per-record pipeline
# ---------------------------------------------------------------------------

def match_one(
    competition: ScrapedCompetition,
    store: CandidateStore,
    config: MatchingConfig,
    dedup: ProposalDeduplicator | None = None,
) -> MatchOutcome:
    """Match one competition and build its proposal.

    Raises InvalidRecordError and RetrievalError; the batch runner turns
    them into per-record outcomes.
    """
    result = match_competition(competition, store, config)

    race_result: RaceMatchResult | None = None
    if result.is_match and result.edition is not None:
        stored_races = store.fetch_edition_races(result.edition.id)
        race_result = match_races(
            competition.races, stored_races, config.distance_tolerance_percent
        )

    proposal = build_proposal(competition, result, race_result, config)
    duplicate = False
    if dedup is not None and not dedup.register(proposal.target, proposal.changes):
        log.info("duplicate %s proposal for %s skipped", proposal.type.value, proposal.target)
        duplicate = True

    return MatchOutcome(
        competition=competition,
        result=result,
        race_result=race_result,
        proposal=proposal,
        duplicate=duplicate,
    )


def _competition_row(competition: ScrapedCompetition) -> dict[str, Any]:
    return {
        "source_id": competition.source_id or "",
        "name": competition.name,
        "city": competition.city,
        "department": competition.department or "",
        "date": competition.date.isoformat() if competition.date else "",
    }


def _safe_match_one(
    competition: ScrapedCompetition,
    store: CandidateStore,
    config: MatchingConfig,
    dedup: ProposalDeduplicator,
) -> MatchOutcome:
    try:
        return match_one(competition, store, config, dedup)
    except InvalidRecordError as exc:
        return MatchOutcome(competition, error_kind="invalid_record", error=str(exc))
    except RetrievalError as exc:
        log.warning("retrieval failed for %r: %s", competition.name, exc)
        return MatchOutcome(competition, error_kind="retrieval_error", error=str(exc))
    except Exception as exc:
        log.exception("scoring failed for %r", competition.name)
        return MatchOutcome(competition, error_kind="scoring_error", error=str(exc))


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_match_batch(
    competitions: Sequence[ScrapedCompetition],
    store: CandidateStore,
    config: MatchingConfig | None = None,
    rejects: RejectWriter | None = None,
    max_workers: int = 1,
    dedup: ProposalDeduplicator | None = None,
    counters: BatchCounters | None = None,
) -> tuple[list[MatchOutcome], BatchCounters]:
    """Match every competition; return outcomes in input order plus counters.

    Args:
        competitions: Scraped competitions (already parsed).
        store: Candidate store; must tolerate concurrent calls when
               max_workers > 1.
        config: Matching configuration (defaults when None).
        rejects: Failed records are written here with their error kind.
        max_workers: Size of the thread pool; 1 runs sequentially.
        dedup: Shared deduplicator; a fresh one is used when None.
        counters: Counters to add to (e.g. already holding reader counts).
    """
    config = config or MatchingConfig()
    if dedup is None:
        dedup = ProposalDeduplicator()
    ctrs = counters if counters is not None else BatchCounters()

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(
                pool.map(lambda c: _safe_match_one(c, store, config, dedup), competitions)
            )
    else:
        outcomes = [_safe_match_one(c, store, config, dedup) for c in competitions]

    for outcome in outcomes:
        _tally(ctrs, outcome)
        if not outcome.ok and rejects is not None:
            rejects.write(
                _competition_row(outcome.competition),
                f"{outcome.error_kind}:{outcome.error}",
            )

    return outcomes, ctrs


def build_batch_report(ctrs: BatchCounters, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Competition Matching Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  rows read:               {ctrs.rows_read}",
        f"  rows rejected:           {ctrs.rows_rejected}",
        f"  competitions processed:  {ctrs.competitions_processed}",
        f"    → exact matches:       {ctrs.exact_matches}",
        f"    → fuzzy matches:       {ctrs.fuzzy_matches}",
        f"    → no match:            {ctrs.no_matches}",
        "  proposals:",
        f"    → edition updates:     {ctrs.proposals_edition_update}",
        f"    → event updates:       {ctrs.proposals_event_update}",
        f"    → new events:          {ctrs.proposals_new_event}",
        f"    → duplicates skipped:  {ctrs.duplicate_proposals}",
        f"  races matched:           {ctrs.races_matched}",
        f"  races to create:         {ctrs.races_unmatched}",
        f"Invalid records:           {ctrs.invalid_records}",
        f"Retrieval errors:          {ctrs.retrieval_errors}",
        f"Scoring errors:            {ctrs.scoring_errors}",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
