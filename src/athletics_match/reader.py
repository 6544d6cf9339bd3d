"""athletics_match.reader

CSV input adapter for the scraped federation calendar.

competitions CSV columns:
  competition_id, name, city, department, date        (required header)
  level, organizer_email, organizer_website           (optional)

races CSV columns (optional file):
  competition_id, name, distance                      (required header)
  elevation, start_time                               (optional)

A start_time is an ISO datetime or a bare time of day ("08:00", "8h30"); the
latter is anchored on the competition date when races are attached.

Dates are ISO (2025-07-19) or federation style (19/07/2025).  Distances are
meters unless suffixed with "km".  Rows with unparseable values go to the
reject file; rows missing a name or date are passed on, and the matcher
rejects them as invalid records.
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import replace
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from athletics_match.batch import BatchCounters
from athletics_match.models import RaceRecord, ScrapedCompetition
from athletics_match.normalize import (
    normalize_space,
    parse_date,
    parse_distance_meters,
    parse_numeric,
    trim,
)
from athletics_match.shared import RejectWriter, normalize_headers

log = logging.getLogger(__name__)

REQUIRED_COMPETITION_COLS = {"competition_id", "name", "city", "department", "date"}
REQUIRED_RACE_COLS = {"competition_id", "name", "distance"}


class InputFileError(ValueError):
    """Raised when an input file is missing required columns."""


def _check_header(fieldnames: list[str] | None, required: set[str], label: str) -> None:
    norm_fields = {k.strip().lower() for k in fieldnames or []}
    missing = required - norm_fields
    if missing:
        raise InputFileError(f"{label} file missing required columns: {sorted(missing)}")


# "08:00", "08:00:00", "8h30"
_TIME_OF_DAY_RE = re.compile(r"^(\d{1,2})[:hH](\d{2})(?::(\d{2}))?$")


def _parse_start_time(value: str | None) -> datetime | time | None:
    """Parse an ISO datetime or a bare time of day; raise ValueError otherwise."""
    v = trim(value)
    if v is None:
        return None
    m = _TIME_OF_DAY_RE.match(v)
    if m:
        return time(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))
    return datetime.fromisoformat(v)


def _on_competition_date(race: RaceRecord, on_date: date | None) -> RaceRecord:
    """Anchor a bare time of day on the competition date (dropped without a date)."""
    if not isinstance(race.start_time, time):
        return race
    if on_date is None:
        return replace(race, start_time=None)
    return replace(race, start_time=datetime.combine(on_date, race.start_time))


def _race_reject_row(competition_id: str, race: RaceRecord) -> dict[str, Any]:
    return {
        "competition_id": competition_id,
        "name": race.name,
        "distance": "" if race.distance_meters is None else race.distance_meters,
        "elevation": "" if race.elevation_meters is None else race.elevation_meters,
        "start_time": "" if race.start_time is None else race.start_time.isoformat(),
    }


# ---------------------------------------------------------------------------
# Races
# ---------------------------------------------------------------------------

def parse_race_row(
    row: dict[str, str],
    rejects: RejectWriter,
    counters: BatchCounters,
) -> tuple[str, RaceRecord] | None:
    """Parse one races CSV row into (competition_id, RaceRecord).

    Returns None and writes to rejects on validation failure.
    """
    competition_id = trim(row.get("competition_id"))
    name = normalize_space(row.get("name"))
    for col, val in [("competition_id", competition_id), ("name", name)]:
        if not val:
            counters.rows_rejected += 1
            rejects.write(row, f"missing_required_column:{col}")
            return None

    raw_distance = trim(row.get("distance"))
    distance = parse_distance_meters(raw_distance)
    if raw_distance is not None and distance is None:
        counters.rows_rejected += 1
        rejects.write(row, f"invalid_distance:{raw_distance!r}")
        return None

    raw_elevation = trim(row.get("elevation"))
    elevation = parse_numeric(raw_elevation)
    if raw_elevation is not None and elevation is None:
        counters.rows_rejected += 1
        rejects.write(row, f"invalid_elevation:{raw_elevation!r}")
        return None

    try:
        start_time = _parse_start_time(row.get("start_time"))
    except ValueError:
        counters.rows_rejected += 1
        rejects.write(row, f"invalid_start_time:{row.get('start_time')!r}")
        return None

    return competition_id, RaceRecord(  # type: ignore[return-value]
        name=name,  # type: ignore[arg-type]
        distance_meters=distance,
        elevation_meters=elevation,
        start_time=start_time,
    )


def load_races(
    path: Path,
    rejects: RejectWriter,
    counters: BatchCounters,
) -> dict[str, list[RaceRecord]]:
    """Parse the races file; return {competition_id: [RaceRecord, ...]}."""
    races: dict[str, list[RaceRecord]] = {}
    with path.open(encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        _check_header(reader.fieldnames, REQUIRED_RACE_COLS, "races")
        for raw_row in reader:
            row = normalize_headers(raw_row)
            parsed = parse_race_row(row, rejects, counters)
            if parsed is None:
                continue
            competition_id, race = parsed
            races.setdefault(competition_id, []).append(race)
    return races


# ---------------------------------------------------------------------------
# Competitions
# ---------------------------------------------------------------------------

def parse_competition_row(
    row: dict[str, str],
    rejects: RejectWriter,
    counters: BatchCounters,
    races_by_competition: dict[str, list[RaceRecord]] | None = None,
) -> ScrapedCompetition | None:
    """Parse one competitions CSV row.

    A blank name or date is kept (None/"") so that the matcher reports the
    record as invalid; a non-blank date that cannot be parsed is rejected here.
    """
    competition_id = trim(row.get("competition_id"))
    raw_date = trim(row.get("date"))
    on_date = parse_date(raw_date)
    if raw_date is not None and on_date is None:
        counters.rows_rejected += 1
        rejects.write(row, f"invalid_date:{raw_date!r}")
        return None

    races = (races_by_competition or {}).get(competition_id or "", [])
    return ScrapedCompetition(
        name=normalize_space(row.get("name")) or "",
        city=normalize_space(row.get("city")) or "",
        department=trim(row.get("department")),
        date=on_date,
        source_id=competition_id,
        level=normalize_space(row.get("level")),
        organizer_email=trim(row.get("organizer_email")),
        organizer_website=trim(row.get("organizer_website")),
        races=tuple(_on_competition_date(r, on_date) for r in races),
    )


def load_competitions(
    path: Path,
    rejects: RejectWriter,
    counters: BatchCounters,
    races_by_competition: dict[str, list[RaceRecord]] | None = None,
) -> list[ScrapedCompetition]:
    """Parse the competitions file into ScrapedCompetition records.

    Races whose competition_id matches no accepted competition row are
    written to rejects: `unknown_competition_id` when the id is absent from
    the file, `competition_rejected` when its competition row was rejected.
    """
    records: list[ScrapedCompetition] = []
    ids_read: set[str] = set()
    with path.open(encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        _check_header(reader.fieldnames, REQUIRED_COMPETITION_COLS, "competitions")
        for raw_row in reader:
            row = normalize_headers(raw_row)
            counters.rows_read += 1
            ids_read.add(trim(row.get("competition_id")) or "")
            rec = parse_competition_row(row, rejects, counters, races_by_competition)
            if rec is not None:
                records.append(rec)
    log.info("loaded %d competitions from %s", len(records), path)

    claimed = {r.source_id or "" for r in records}
    for competition_id, races in (races_by_competition or {}).items():
        if competition_id in claimed:
            continue
        reason = "competition_rejected" if competition_id in ids_read else "unknown_competition_id"
        for race in races:
            counters.rows_rejected += 1
            rejects.write(_race_reject_row(competition_id, race), f"{reason}:{competition_id}")
        counters.warnings.append(
            f"{len(races)} races dropped for competition_id {competition_id!r} ({reason})"
        )
        log.warning("%d races dropped for competition_id %r (%s)", len(races), competition_id, reason)
    return records
