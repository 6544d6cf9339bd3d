"""athletics_match.candidates

Candidate retrieval: builds a bounded set of stored events that could
correspond to one scraped competition.

Retrieval runs an ordered list of passes (RETRIEVAL_PASSES), each one a
query against the CandidateStore restricted to events with an edition within
±DATE_WINDOW_DAYS of the scraped date.  IDs found by earlier passes are
excluded from later ones, and the total is capped at CANDIDATE_LIMIT.

Store failures surface as RetrievalError; an empty list always means the
store answered and nothing matched.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Protocol, Sequence

import psycopg

from athletics_match.models import CandidateEvent, Edition, EditionRace
from athletics_match.normalize import (
    normalize_department_code,
    normalize_text,
    significant_words,
    strip_edition_markers,
    trim,
)

log = logging.getLogger(__name__)

DATE_WINDOW_DAYS = 90
CANDIDATE_LIMIT = 100


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RetrievalError(Exception):
    """Raised when the candidate store could not be queried (unreachable, timeout)."""


class CandidateRowError(ValueError):
    """Raised when a store row cannot be turned into a CandidateEvent."""


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CandidateQuery:
    """One retrieval query.

    The text filter matches events whose name contains any of `name_words`
    OR whose city contains any of `city_words`; it is omitted when both are
    empty.  `department`, when set, restricts to that department code.
    """

    window_start: date
    window_end: date
    name_words: tuple[str, ...] = ()
    city_words: tuple[str, ...] = ()
    department: str | None = None
    exclude_ids: frozenset = frozenset()
    limit: int = CANDIDATE_LIMIT

    @property
    def has_text_filter(self) -> bool:
        return bool(self.name_words or self.city_words)


class CandidateStore(Protocol):
    def query_candidates(self, query: CandidateQuery) -> list[CandidateEvent]:
        """Return events matching the query, each with its editions in the window."""
        ...

    def fetch_edition_races(self, edition_id: Any) -> list[EditionRace]:
        ...


# ---------------------------------------------------------------------------
# Retrieval passes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetrievalPass:
    """Parameters of one escalating retrieval pass.

    run_below: only run when fewer than this many candidates were found by
    earlier passes (None = always run).
    require_text: skip the pass when it would carry no text filter.
    """

    name: str
    use_department: bool
    use_name_words: bool
    use_city_words: bool
    run_below: int | None = None
    require_text: bool = False


RETRIEVAL_PASSES: tuple[RetrievalPass, ...] = (
    # Same department, any significant word of the name.  Degrades to
    # name-only when the department is unknown.
    RetrievalPass(
        name="department_name",
        use_department=True,
        use_name_words=True,
        use_city_words=False,
    ),
    # Any department, any significant word of the name or of the city.
    RetrievalPass(
        name="widened_name_or_city",
        use_department=False,
        use_name_words=True,
        use_city_words=True,
        run_below=10,
        require_text=True,
    ),
)


def date_window(on_date: date) -> tuple[date, date]:
    delta = timedelta(days=DATE_WINDOW_DAYS)
    return on_date - delta, on_date + delta


def build_query(
    step: RetrievalPass,
    name_words: Sequence[str],
    city_words: Sequence[str],
    department: str | None,
    on_date: date,
    exclude_ids: frozenset,
    limit: int,
) -> CandidateQuery | None:
    """Return the CandidateQuery for one pass, or None if the pass is skipped."""
    query_name_words = tuple(name_words) if step.use_name_words else ()
    query_city_words = tuple(city_words) if step.use_city_words else ()
    if step.require_text and not (query_name_words or query_city_words):
        return None
    window_start, window_end = date_window(on_date)
    return CandidateQuery(
        window_start=window_start,
        window_end=window_end,
        name_words=query_name_words,
        city_words=query_city_words,
        department=department if step.use_department else None,
        exclude_ids=exclude_ids,
        limit=limit,
    )


def find_candidates(
    store: CandidateStore,
    name: str,
    city: str | None,
    department: str | None,
    on_date: date,
    passes: Sequence[RetrievalPass] = RETRIEVAL_PASSES,
    limit: int = CANDIDATE_LIMIT,
) -> list[CandidateEvent]:
    """Run the retrieval passes in order and return the accumulated candidates.

    Raises:
        RetrievalError: if any pass fails.  No partial candidate set is
            returned in that case.
    """
    name_words = significant_words(normalize_text(strip_edition_markers(name)))
    city_words = significant_words(normalize_text(city))
    dept = normalize_department_code(department)

    found: list[CandidateEvent] = []
    seen: set[Any] = set()
    for step in passes:
        if step.run_below is not None and len(found) >= step.run_below:
            continue
        remaining = limit - len(found)
        if remaining <= 0:
            break
        query = build_query(
            step, name_words, city_words, dept, on_date, frozenset(seen), remaining
        )
        if query is None:
            log.debug("retrieval pass %s skipped: no text filter", step.name)
            continue
        try:
            events = store.query_candidates(query)
        except RetrievalError:
            raise
        except Exception as exc:
            raise RetrievalError(f"retrieval pass {step.name} failed: {exc}") from exc

        added = 0
        for event in events:
            if event.id in seen:
                continue
            seen.add(event.id)
            found.append(event)
            added += 1
            if len(found) >= limit:
                break
        log.debug("retrieval pass %s: %d new candidates", step.name, added)

    log.info(
        "retrieved %d candidates for %r (city=%r dept=%r date=%s)",
        len(found), name, city, dept, on_date,
    )
    return found


# ---------------------------------------------------------------------------
# Row validation
# ---------------------------------------------------------------------------

def _coerce_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise CandidateRowError(f"invalid edition date: {value!r}")


def _coerce_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    raise CandidateRowError(f"invalid numeric value: {value!r}")


def edition_from_row(row: dict[str, Any]) -> Edition:
    if row.get("id") is None:
        raise CandidateRowError("edition row missing id")
    start_date = _coerce_date(row.get("start_date"))
    year = row.get("year")
    if year is None:
        if start_date is None:
            raise CandidateRowError(f"edition {row['id']} has neither year nor start_date")
        year = start_date.year
    try:
        year = int(year)
    except (TypeError, ValueError) as exc:
        raise CandidateRowError(f"edition {row['id']} has invalid year {year!r}") from exc
    return Edition(id=row["id"], year=year, start_date=start_date)


def candidate_from_row(
    row: dict[str, Any],
    edition_rows: Sequence[dict[str, Any]] = (),
) -> CandidateEvent:
    """Validate one event row (plus its edition rows) into a CandidateEvent."""
    if row.get("id") is None:
        raise CandidateRowError("event row missing id")
    name = trim(row.get("name"))
    if name is None:
        raise CandidateRowError(f"event {row['id']} has no name")
    editions = tuple(edition_from_row(er) for er in edition_rows)
    return CandidateEvent(
        id=row["id"],
        name=name,
        city=trim(row.get("city")) or "",
        department=normalize_department_code(row.get("department_code")),
        editions=editions,
        slug=trim(row.get("slug")),
    )


def race_from_row(row: dict[str, Any]) -> EditionRace:
    if row.get("id") is None:
        raise CandidateRowError("race row missing id")
    return EditionRace(
        id=row["id"],
        name=trim(row.get("name")) or "",
        distance_meters=_coerce_float(row.get("distance_meters")),
        run_distance_meters=_coerce_float(row.get("run_distance_meters")),
        walk_distance_meters=_coerce_float(row.get("walk_distance_meters")),
        swim_distance_meters=_coerce_float(row.get("swim_distance_meters")),
        bike_distance_meters=_coerce_float(row.get("bike_distance_meters")),
        elevation_meters=_coerce_float(row.get("positive_elevation_meters")),
        start_time=row.get("start_time"),
    )


# ---------------------------------------------------------------------------
# PostgreSQL store
# ---------------------------------------------------------------------------

_EVENT_COLS = "id, name, city, department_code, slug"
_EDITION_COLS = "id, event_id, year, start_date"
_RACE_COLS = (
    "id, name, distance_meters, run_distance_meters, walk_distance_meters, "
    "swim_distance_meters, bike_distance_meters, positive_elevation_meters, start_time"
)


def _like_pattern(word: str) -> str:
    escaped = word.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _col_names(cols: str) -> list[str]:
    return [c.strip() for c in cols.split(",")]


class PostgresCandidateStore:
    """CandidateStore backed by the reference schema (migrations/0001).

    The connection is owned by the caller; queries from several threads are
    serialized on an internal lock.
    """

    def __init__(self, conn: psycopg.Connection, timeout_seconds: float = 10.0) -> None:
        self._conn = conn
        self._timeout_ms = int(timeout_seconds * 1000)
        self._lock = threading.Lock()

    def _fetch(self, sql: str, params: Sequence[Any]) -> list[tuple]:
        with self._lock:
            try:
                with self._conn.transaction():
                    self._conn.execute(
                        "SELECT set_config('statement_timeout', %s, true)",
                        (str(self._timeout_ms),),
                    )
                    return self._conn.execute(sql, params).fetchall()
            except psycopg.Error as exc:
                raise RetrievalError(f"candidate store query failed: {exc}") from exc

    def query_candidates(self, query: CandidateQuery) -> list[CandidateEvent]:
        clauses = [
            """EXISTS (
                SELECT 1 FROM edition ed
                WHERE ed.event_id = e.id
                  AND ed.start_date BETWEEN %s AND %s
            )"""
        ]
        params: list[Any] = [query.window_start, query.window_end]

        if query.department:
            clauses.append("e.department_code = %s")
            params.append(query.department)

        text_clauses = []
        if query.name_words:
            text_clauses.append("unaccent(e.name) ILIKE ANY(%s)")
            params.append([_like_pattern(w) for w in query.name_words])
        if query.city_words:
            text_clauses.append("unaccent(coalesce(e.city, '')) ILIKE ANY(%s)")
            params.append([_like_pattern(w) for w in query.city_words])
        if text_clauses:
            clauses.append("(" + " OR ".join(text_clauses) + ")")

        if query.exclude_ids:
            clauses.append("NOT (e.id = ANY(%s))")
            params.append(list(query.exclude_ids))

        params.append(query.limit)
        event_rows = self._fetch(
            f"""
            SELECT {_EVENT_COLS}
            FROM event e
            WHERE {" AND ".join(clauses)}
            ORDER BY e.id
            LIMIT %s
            """,
            params,
        )
        if not event_rows:
            return []

        events = [dict(zip(_col_names(_EVENT_COLS), r)) for r in event_rows]
        edition_rows = self._fetch(
            f"""
            SELECT {_EDITION_COLS}
            FROM edition
            WHERE event_id = ANY(%s)
              AND start_date BETWEEN %s AND %s
            ORDER BY start_date
            """,
            ([e["id"] for e in events], query.window_start, query.window_end),
        )
        editions_by_event: dict[Any, list[dict[str, Any]]] = {}
        for r in edition_rows:
            er = dict(zip(_col_names(_EDITION_COLS), r))
            editions_by_event.setdefault(er["event_id"], []).append(er)

        candidates: list[CandidateEvent] = []
        for row in events:
            try:
                candidates.append(
                    candidate_from_row(row, editions_by_event.get(row["id"], []))
                )
            except CandidateRowError as exc:
                log.warning("skipping malformed event row id=%s: %s", row.get("id"), exc)
        return candidates

    def fetch_edition_races(self, edition_id: Any) -> list[EditionRace]:
        rows = self._fetch(
            f"SELECT {_RACE_COLS} FROM race WHERE edition_id = %s ORDER BY id",
            (edition_id,),
        )
        races: list[EditionRace] = []
        for r in rows:
            row = dict(zip(_col_names(_RACE_COLS), r))
            try:
                races.append(race_from_row(row))
            except CandidateRowError as exc:
                log.warning("skipping malformed race row id=%s: %s", row.get("id"), exc)
        return races
