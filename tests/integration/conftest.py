"""Integration test fixtures.

Applies the reference schema migration against an ephemeral PostgreSQL
database provided by pytest-postgresql before each integration test.
Tests are skipped when no PostgreSQL server binaries are installed.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_reference_schema.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(request):
    """Return (connection, dsn) with the reference schema applied.

    Function scope: every test starts from an empty schema.
    """
    if shutil.which("pg_config") is None and shutil.which("pg_ctl") is None:
        pytest.skip("PostgreSQL server binaries not installed")
    postgresql = request.getfixturevalue("postgresql")
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        try:
            conn.execute("CREATE EXTENSION IF NOT EXISTS unaccent")
        except psycopg.Error as exc:
            pytest.skip(f"unaccent extension unavailable: {exc}")
        for migration in MIGRATIONS:
            sql = migration.read_text(encoding="utf-8")
            conn.execute(sql)
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

def insert_event(conn, name, city, department_code, slug=None):
    return conn.execute(
        "INSERT INTO event (name, slug, city, department_code) VALUES (%s, %s, %s, %s) RETURNING id",
        (name, slug, city, department_code),
    ).fetchone()[0]


def insert_edition(conn, event_id, start_date, year=None):
    return conn.execute(
        "INSERT INTO edition (event_id, year, start_date) VALUES (%s, %s, %s) RETURNING id",
        (event_id, year or start_date.year, start_date),
    ).fetchone()[0]


def insert_race(conn, edition_id, name, **distances):
    cols = ["edition_id", "name", *distances.keys()]
    placeholders = ", ".join(["%s"] * len(cols))
    return conn.execute(
        f"INSERT INTO race ({', '.join(cols)}) VALUES ({placeholders}) RETURNING id",
        (edition_id, name, *distances.values()),
    ).fetchone()[0]


@pytest.fixture
def seed():
    """Expose the insert helpers to tests."""

    class _Seed:
        event = staticmethod(insert_event)
        edition = staticmethod(insert_edition)
        race = staticmethod(insert_race)

    return _Seed
