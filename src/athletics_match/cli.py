"""athletics_match.cli

CLI entrypoint: match a scraped federation calendar against the reference
store and write one review proposal per competition.

Usage:
    python -m athletics_match.cli \\
        --db-dsn "$DB_DSN" \\
        --competitions-path "rawEvidence/ffa_competitions_2025.csv" \\
        --races-path "rawEvidence/ffa_races_2025.csv" \\
        --config config/matching.yml \\
        --output-path "artifacts/outcomes/ffa_2025.csv"

Exit status is 1 when the input files are unusable, when the store cannot
be reached, or when any record hit a retrieval error (unless --dry-run).
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click
import psycopg

from athletics_match.batch import BatchCounters, build_batch_report, run_match_batch
from athletics_match.candidates import PostgresCandidateStore
from athletics_match.config import (
    DEFAULT_CONFIG_PATH,
    MatchingConfig,
    MatchingConfigValidationError,
    load_matching_config,
)
from athletics_match.reader import InputFileError, load_competitions, load_races
from athletics_match.shared import RejectWriter, write_outcomes_csv, write_run_report


@click.command()
@click.option("--db-dsn", envvar="DB_DSN", required=True, help="PostgreSQL DSN (or DB_DSN env var)")
@click.option("--competitions-path", required=True, type=click.Path(exists=True, dir_okay=False), help="Scraped competitions CSV")
@click.option("--races-path", default=None, type=click.Path(exists=True, dir_okay=False), help="Scraped races CSV")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help=f"Matching config YAML (default: {DEFAULT_CONFIG_PATH} if present)",
)
@click.option("--output-path", default=None, type=click.Path(), help="Outcomes CSV (default: ./artifacts/outcomes/{run_id}.csv)")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/athletics_match_rejects.csv",
    show_default=True,
    type=click.Path(),
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option("--max-workers", default=1, type=click.IntRange(min=1), show_default=True)
@click.option("--dry-run", is_flag=True, default=False, help="Match and report only; no outcomes CSV")
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def main(
    db_dsn: str,
    competitions_path: str,
    races_path: str | None,
    config_path: str | None,
    output_path: str | None,
    rejects_path: str,
    run_id: str | None,
    max_workers: int,
    dry_run: bool,
    log_level: str,
) -> None:
    """Match scraped competitions against the reference event store."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()
    counters = BatchCounters()
    rejects = RejectWriter(Path(rejects_path))

    click.echo(f"[{run_id}] Starting match run (dry_run={dry_run})")

    try:
        if config_path:
            config = load_matching_config(Path(config_path))
        elif DEFAULT_CONFIG_PATH.exists():
            config = load_matching_config(DEFAULT_CONFIG_PATH)
        else:
            config = MatchingConfig()
    except (MatchingConfigValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid config: {exc}", err=True)
        sys.exit(1)

    try:
        races = load_races(Path(races_path), rejects, counters) if races_path else {}
        competitions = load_competitions(Path(competitions_path), rejects, counters, races)
    except InputFileError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        rejects.close()
        sys.exit(1)

    click.echo(f"[{run_id}] {len(competitions)} competitions to match")

    try:
        conn = psycopg.connect(
            db_dsn,
            autocommit=True,
            connect_timeout=max(1, int(config.retrieval_timeout_seconds)),
        )
    except psycopg.Error as exc:
        click.echo(f"[{run_id}] FATAL: cannot connect to the reference store: {exc}", err=True)
        rejects.close()
        sys.exit(1)

    try:
        store = PostgresCandidateStore(conn, timeout_seconds=config.retrieval_timeout_seconds)
        outcomes, counters = run_match_batch(
            competitions,
            store,
            config=config,
            rejects=rejects,
            max_workers=max_workers,
            counters=counters,
        )
    finally:
        conn.close()
        rejects.close()

    click.echo(build_batch_report(counters, dry_run=dry_run))

    source_paths = {
        "competitions_path": competitions_path,
        "races_path": races_path or "",
        "rejects_path": rejects_path,
    }
    if not dry_run:
        out_path = Path(output_path or f"./artifacts/outcomes/{run_id}.csv")
        written = write_outcomes_csv(out_path, (o.to_row() for o in outcomes))
        click.echo(f"[{run_id}] {written} outcomes written to {out_path}")
        source_paths["output_path"] = str(out_path)
    else:
        click.echo(f"[{run_id}] DRY RUN — no outcomes written.")

    report_path = write_run_report(
        run_id, started_at, dry_run, source_paths, counters, config.to_dict()
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if counters.retrieval_errors > 0 and not dry_run:
        click.echo(
            f"[{run_id}] {counters.retrieval_errors} retrieval errors — affected records deferred.",
            err=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
