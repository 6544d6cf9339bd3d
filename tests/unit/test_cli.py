"""Unit tests for athletics_match.cli (store and connection replaced by fakes)."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from athletics_match import cli

COMPETITIONS = (
    "competition_id,name,city,department,date\n"
    "c1,34ème Corrida des Bleuets,Saint-Malo,035,2025-06-14\n"
    "c2,Trail des Loups,Annecy,74,2025-06-21\n"
)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "competitions.csv").write_text(COMPETITIONS, encoding="utf-8")
    return tmp_path


@pytest.fixture
def use_store(request):
    """Patch the connection and the store; returns an installer taking the fake store."""
    conn = MagicMock()

    def install(store):
        for target, value in [
            ("athletics_match.cli.psycopg.connect", conn),
            ("athletics_match.cli.PostgresCandidateStore", store),
        ]:
            patcher = patch(target, return_value=value)
            patcher.start()
            request.addfinalizer(patcher.stop)
        return conn

    return install


def _invoke(*extra):
    args = [
        "--db-dsn", "postgresql://unused",
        "--competitions-path", "competitions.csv",
        "--run-id", "test-run",
        *extra,
    ]
    return CliRunner().invoke(cli.main, args)


class TestCli:
    def test_run_writes_outcomes_and_report(self, workdir, use_store, store_factory, event_factory):
        store = store_factory([
            event_factory(1, "Corrida des Bleuets", "Saint-Malo", "35", date(2025, 6, 14)),
        ])
        conn = use_store(store)
        result = _invoke()
        assert result.exit_code == 0, result.output
        assert "Competition Matching Report" in result.output
        conn.close.assert_called_once()

        outcomes = (workdir / "artifacts" / "outcomes" / "test-run.csv").read_text(encoding="utf-8")
        assert "EDITION_UPDATE" in outcomes
        assert "NEW_EVENT" in outcomes

        report = json.loads((workdir / "artifacts" / "reports" / "test-run.json").read_text())
        assert report["counters"]["exact_matches"] == 1
        assert report["counters"]["proposals_new_event"] == 1
        assert report["config"]["similarity_threshold"] == 0.75

    def test_retrieval_errors_exit_non_zero(self, workdir, use_store, store_factory):
        use_store(store_factory([], error=ConnectionError("timeout")))
        result = _invoke()
        assert result.exit_code == 1
        assert (workdir / "artifacts" / "rejects" / "athletics_match_rejects.csv").exists()

    def test_dry_run_writes_no_outcomes(self, workdir, use_store, store_factory):
        use_store(store_factory([], error=ConnectionError("timeout")))
        result = _invoke("--dry-run")
        assert result.exit_code == 0, result.output
        assert "DRY RUN" in result.output
        assert not (workdir / "artifacts" / "outcomes").exists()
        assert (workdir / "artifacts" / "reports" / "test-run.json").exists()

    def test_config_file_applied(self, workdir, use_store, store_factory):
        (workdir / "strict.yml").write_text("similarity_threshold: 0.9\n", encoding="utf-8")
        use_store(store_factory([]))
        result = _invoke("--config", "strict.yml")
        assert result.exit_code == 0, result.output
        report = json.loads((workdir / "artifacts" / "reports" / "test-run.json").read_text())
        assert report["config"]["similarity_threshold"] == 0.9

    def test_invalid_config_exits(self, workdir, use_store, store_factory):
        (workdir / "bad.yml").write_text("similarity_threshold: 2\n", encoding="utf-8")
        use_store(store_factory([]))
        result = _invoke("--config", "bad.yml")
        assert result.exit_code == 1
        assert "invalid config" in result.output

    def test_bad_input_header_exits(self, workdir, use_store, store_factory):
        (workdir / "competitions.csv").write_text("competition_id,name\nc1,Trail\n", encoding="utf-8")
        use_store(store_factory([]))
        result = _invoke()
        assert result.exit_code == 1
        assert "missing required columns" in result.output

    @pytest.mark.parametrize("config_text, expected", [
        ("", 10),
        ("retrieval_timeout_seconds: 0.5\n", 1),
    ])
    def test_connect_timeout_follows_config(self, workdir, store_factory, config_text, expected):
        (workdir / "timeout.yml").write_text(config_text, encoding="utf-8")
        with patch("athletics_match.cli.psycopg.connect") as connect, patch(
            "athletics_match.cli.PostgresCandidateStore", return_value=store_factory([])
        ):
            result = _invoke("--config", "timeout.yml")
        assert result.exit_code == 0, result.output
        assert connect.call_args.kwargs["connect_timeout"] == expected
        assert connect.call_args.kwargs["autocommit"] is True
