"""
Tests for the brokerdb CLI commands.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from brokerdb import __version__
from brokerdb.cli.app import app

runner = CliRunner()

SRC_DIR = Path(__file__).resolve().parents[2] / "src"


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep log lines out of command output; events still reach ``log_events``."""
    monkeypatch.setattr("brokerdb.cli.app.configure_logging", lambda **kwargs: None)


class TestRootApp:
    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "migrate" in result.output
        assert "status" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"brokerdb {__version__}" in result.output


class TestMigrate:
    def test_applies_all(self, database_url: str):
        result = runner.invoke(app, ["migrate", "--database", database_url, "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload == {"success": True, "start": 0, "applied": [0, 1, 2], "last_applied": 2}

    def test_second_run_is_up_to_date(self, database_url: str):
        runner.invoke(app, ["migrate", "-d", database_url])
        result = runner.invoke(app, ["migrate", "-d", database_url])

        assert result.exit_code == 0
        assert "Up to date" in result.output

    def test_reads_database_from_env(self, database_url: str, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("BROKERDB_DATABASE_URL", database_url)
        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0
        assert "Applied 3 migration(s)" in result.output

    def test_config_error_exits_nonzero(
        self, database_url: str, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("BROKERDB_SERVICE_ACCOUNT_JSON", "{not json")
        result = runner.invoke(app, ["migrate", "-d", database_url, "--json"])

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload["success"] is False
        assert payload["error"]["error_type"] == "InvalidConfigError"


class TestStatus:
    def test_all_pending_on_fresh_database(self, database_url: str):
        result = runner.invoke(app, ["status", "-d", database_url, "--json"])

        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [row["migration_id"] for row in rows] == [0, 1, 2]
        assert all(row["applied_at"] is None for row in rows)

    def test_applied_after_migrate(self, database_url: str):
        runner.invoke(app, ["migrate", "-d", database_url])
        result = runner.invoke(app, ["status", "-d", database_url, "--json"])

        rows = json.loads(result.stdout)
        assert all(row["applied_at"] is not None for row in rows)

    def test_table_output(self, database_url: str):
        result = runner.invoke(app, ["status", "-d", database_url])

        assert result.exit_code == 0
        assert "pending" in result.output
        assert "create broker tables" in result.output

    def test_invalid_database_url(self):
        result = runner.invoke(app, ["status", "-d", "not a database url", "--json"])

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload["error"]["error_type"] == "DatabaseError"


class TestMigrateErrors:
    def test_invalid_database_url(self):
        result = runner.invoke(app, ["migrate", "-d", "not a database url", "--json"])

        assert result.exit_code == 1
        payload = json.loads(result.stdout)
        assert payload["success"] is False
        assert payload["error"]["error_type"] == "DatabaseError"


@pytest.mark.integration
class TestProcess:
    """The real entry point, with logging configured as in production."""

    def _run(self, tmp_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
        env = {k: v for k, v in os.environ.items() if not k.startswith("BROKERDB_")}
        env["PYTHONPATH"] = os.pathsep.join(
            filter(None, [str(SRC_DIR), env.get("PYTHONPATH")])
        )
        return subprocess.run(
            [sys.executable, "-m", "brokerdb", *args],
            capture_output=True,
            text=True,
            cwd=tmp_path,
            env=env,
            timeout=120,
        )

    def test_migrate_json_stdout_is_only_the_report(self, tmp_path: Path, database_url: str):
        result = self._run(tmp_path, "migrate", "-d", database_url, "--json")

        assert result.returncode == 0, result.stderr
        assert json.loads(result.stdout) == {
            "success": True,
            "start": 0,
            "applied": [0, 1, 2],
            "last_applied": 2,
        }
        assert "migration.run.completed" in result.stderr

    def test_status_json_after_migrate(self, tmp_path: Path, database_url: str):
        self._run(tmp_path, "migrate", "-d", database_url)
        result = self._run(tmp_path, "status", "-d", database_url, "--json")

        assert result.returncode == 0, result.stderr
        rows = json.loads(result.stdout)
        assert [row["migration_id"] for row in rows] == [0, 1, 2]
