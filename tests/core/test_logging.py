"""Tests for brokerdb.core.logging."""

from __future__ import annotations

import json

import structlog

from brokerdb.core.logging import LogContext, configure_logging, get_logger


class TestConfigureLogging:
    def test_json_output_uses_ecs_field_names(self, capsys):
        configure_logging(level="INFO", json_format=True, service="broker")
        structlog.get_logger("brokerdb.test").info("migration.step.applied", migration_id=2)

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "migration.step.applied"
        assert payload["migration_id"] == 2
        assert payload["service.name"] == "broker"
        assert payload["log.level"] == "info"
        assert "@timestamp" in payload

    def test_logs_stay_off_stdout(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("brokerdb.quiet").info("migration.run.started")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "migration.run.started" in captured.err

    def test_level_filters_debug(self, capsys):
        configure_logging(level="INFO", json_format=True)
        structlog.get_logger("brokerdb.quiet").debug("transform.row.rewritten")
        assert "transform.row.rewritten" not in capsys.readouterr().err


class TestContext:
    def test_log_context_binds_and_unbinds(self):
        with LogContext(migration_id=1):
            assert structlog.contextvars.get_contextvars()["migration_id"] == 1
        assert "migration_id" not in structlog.contextvars.get_contextvars()

    def test_get_logger_emits_events(self, log_events):
        get_logger("brokerdb.ctx").info("migration.run.completed", applied=[0, 1])
        assert log_events == [
            {
                "event": "migration.run.completed",
                "applied": [0, 1],
                "logger_name": "brokerdb.ctx",
                "log_level": "info",
            }
        ]

    def test_json_output_carries_logger_name(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("brokerdb.named").info("cloudsql.lookup")

        payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert payload["logger_name"] == "brokerdb.named"
