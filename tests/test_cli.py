"""
Tests for the daily-facts command line entry point.
"""

from __future__ import annotations

import json

import pytest

from daily_facts.__main__ import build_parser, build_sender, main
from daily_facts.delivery.sender import LogSender, WebhookSender
from daily_facts.delivery.service import JOB_SCHEDULES


class TestParser:
    def test_tick_accepts_known_jobs(self):
        parser = build_parser()

        for name in JOB_SCHEDULES:
            args = parser.parse_args(["tick", name])
            assert args.command == "tick"
            assert args.job == name

    def test_tick_rejects_unknown_job(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["tick", "no-such-job"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "daily-facts" in capsys.readouterr().out


class TestBuildSender:
    def test_log_sender_without_webhook(self, monkeypatch):
        monkeypatch.delenv("DAILY_FACTS_WEBHOOK_URL", raising=False)
        assert isinstance(build_sender(), LogSender)

    def test_webhook_sender_when_configured(self, monkeypatch):
        monkeypatch.setenv("DAILY_FACTS_WEBHOOK_URL", "https://push.example.com/notify")
        monkeypatch.setenv("DAILY_FACTS_WEBHOOK_TIMEOUT_SECONDS", "3")

        sender = build_sender()

        assert isinstance(sender, WebhookSender)
        assert sender.webhook_url == "https://push.example.com/notify"
        assert sender.timeout_seconds == 3.0


class TestCommands:
    def test_status(self, mock_settings, temp_db_path, capsys):
        assert main(["status"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["db_path"] == str(temp_db_path)
        assert output["schema_version"] >= 1
        assert set(output["jobs"]) == set(JOB_SCHEDULES)

    def test_tick(self, mock_settings, monkeypatch, capsys):
        monkeypatch.delenv("DAILY_FACTS_WEBHOOK_URL", raising=False)

        assert main(["tick", "update-user-streaks"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["job"] == "update-user-streaks"
        assert output["success"] is True
