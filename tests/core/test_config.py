"""
Tests for centralized configuration module.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest import mock

import pytest
from pydantic import ValidationError

from daily_facts.core.config import (
    FactsSettings,
    get_settings,
    is_debug_enabled,
    is_retry_disabled,
    reset_settings,
)


class TestFactsSettings:
    """Test FactsSettings class."""

    def test_default_values(self):
        """Test that default values are correct."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = FactsSettings()

            assert settings.log_level == "WARNING"
            assert settings.debug is False
            assert settings.log_json is False
            assert settings.database_path is None
            assert settings.profile_cache_ttl_seconds == 1800
            assert settings.reference_timezone == "UTC"
            assert settings.distribution_batch_size == 50
            assert settings.distribution_batch_pause_seconds == 1.0
            assert settings.retry_batch_size == 50
            assert settings.max_notification_retries == 3
            assert settings.retry_base_minutes == 5
            assert settings.retry_resend is False
            assert settings.notification_retention_days == 30
            assert settings.webhook_url is None
            assert settings.no_retry is False

    def test_log_level_case_insensitive(self):
        """Test log level is normalized to uppercase."""
        with mock.patch.dict(os.environ, {"DAILY_FACTS_LOG_LEVEL": "debug"}, clear=True):
            settings = FactsSettings()
            assert settings.log_level == "DEBUG"
            assert settings.log_level_int == logging.DEBUG

    def test_invalid_log_level_rejected(self):
        with mock.patch.dict(os.environ, {"DAILY_FACTS_LOG_LEVEL": "LOUD"}, clear=True):
            with pytest.raises(ValidationError):
                FactsSettings()

    def test_debug_flag(self):
        """DAILY_FACTS_DEBUG flag enables debug mode."""
        with mock.patch.dict(os.environ, {"DAILY_FACTS_DEBUG": "1"}, clear=True):
            settings = FactsSettings()
            assert settings.debug is True
            assert settings.effective_log_level == "DEBUG"

    def test_debug_flag_does_not_override_explicit_level(self):
        env = {"DAILY_FACTS_LOG_LEVEL": "ERROR", "DAILY_FACTS_DEBUG": "1"}
        with mock.patch.dict(os.environ, env, clear=True):
            settings = FactsSettings()
            assert settings.effective_log_level == "ERROR"

    def test_scheduling_overrides(self):
        env = {
            "DAILY_FACTS_REFERENCE_TIMEZONE": "Europe/Berlin",
            "DAILY_FACTS_DISTRIBUTION_BATCH_SIZE": "10",
            "DAILY_FACTS_RETRY_RESEND": "true",
            "DAILY_FACTS_NO_RETRY": "1",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = FactsSettings()
            assert settings.reference_timezone == "Europe/Berlin"
            assert settings.distribution_batch_size == 10
            assert settings.retry_resend is True
            assert settings.no_retry is True

    def test_batch_size_must_be_positive(self):
        with mock.patch.dict(os.environ, {"DAILY_FACTS_DISTRIBUTION_BATCH_SIZE": "0"}, clear=True):
            with pytest.raises(ValidationError):
                FactsSettings()

    def test_db_path_defaults_under_cache_dir(self):
        """Database lives in instance_root/cache/ unless overridden."""
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = FactsSettings()
            assert settings.cache_dir == settings.instance_root / "cache"
            assert settings.db_path == settings.instance_root / "cache" / "daily_facts.db"

    def test_database_path_override(self):
        with mock.patch.dict(
            os.environ, {"DAILY_FACTS_DATABASE_PATH": "/data/facts.db"}, clear=True
        ):
            settings = FactsSettings()
            assert settings.db_path == Path("/data/facts.db")


class TestSettingsSingleton:
    """Test get_settings caching and reset."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_reloads_environment(self, monkeypatch):
        monkeypatch.setenv("DAILY_FACTS_LOG_LEVEL", "ERROR")
        reset_settings()
        assert get_settings().log_level == "ERROR"

        monkeypatch.setenv("DAILY_FACTS_LOG_LEVEL", "DEBUG")
        assert get_settings().log_level == "ERROR"

        reset_settings()
        assert get_settings().log_level == "DEBUG"
        assert is_debug_enabled() is True

    def test_is_retry_disabled(self, monkeypatch):
        monkeypatch.setenv("DAILY_FACTS_NO_RETRY", "true")
        reset_settings()
        assert is_retry_disabled() is True
