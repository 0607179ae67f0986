"""
Daily Facts Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from daily_facts.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Data Paths:
    All data is stored in {instance_root}/cache/:
    - cache/daily_facts.db: SQLite repository

Environment Variables:
    DAILY_FACTS_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    DAILY_FACTS_DEBUG: Shorthand for DAILY_FACTS_LOG_LEVEL=DEBUG
    DAILY_FACTS_LOG_JSON: Output logs as JSON
    DAILY_FACTS_DATABASE_PATH: Override the SQLite database path
    DAILY_FACTS_REFERENCE_TIMEZONE: Scheduler reference time zone
    DAILY_FACTS_WEBHOOK_URL: Push gateway endpoint used by the webhook sender
    DAILY_FACTS_NO_RETRY: Disable transport retry logic (tenacity)
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """Search upward from this file for the directory holding pyproject.toml."""
    current = Path(__file__).resolve().parent
    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def _find_project_env_file() -> Path | None:
    """Return the project .env file if the project root has one."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. DAILY_FACTS_INSTANCE_ROOT environment variable
    2. Project root (directory containing pyproject.toml)
    3. Current working directory
    """
    override = os.environ.get("DAILY_FACTS_INSTANCE_ROOT")
    if override:
        return Path(override)
    return _find_project_root() or Path.cwd()


_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_instance_root()


class FactsSettings(BaseSettings):
    """
    Daily Facts configuration settings with validation.

    Environment variables are automatically loaded with the DAILY_FACTS_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="DAILY_FACTS_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for daily_facts components",
    )

    debug: bool = Field(
        default=False,
        description="Use DEBUG when log_level is left at its WARNING default",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    database_path: Optional[Path] = Field(
        default=None,
        description="Explicit SQLite database path",
    )

    profile_cache_ttl_seconds: int = Field(
        default=1800,
        ge=0,
        description="TTL for cached user profiles",
    )

    # =========================================================================
    # Scheduling
    # =========================================================================

    reference_timezone: str = Field(
        default="UTC",
        description="Time zone the scheduler's hour and calendar are evaluated in",
    )

    distribution_batch_size: int = Field(default=50, ge=1)

    distribution_batch_pause_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Pause between distribution batches",
    )

    retry_batch_size: int = Field(default=50, ge=1)

    max_notification_retries: int = Field(default=3, ge=0)

    retry_base_minutes: int = Field(
        default=5,
        ge=1,
        description="Base of the notification retry backoff (base * 2^retry_count)",
    )

    retry_resend: bool = Field(
        default=False,
        description="Re-send failed notifications from the retry job",
    )

    notification_retention_days: int = Field(default=30, ge=1)

    # =========================================================================
    # Notification Transport
    # =========================================================================

    webhook_url: Optional[str] = Field(
        default=None,
        description="Push gateway endpoint for the webhook sender",
    )

    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    no_retry: bool = Field(
        default=False,
        description="Disable transport retry logic (tenacity)",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """Get effective log level, letting DAILY_FACTS_DEBUG raise it to DEBUG."""
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the SQLite repository."""
        if self.database_path is not None:
            return self.database_path
        return self.cache_dir / "daily_facts.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> FactsSettings:
    """
    Get the singleton settings instance.

    The settings are validated at first access.
    """
    return FactsSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"


def is_retry_disabled() -> bool:
    """Check if transport retry is disabled via environment."""
    return get_settings().no_retry
