"""
Daily Facts Test Suite - Shared Fixtures and Configuration

Provides deterministic time, seeded randomness, temporary SQLite stores and
small factories for users, content items and profiles.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio

from daily_facts.core.clock import UTC, FixedClock
from daily_facts.models import (
    ContentItem,
    Difficulty,
    InteractionStats,
    LearningPatterns,
    User,
    UserProfile,
)
from daily_facts.store.sqlite import SQLiteRepository

# Wednesday, 2024-03-06 12:00 UTC
FIXED_NOW = datetime(2024, 3, 6, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset module-level singletons before and after each test.

    Settings are re-read from the environment and loggers propagate again so
    caplog can capture records.
    """
    from daily_facts.core.config import reset_settings
    from daily_facts.core.logging import reset_logging

    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


# =============================================================================
# Determinism
# =============================================================================


@pytest.fixture
def seeded_rng() -> random.Random:
    """
    Return a seeded Random instance for deterministic randomness in tests.

    This provides an isolated random number generator that won't affect
    global state.
    """
    return random.Random(42)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock(fixed_now: datetime) -> FixedClock:
    """Clock pinned to FIXED_NOW; tests may advance() it."""
    return FixedClock(fixed_now)


# =============================================================================
# Factories
# =============================================================================


def build_item(
    item_id: str,
    category_id: str = "science",
    difficulty: Difficulty = Difficulty.MEDIUM,
    **overrides,
) -> ContentItem:
    """An eligible item published a day before FIXED_NOW unless overridden."""
    values = {
        "tags": (),
        "title": f"Fact {item_id}",
        "short_content": f"Short {item_id}",
        "created_at": FIXED_NOW - timedelta(days=1),
        "published_at": FIXED_NOW - timedelta(days=1),
        "is_approved": True,
        "is_active": True,
    }
    values.update(overrides)
    return ContentItem(id=item_id, category_id=category_id, difficulty=difficulty, **values)


def build_user(user_id: str, **overrides) -> User:
    values = {"created_at": FIXED_NOW - timedelta(days=30)}
    values.update(overrides)
    return User(id=user_id, **values)


def build_profile(
    user_id: str = "u1",
    categories: tuple[str, ...] = ("science",),
    difficulty: Difficulty = Difficulty.MEDIUM,
    **overrides,
) -> UserProfile:
    """A profile with neutral stats and patterns unless overridden."""
    values = {
        "category_engagement": {category: 0.0 for category in categories},
        "interaction_stats": InteractionStats.empty(),
        "learning_patterns": LearningPatterns.neutral(),
        "personality_score": 0.5,
    }
    values.update(overrides)
    return UserProfile(
        user_id=user_id,
        difficulty_level=difficulty,
        enabled_category_ids=frozenset(categories),
        **values,
    )


@pytest.fixture
def make_item():
    """Factory for eligible content items."""
    return build_item


@pytest.fixture
def make_user():
    """Factory for users created 30 days before FIXED_NOW."""
    return build_user


@pytest.fixture
def make_profile():
    """Factory for in-memory user profiles."""
    return build_profile


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_daily_facts.db"


@pytest_asyncio.fixture
async def repo(temp_db_path: Path):
    """Create and initialize a test repository."""
    repository = SQLiteRepository(db_path=temp_db_path, max_notification_retries=3)
    await repository.initialize()
    yield repository
    await repository.close()


@pytest.fixture
def mock_settings(temp_db_path: Path, monkeypatch):
    """Point settings at the temp database."""
    from daily_facts.core.config import reset_settings

    monkeypatch.setenv("DAILY_FACTS_DATABASE_PATH", str(temp_db_path))
    reset_settings()

    yield

    reset_settings()
