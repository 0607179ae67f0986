"""
Tests for the Profile Builder.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from daily_facts.models import Difficulty, InteractionStats, LearningPatterns, UserProfile
from daily_facts.personalization.profile import ProfileBuilder, personality_score, profile_cache_key
from daily_facts.store.cache import MemoryCache


@pytest_asyncio.fixture
async def user_repo(repo, make_user):
    await repo.save_user(make_user("u1", difficulty_level=Difficulty.HARD, current_streak=2, longest_streak=5))
    await repo.set_category_preference("u1", "science", engagement_score=0.6)
    await repo.set_category_preference("u1", "history")
    return repo


class TestPersonalityScore:
    def test_baseline(self):
        assert personality_score(InteractionStats.empty(), LearningPatterns.neutral()) == 0.5

    def test_all_bonuses_capped_at_one(self):
        stats = InteractionStats(engagement_score=0.9, share_rate=0.5)
        patterns = LearningPatterns(consistency_score=0.9, topic_diversity=0.9)

        assert personality_score(stats, patterns) == 1.0

    def test_single_bonus(self):
        stats = InteractionStats(share_rate=0.2)
        assert personality_score(stats, LearningPatterns.neutral()) == pytest.approx(0.6)


class TestBuildProfile:
    async def test_builds_from_preferences(self, user_repo, clock):
        profile = await ProfileBuilder(user_repo, clock=clock).build_profile("u1")

        assert profile is not None
        assert profile.difficulty_level == Difficulty.HARD
        assert profile.enabled_category_ids == frozenset({"science", "history"})
        assert profile.category_engagement == {"science": 0.6, "history": 0.0}
        assert profile.interaction_stats == InteractionStats.empty()
        assert profile.personality_score == 0.5
        assert (profile.current_streak, profile.longest_streak) == (2, 5)

    async def test_unknown_user_has_no_profile(self, repo, clock):
        assert await ProfileBuilder(repo, clock=clock).build_profile("ghost") is None

    async def test_repository_failure_returns_none(self, clock, caplog):
        repository = AsyncMock()
        repository.find_user_preferences.side_effect = RuntimeError("db down")

        assert await ProfileBuilder(repository, clock=clock).build_profile("u1") is None
        assert "Profile build failed for u1" in caplog.text


class TestProfileCache:
    async def test_profile_is_cached_and_rehydrated(self, user_repo, clock):
        cache = MemoryCache(clock)
        builder = ProfileBuilder(user_repo, cache=cache, clock=clock, ttl_seconds=60)

        built = await builder.build_profile("u1")
        cached = await cache.get(profile_cache_key("u1"))

        assert isinstance(cached, dict)
        assert UserProfile.from_dict(cached) == built

    async def test_cache_hit_skips_repository(self, user_repo, clock):
        cache = MemoryCache(clock)
        builder = ProfileBuilder(user_repo, cache=cache, clock=clock)
        first = await builder.build_profile("u1")

        await user_repo.set_category_preference("u1", "art")
        assert await builder.build_profile("u1") == first

        await builder.invalidate("u1")
        rebuilt = await builder.build_profile("u1")
        assert "art" in rebuilt.enabled_category_ids

    async def test_expired_entry_is_rebuilt(self, user_repo, clock):
        cache = MemoryCache(clock)
        builder = ProfileBuilder(user_repo, cache=cache, clock=clock, ttl_seconds=60)
        await builder.build_profile("u1")

        await user_repo.set_category_preference("u1", "art")
        clock.advance(timedelta(seconds=61))

        assert "art" in (await builder.build_profile("u1")).enabled_category_ids

    async def test_results_identical_with_and_without_cache(self, user_repo, clock):
        with_cache = await ProfileBuilder(user_repo, cache=MemoryCache(clock), clock=clock).build_profile("u1")
        without_cache = await ProfileBuilder(user_repo, clock=clock).build_profile("u1")

        assert with_cache == without_cache

    async def test_cache_failures_are_misses(self, user_repo, clock):
        cache = AsyncMock()
        cache.get.side_effect = ConnectionError("cache down")
        cache.set.side_effect = ConnectionError("cache down")

        profile = await ProfileBuilder(user_repo, cache=cache, clock=clock).build_profile("u1")

        assert profile is not None
        assert profile.user_id == "u1"

    async def test_malformed_cache_entry_is_ignored(self, user_repo, clock):
        cache = MemoryCache(clock)
        await cache.set(profile_cache_key("u1"), {"user_id": "u1"}, ttl_seconds=60)

        profile = await ProfileBuilder(user_repo, cache=cache, clock=clock).build_profile("u1")

        assert profile is not None
        assert profile.difficulty_level == Difficulty.HARD
