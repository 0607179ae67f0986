"""
Profile Builder.

Assembles a UserProfile from stored preferences and the Interaction
Analyzer's stats and patterns. Profiles are cached as plain dicts under
`profile:{user_id}`; the cache is consulted first but never trusted for
correctness, and cache failures are treated as misses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..core.clock import Clock, SystemClock
from ..core.logging import get_logger
from ..models import InteractionStats, LearningPatterns, UserProfile
from ..store.protocol import Cache, Repository
from .analyzer import InteractionAnalyzer

logger = get_logger(__name__)

DEFAULT_PROFILE_TTL_SECONDS = 1800

PERSONALITY_BASELINE = 0.5


def profile_cache_key(user_id: str) -> str:
    return f"profile:{user_id}"


def personality_score(stats: InteractionStats, patterns: LearningPatterns) -> float:
    """Blend engagement and consistency signals into a score in [0, 1]."""
    score = PERSONALITY_BASELINE
    if stats.engagement_score > 0.7:
        score += 0.2
    if stats.share_rate > 0.1:
        score += 0.1
    if patterns.consistency_score > 0.8:
        score += 0.1
    if patterns.topic_diversity > 0.6:
        score += 0.1
    return min(1.0, max(0.0, score))


@dataclass
class ProfileBuilder:
    """
    Builds per-user personalization profiles.

    `build_profile()` returns None when the user has no preference record or
    when any repository call fails; callers then take the fallback path.
    """

    repository: Repository
    cache: Optional[Cache] = None
    clock: Clock = field(default_factory=SystemClock)
    ttl_seconds: int = DEFAULT_PROFILE_TTL_SECONDS
    analyzer: Optional[InteractionAnalyzer] = None

    def __post_init__(self) -> None:
        if self.analyzer is None:
            self.analyzer = InteractionAnalyzer(self.repository, clock=self.clock)

    async def build_profile(self, user_id: str) -> UserProfile | None:
        cached = await self._cache_get(user_id)
        if cached is not None:
            return cached

        try:
            preferences = await self.repository.find_user_preferences(user_id)
        except Exception as e:
            logger.error(
                "Profile build failed for %s: %s",
                user_id,
                e,
                exc_info=True,
                extra={"user_id": user_id, "operation": "find_user_preferences"},
            )
            return None

        if preferences is None:
            logger.debug("No preferences for %s, profile unavailable", user_id)
            return None

        assert self.analyzer is not None
        stats = await self.analyzer.compute_stats(user_id)
        patterns = await self.analyzer.compute_patterns(user_id)

        profile = UserProfile(
            user_id=user_id,
            difficulty_level=preferences.difficulty_level,
            enabled_category_ids=preferences.enabled_category_ids,
            category_engagement={
                category_id: preferences.category_engagement.get(category_id, 0.0)
                for category_id in preferences.enabled_category_ids
            },
            interaction_stats=stats,
            learning_patterns=patterns,
            personality_score=personality_score(stats, patterns),
            current_streak=preferences.current_streak,
            longest_streak=preferences.longest_streak,
        )

        await self._cache_set(profile)
        return profile

    async def invalidate(self, user_id: str) -> None:
        """Drop the cached profile (after a preference change)."""
        if self.cache is None:
            return
        try:
            await self.cache.delete(profile_cache_key(user_id))
        except Exception as e:
            logger.warning("Profile cache delete failed for %s: %s", user_id, e)

    async def _cache_get(self, user_id: str) -> UserProfile | None:
        if self.cache is None:
            return None
        try:
            data = await self.cache.get(profile_cache_key(user_id))
        except Exception as e:
            logger.warning("Profile cache read failed for %s: %s", user_id, e)
            return None

        if data is None:
            return None
        try:
            return UserProfile.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed cached profile for %s: %s", user_id, e)
            return None

    async def _cache_set(self, profile: UserProfile) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(
                profile_cache_key(profile.user_id), profile.to_dict(), self.ttl_seconds
            )
        except Exception as e:
            logger.warning("Profile cache write failed for %s: %s", profile.user_id, e)
