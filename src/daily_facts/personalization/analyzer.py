"""
Interaction Analyzer.

Computes engagement statistics over a user's lifetime interactions and
learning-pattern signals over the last week of viewing. Repository failures
degrade to zero stats and neutral patterns; nothing here raises to callers.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..core.clock import Clock, SystemClock
from ..core.logging import get_logger
from ..models import Difficulty, InteractionRecord, InteractionStats, LearningPatterns, Trend
from ..store.protocol import InteractionFilter, Repository

logger = get_logger(__name__)

RECENT_ACTIVITY_DAYS = 30
PATTERN_WINDOW_DAYS = 7

# Transitions in one direction must outnumber the other by this factor
PROGRESSION_RATIO = 1.5
PROGRESSION_MIN_POINTS = 3

ENGAGEMENT_TREND_RATIO = 1.2

# Diversity saturates once this many distinct categories are seen
DIVERSITY_SATURATION = 8

PREFERRED_TAG_COUNT = 5


# =============================================================================
# Pattern Functions
# =============================================================================


def difficulty_progression(difficulties: Sequence[Difficulty]) -> Trend:
    """Classify how difficulty moved across consecutive views (oldest first)."""
    if len(difficulties) < PROGRESSION_MIN_POINTS:
        return Trend.STABLE

    increasing = decreasing = 0
    for previous, current in zip(difficulties, difficulties[1:]):
        if current.ordinal > previous.ordinal:
            increasing += 1
        elif current.ordinal < previous.ordinal:
            decreasing += 1

    if increasing > decreasing * PROGRESSION_RATIO:
        return Trend.INCREASING
    if decreasing > increasing * PROGRESSION_RATIO:
        return Trend.DECREASING
    return Trend.STABLE


def topic_diversity(category_ids: Sequence[str]) -> float:
    if not category_ids:
        return 0.0
    unique = len(set(category_ids))
    return min(1.0, unique / min(len(category_ids), DIVERSITY_SATURATION))


def engagement_trend(engaged: Sequence[bool]) -> Trend:
    """
    Compare the engaged ratio of the newer half of views against the older half.

    `engaged` is in view order, oldest first; an odd middle view counts as older.
    """
    newer_count = len(engaged) // 2
    older = engaged[: len(engaged) - newer_count]
    newer = engaged[len(engaged) - newer_count :]

    older_ratio = sum(older) / max(len(older), 1)
    newer_ratio = sum(newer) / max(len(newer), 1)

    if newer_ratio > older_ratio * ENGAGEMENT_TREND_RATIO:
        return Trend.INCREASING
    if older_ratio > newer_ratio * ENGAGEMENT_TREND_RATIO:
        return Trend.DECREASING
    return Trend.STABLE


def preferred_tags(tag_lists: Sequence[Sequence[str]], top_n: int = PREFERRED_TAG_COUNT) -> list[str]:
    """Most frequent tags; ties keep first-seen order."""
    counts: Counter[str] = Counter()
    for tags in tag_lists:
        counts.update(tags)
    return [tag for tag, _ in counts.most_common(top_n)]


def consistency_score(timestamps: Sequence[datetime]) -> float:
    """
    Regularity of viewing in [0, 1].

    1 - (mean absolute deviation of gaps from the uniform gap) / uniform gap,
    floored at 0. No views scores 0; a zero time span scores 1.
    """
    if not timestamps:
        return 0.0

    points = sorted(ts.timestamp() for ts in timestamps)
    span = points[-1] - points[0]
    if span == 0:
        return 1.0

    expected = span / (len(points) - 1)
    deviation = sum(abs((b - a) - expected) for a, b in zip(points, points[1:]))
    average = deviation / (len(points) - 1)
    return max(0.0, 1 - average / expected)


def analyze_views(views: Sequence[InteractionRecord]) -> LearningPatterns:
    """Derive learning patterns from viewed interactions in chronological order."""
    with_items = [v for v in views if v.item is not None]

    return LearningPatterns(
        difficulty_progression=difficulty_progression([v.item.difficulty for v in with_items]),
        topic_diversity=topic_diversity([v.item.category_id for v in with_items]),
        engagement_trend=engagement_trend([v.is_liked or v.is_bookmarked for v in with_items]),
        preferred_tags=preferred_tags([v.item.tags for v in with_items]),
        learning_velocity=len(with_items) / PATTERN_WINDOW_DAYS,
        consistency_score=consistency_score([v.viewed_at for v in with_items if v.viewed_at]),
    )


# =============================================================================
# Analyzer
# =============================================================================


@dataclass
class InteractionAnalyzer:
    """Reads interaction history through the repository and summarizes it."""

    repository: Repository
    clock: Clock = field(default_factory=SystemClock)

    async def compute_stats(self, user_id: str) -> InteractionStats:
        """Lifetime counts plus 30-day activity; zero stats on repository error."""
        since = self.clock.now() - timedelta(days=RECENT_ACTIVITY_DAYS)
        try:
            total_viewed = await self.repository.count_interactions(
                user_id, InteractionFilter(viewed=True)
            )
            total_liked = await self.repository.count_interactions(
                user_id, InteractionFilter(liked=True)
            )
            total_bookmarked = await self.repository.count_interactions(
                user_id, InteractionFilter(bookmarked=True)
            )
            total_shared = await self.repository.count_interactions(
                user_id, InteractionFilter(shared=True)
            )
            recent_activity = await self.repository.count_interactions(
                user_id, InteractionFilter(viewed=True, viewed_since=since)
            )
        except Exception as e:
            logger.error(
                "Interaction stats failed for %s: %s",
                user_id,
                e,
                exc_info=True,
                extra={"user_id": user_id, "operation": "compute_stats"},
            )
            return InteractionStats.empty()

        return InteractionStats.from_counts(
            total_viewed=total_viewed,
            total_liked=total_liked,
            total_bookmarked=total_bookmarked,
            total_shared=total_shared,
            recent_activity=recent_activity,
        )

    async def compute_patterns(self, user_id: str) -> LearningPatterns:
        """Patterns over the last 7 days of views; neutral patterns on repository error."""
        since = self.clock.now() - timedelta(days=PATTERN_WINDOW_DAYS)
        try:
            views = await self.repository.find_interactions(
                user_id,
                InteractionFilter(
                    viewed=True,
                    viewed_since=since,
                    include_items=True,
                    chronological=True,
                ),
            )
        except Exception as e:
            logger.error(
                "Learning pattern analysis failed for %s: %s",
                user_id,
                e,
                exc_info=True,
                extra={"user_id": user_id, "operation": "compute_patterns"},
            )
            return LearningPatterns.neutral()

        return analyze_views(views)
