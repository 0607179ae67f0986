"""
Relevance Scoring for Content Items.

Assigns a scalar in [0, 1] to a candidate item given a user profile.
Deterministic and free of I/O; "now" is passed in for the freshness factor.

Core Algorithm (weighted sum of six factors):
1. Category match     0.40  enabled: 0.5 + 0.5 * engagement, else 0.1
2. Difficulty match   0.25  exact 1.0, off-by-one 0.7, off-by-two 0.4, else 0.1
3. Tag overlap        0.15  matches / max(item tags, preferred tags), 0.5 if either empty
4. Popularity         0.10  min(1, (views + 2 * likes + 3 * shares) / 100)
5. Freshness          0.05  max(0, 1 - age_days / 365)
6. Personality blend  0.05  0.5 * personality_score + 0.5

The final score is clamped to [0, 1].
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from ..core.clock import ensure_utc
from ..models import ContentItem, Difficulty, UserProfile

# =============================================================================
# Constants
# =============================================================================

CATEGORY_WEIGHT = 0.40
DIFFICULTY_WEIGHT = 0.25
TAG_WEIGHT = 0.15
POPULARITY_WEIGHT = 0.10
FRESHNESS_WEIGHT = 0.05
PERSONALITY_WEIGHT = 0.05

# Category factor for items outside the enabled set
NON_PREFERRED_CATEGORY_SCORE = 0.1

# Difficulty factor by ordinal distance (3+ falls through to the last value)
DIFFICULTY_DISTANCE_SCORES = (1.0, 0.7, 0.4)
DIFFICULTY_FAR_SCORE = 0.1

NEUTRAL_TAG_SCORE = 0.5

POPULARITY_SATURATION = 100
FRESHNESS_HORIZON_DAYS = 365


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ScoreBreakdown:
    """Weighted contribution of each factor to one item's score."""

    category: float
    difficulty: float
    tags: float
    popularity: float
    freshness: float
    personality: float

    @property
    def total(self) -> float:
        raw = (
            self.category
            + self.difficulty
            + self.tags
            + self.popularity
            + self.freshness
            + self.personality
        )
        return min(1.0, max(0.0, raw))


# =============================================================================
# Factor Functions
# =============================================================================


def category_match(item: ContentItem, profile: UserProfile) -> float:
    if item.category_id in profile.enabled_category_ids:
        return 0.5 + 0.5 * profile.engagement_for(item.category_id)
    return NON_PREFERRED_CATEGORY_SCORE


def difficulty_match(item_difficulty: Difficulty, user_difficulty: Difficulty) -> float:
    distance = abs(item_difficulty.ordinal - user_difficulty.ordinal)
    if distance < len(DIFFICULTY_DISTANCE_SCORES):
        return DIFFICULTY_DISTANCE_SCORES[distance]
    return DIFFICULTY_FAR_SCORE


def tag_overlap(item_tags: Sequence[str], preferred_tags: Sequence[str]) -> float:
    """Share of matching tags relative to the larger of the two tag lists."""
    if not item_tags or not preferred_tags:
        return NEUTRAL_TAG_SCORE

    preferred = set(preferred_tags)
    matches = sum(1 for tag in item_tags if tag in preferred)
    return matches / max(len(item_tags), len(preferred_tags))


def popularity(item: ContentItem) -> float:
    interactions = item.view_count + 2 * item.like_count + 3 * item.share_count
    return min(1.0, interactions / POPULARITY_SATURATION)


def freshness(created_at: datetime | None, now: datetime) -> float:
    """Linear decay over a year from creation; unknown creation time scores 0."""
    if created_at is None:
        return 0.0
    age_days = (ensure_utc(now) - ensure_utc(created_at)).total_seconds() / 86400
    return max(0.0, 1 - age_days / FRESHNESS_HORIZON_DAYS)


def personality_blend(personality_score: float) -> float:
    return 0.5 * personality_score + 0.5


# =============================================================================
# Scoring
# =============================================================================


def score_breakdown(item: ContentItem, profile: UserProfile, now: datetime) -> ScoreBreakdown:
    """Compute each factor's weighted contribution for `item`."""
    return ScoreBreakdown(
        category=CATEGORY_WEIGHT * category_match(item, profile),
        difficulty=DIFFICULTY_WEIGHT * difficulty_match(item.difficulty, profile.difficulty_level),
        tags=TAG_WEIGHT * tag_overlap(item.tags, profile.learning_patterns.preferred_tags),
        popularity=POPULARITY_WEIGHT * popularity(item),
        freshness=FRESHNESS_WEIGHT * freshness(item.created_at, now),
        personality=PERSONALITY_WEIGHT * personality_blend(profile.personality_score),
    )


def score_item(item: ContentItem, profile: UserProfile, now: datetime) -> float:
    """
    Score an item's relevance to a profile.

    Args:
        item: Candidate content item
        profile: Resolved user profile (callers without one use the fallback path)
        now: Reference instant for freshness

    Returns:
        Score in [0, 1]
    """
    return score_breakdown(item, profile, now).total
