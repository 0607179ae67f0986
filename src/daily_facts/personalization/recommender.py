"""
Similarity Recommender.

Finds peers who share an enabled category and the same difficulty level,
ranks them by streak and engagement similarity, and surfaces items the top
peers liked. Falls back to the global popularity list when there is nothing
to recommend or a lookup fails.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..core.clock import Clock, SystemClock
from ..core.logging import get_logger
from ..models import ContentItem, User, UserProfile
from ..store.protocol import Repository
from .fallback import popular_items

logger = get_logger(__name__)

PEER_CANDIDATES = 10
TOP_PEERS = 5


def user_similarity(profile: UserProfile, peer: User) -> float:
    """
    Similarity of a peer to the profile owner.

    0.3 * streak closeness (30-day scale) + 0.3 * longest-streak closeness
    (100-day scale) + 0.4 * the owner's engagement score.
    """
    streak_diff = abs(profile.current_streak - peer.current_streak)
    longest_diff = abs(profile.longest_streak - peer.longest_streak)
    return (
        0.3 * max(0.0, 1 - streak_diff / 30)
        + 0.3 * max(0.0, 1 - longest_diff / 100)
        + 0.4 * profile.interaction_stats.engagement_score
    )


@dataclass
class SimilarityRecommender:
    repository: Repository
    clock: Clock = field(default_factory=SystemClock)
    peer_candidates: int = PEER_CANDIDATES
    top_peers: int = TOP_PEERS

    async def find_similar_users(self, user_id: str, profile: UserProfile) -> list[User]:
        """Top peers by similarity, highest first (ties keep repository order)."""
        candidates = await self.repository.find_users_by_category_overlap(
            profile.enabled_category_ids,
            exclude_user_id=user_id,
            difficulty=profile.difficulty_level,
            limit=self.peer_candidates,
        )
        ranked = sorted(candidates, key=lambda peer: user_similarity(profile, peer), reverse=True)
        return ranked[: self.top_peers]

    async def recommend(self, user_id: str, profile: UserProfile, limit: int) -> list[ContentItem]:
        """
        Items liked by similar users, most recently updated first.

        Args:
            user_id: Profile owner (excluded from peers)
            profile: Owner's resolved profile
            limit: Maximum number of items

        Returns:
            Up to `limit` items; the global fallback list when no peer has liked anything
        """
        if limit <= 0:
            return []

        now = self.clock.now()
        try:
            peers = await self.find_similar_users(user_id, profile)
            if not peers:
                logger.debug("No similar users for %s, using fallback list", user_id)
                return await popular_items(self.repository, now, limit)

            items = await self.repository.find_liked_items_by_users(
                [peer.id for peer in peers], now, limit
            )
        except Exception as e:
            logger.error(
                "Recommendation failed for %s: %s",
                user_id,
                e,
                exc_info=True,
                extra={"user_id": user_id, "operation": "recommend"},
            )
            return await popular_items(self.repository, now, limit)

        if not items:
            return await popular_items(self.repository, now, limit)
        return items[:limit]
