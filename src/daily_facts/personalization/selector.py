"""
Candidate Selector.

Personalized selection pipeline:
1. Resolve the profile; without one, return the global fallback list
2. Fetch up to 3 x limit eligible candidates (unseen, difficulty, categories)
3. Score and stable-sort candidates by relevance
4. Diversify: cap repeats per category and per difficulty, then backfill
5. Top up from the Similarity Recommender when still short
6. Truncate to limit

Any runtime failure in steps 1-5 falls back to the global list. Contract
errors in the request (bad limit, unknown difficulty) raise ValueError.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..core.clock import Clock, SystemClock
from ..core.logging import get_logger
from ..models import ContentItem, Difficulty, UserProfile
from ..store.protocol import InteractionFilter, ItemFilter, ItemOrder, Repository
from .fallback import popular_items
from .profile import ProfileBuilder
from .recommender import SimilarityRecommender
from .scoring import score_item

logger = get_logger(__name__)

CANDIDATE_MULTIPLIER = 3


@dataclass(frozen=True)
class ScoredItem:
    """A selected item and its relevance score (None for fallback rows)."""

    item: ContentItem
    score: float | None = None


@dataclass
class SelectionOptions:
    limit: int = 10
    exclude_viewed: bool = True
    difficulty_override: Difficulty | None = None
    category_filters: Sequence[str] = ()
    include_recommendations: bool = True

    def validate(self) -> None:
        """
        Raises:
            ValueError: If limit is not a positive int or the override is not a difficulty
        """
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 1:
            raise ValueError(f"limit must be a positive integer, got {self.limit!r}")
        if self.difficulty_override is not None:
            self.difficulty_override = Difficulty.parse(self.difficulty_override)


# =============================================================================
# Ranking and Diversification
# =============================================================================


def category_cap(limit: int) -> int:
    return max(1, limit // 3)


def difficulty_cap(limit: int) -> int:
    return max(2, int(limit / 2.5))


def rank(candidates: Sequence[ContentItem], profile: UserProfile, now: datetime) -> list[ScoredItem]:
    """Score candidates and sort descending; ties keep retrieval order."""
    scored = [ScoredItem(item, score_item(item, profile, now)) for item in candidates]
    return sorted(scored, key=lambda s: s.score or 0.0, reverse=True)


def admit_under_caps(ranked: Sequence[ScoredItem], limit: int) -> list[ScoredItem]:
    """Greedy walk admitting items while their category and difficulty are under cap."""
    max_per_category = category_cap(limit)
    max_per_difficulty = difficulty_cap(limit)
    categories: Counter[str] = Counter()
    difficulties: Counter[Difficulty] = Counter()
    admitted: list[ScoredItem] = []

    for entry in ranked:
        if len(admitted) >= limit:
            break
        item = entry.item
        if categories[item.category_id] >= max_per_category:
            continue
        if difficulties[item.difficulty] >= max_per_difficulty:
            continue
        admitted.append(entry)
        categories[item.category_id] += 1
        difficulties[item.difficulty] += 1

    return admitted


def diversify(ranked: Sequence[ScoredItem], limit: int) -> list[ScoredItem]:
    """
    Bound category and difficulty repetition in the top `limit`.

    Items admitted under the caps come first; if that under-fills, the
    highest-scoring remaining items are appended regardless of caps.
    """
    if len(ranked) <= limit:
        return list(ranked)

    selected = admit_under_caps(ranked, limit)
    if len(selected) < limit:
        chosen = {entry.item.id for entry in selected}
        for entry in ranked:
            if len(selected) >= limit:
                break
            if entry.item.id not in chosen:
                selected.append(entry)
                chosen.add(entry.item.id)

    return selected


# =============================================================================
# Selector
# =============================================================================


@dataclass
class CandidateSelector:
    """
    Entry point for personalized selection.

    Used by the HTTP layer for on-demand fetches and by the distribution job
    with limit=1.
    """

    repository: Repository
    profiles: ProfileBuilder
    clock: Clock = field(default_factory=SystemClock)
    recommender: Optional[SimilarityRecommender] = None

    def __post_init__(self) -> None:
        if self.recommender is None:
            self.recommender = SimilarityRecommender(self.repository, clock=self.clock)

    async def select_personalized(
        self, user_id: str, options: SelectionOptions | None = None
    ) -> list[ScoredItem]:
        """
        Select up to `options.limit` items for a user.

        Raises:
            ValueError: On an invalid request (raised before any I/O)
        """
        options = options or SelectionOptions()
        options.validate()
        limit = options.limit

        try:
            profile = await self.profiles.build_profile(user_id)
            if profile is None:
                return await self.fallback_items(limit)
            return await self._personalized(user_id, profile, options)
        except Exception as e:
            logger.error(
                "Personalized selection failed for %s, using fallback: %s",
                user_id,
                e,
                exc_info=True,
                extra={"user_id": user_id, "operation": "select_personalized"},
            )
            return await self.fallback_items(limit)

    async def fallback_items(self, limit: int) -> list[ScoredItem]:
        """Global fallback list (featured, likes, views), unscored."""
        items = await popular_items(self.repository, self.clock.now(), limit)
        return [ScoredItem(item) for item in items]

    async def _personalized(
        self, user_id: str, profile: UserProfile, options: SelectionOptions
    ) -> list[ScoredItem]:
        now = self.clock.now()
        limit = options.limit

        excluded: frozenset[str] = frozenset()
        if options.exclude_viewed:
            viewed = await self.repository.find_interactions(user_id, InteractionFilter(viewed=True))
            excluded = frozenset(record.item_id for record in viewed)

        categories = frozenset(options.category_filters) or profile.enabled_category_ids
        candidates = await self.repository.find_eligible_items(
            ItemFilter(
                now=now,
                exclude_ids=excluded,
                difficulty=options.difficulty_override or profile.difficulty_level,
                category_ids=categories,
                limit=CANDIDATE_MULTIPLIER * limit,
                order=ItemOrder.FEATURED_NEWEST,
            )
        )

        selected = diversify(rank(candidates, profile, now), limit)

        if options.include_recommendations and len(selected) < limit:
            assert self.recommender is not None
            seen = excluded | {entry.item.id for entry in selected}
            recommended = await self.recommender.recommend(user_id, profile, limit - len(selected))
            for item in recommended:
                if item.id in seen:
                    continue
                selected.append(ScoredItem(item, score_item(item, profile, now)))
                seen = seen | {item.id}

        return selected[:limit]
