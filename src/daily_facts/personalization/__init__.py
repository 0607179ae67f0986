"""
Personalization: profiles, scoring, selection and recommendations.

Usage:
    from daily_facts.personalization import CandidateSelector, ProfileBuilder, SelectionOptions

    profiles = ProfileBuilder(repo, cache=cache, clock=clock)
    selector = CandidateSelector(repo, profiles, clock=clock)
    picks = await selector.select_personalized("user-1", SelectionOptions(limit=5))
"""

from .analyzer import InteractionAnalyzer, analyze_views, consistency_score
from .fallback import popular_items
from .profile import ProfileBuilder, personality_score, profile_cache_key
from .recommender import SimilarityRecommender, user_similarity
from .scoring import ScoreBreakdown, score_breakdown, score_item
from .selector import (
    CandidateSelector,
    ScoredItem,
    SelectionOptions,
    admit_under_caps,
    diversify,
    rank,
)

__all__ = [
    "InteractionAnalyzer",
    "analyze_views",
    "consistency_score",
    "popular_items",
    "ProfileBuilder",
    "personality_score",
    "profile_cache_key",
    "SimilarityRecommender",
    "user_similarity",
    "ScoreBreakdown",
    "score_breakdown",
    "score_item",
    "CandidateSelector",
    "ScoredItem",
    "SelectionOptions",
    "admit_under_caps",
    "diversify",
    "rank",
]
