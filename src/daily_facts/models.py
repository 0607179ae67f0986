"""
Daily Facts Data Models.

Records read from and written through the repository, plus the derived
personalization state (stats, patterns, profile) that is rebuilt on demand.
All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from enum import Enum
from typing import Any


class Difficulty(str, Enum):
    """Content difficulty, ordered EASY < MEDIUM < HARD < EXPERT."""

    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    EXPERT = "EXPERT"

    @property
    def ordinal(self) -> int:
        return _DIFFICULTY_ORDER.index(self)

    @classmethod
    def parse(cls, value: str | Difficulty) -> Difficulty:
        """Parse a difficulty name case-insensitively."""
        if isinstance(value, Difficulty):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown difficulty: {value!r}") from None


_DIFFICULTY_ORDER = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD, Difficulty.EXPERT]


class DeliveryStatus(str, Enum):
    """Delivery state shared by interaction records and notifications."""

    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    OPENED = "OPENED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Statuses that count against a user's daily cap
DELIVERED_STATUSES = frozenset({DeliveryStatus.SENT, DeliveryStatus.DELIVERED, DeliveryStatus.OPENED})


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class DeliveryOutcome(str, Enum):
    """Result of one user's delivery attempt within a tick."""

    SENT = "sent"
    FAILED = "failed"
    SKIPPED_CAP = "skipped_cap"
    SKIPPED_NO_CONTENT = "skipped_no_content"
    ERROR = "error"


# =============================================================================
# Partial Updates
# =============================================================================


class _Unset:
    """Marker for "field not supplied" in partial updates."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class PartialUpdate:
    """
    Base for partial-update records.

    Each field is UNSET (leave the stored value untouched), None (clear it)
    or a value (set it).
    """

    def as_changes(self) -> dict[str, Any]:
        """Return only the supplied fields, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.as_changes()


@dataclass
class InteractionUpdate(PartialUpdate):
    is_viewed: Any = UNSET
    viewed_at: Any = UNSET
    is_liked: Any = UNSET
    is_bookmarked: Any = UNSET
    is_shared: Any = UNSET
    delivery_status: Any = UNSET
    delivered_at: Any = UNSET
    time_spent: Any = UNSET


@dataclass
class NotificationUpdate(PartialUpdate):
    status: Any = UNSET
    retry_count: Any = UNSET
    next_retry_at: Any = UNSET
    sent_at: Any = UNSET
    error_message: Any = UNSET
    error_code: Any = UNSET


# =============================================================================
# Persisted Records
# =============================================================================


@dataclass
class User:
    """A user account as seen by the scheduler."""

    id: str
    is_active: bool = True
    timezone: str = "UTC"
    notifications_enabled: bool = True
    daily_notification_time: str = "09:00"
    max_notifications_per_day: int = 3
    weekend_notifications: bool = True
    difficulty_level: Difficulty = Difficulty.MEDIUM
    current_streak: int = 0
    longest_streak: int = 0
    last_active_at: datetime | None = None
    created_at: datetime | None = None


@dataclass
class UserPreferences:
    """Stored personalization preferences for one user."""

    user_id: str
    difficulty_level: Difficulty
    enabled_category_ids: frozenset[str] = frozenset()
    category_engagement: dict[str, float] = field(default_factory=dict)
    current_streak: int = 0
    longest_streak: int = 0


@dataclass
class ContentItem:
    """A fact as stored by the content subsystem (read-only here)."""

    id: str
    category_id: str
    difficulty: Difficulty
    tags: tuple[str, ...] = ()
    title: str = ""
    short_content: str | None = None
    created_at: datetime | None = None
    published_at: datetime | None = None
    view_count: int = 0
    like_count: int = 0
    share_count: int = 0
    bookmark_count: int = 0
    is_approved: bool = False
    is_active: bool = True
    is_featured: bool = False

    def is_eligible(self, now: datetime) -> bool:
        """Approved, active and already published."""
        return (
            self.is_approved
            and self.is_active
            and self.published_at is not None
            and self.published_at <= now
        )


@dataclass
class InteractionRecord:
    """One user x item interaction (unique per pair)."""

    user_id: str
    item_id: str
    is_viewed: bool = False
    viewed_at: datetime | None = None
    is_liked: bool = False
    is_bookmarked: bool = False
    is_shared: bool = False
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    delivered_at: datetime | None = None
    time_spent: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    item: ContentItem | None = None


@dataclass
class NotificationRecord:
    """Audit and retry state for one notification."""

    id: int
    user_id: str
    item_id: str | None
    title: str
    body: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    retry_count: int = 0
    max_retries: int = 3
    next_retry_at: datetime | None = None
    sent_at: datetime | None = None
    error_message: str | None = None
    error_code: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def can_retry(self) -> bool:
        return self.status == DeliveryStatus.FAILED and self.retry_count < self.max_retries


@dataclass
class AnalyticsSnapshot:
    """Aggregated counters for one calendar day."""

    day: date
    new_users: int = 0
    active_users: int = 0
    items_viewed: int = 0
    items_liked: int = 0
    items_shared: int = 0
    notifications_sent: int = 0

    def metrics(self) -> dict[str, int]:
        data = asdict(self)
        data.pop("day")
        return data


# =============================================================================
# Derived Personalization State
# =============================================================================


@dataclass
class InteractionStats:
    """Lifetime interaction counts and the rates derived from them."""

    total_viewed: int = 0
    total_liked: int = 0
    total_bookmarked: int = 0
    total_shared: int = 0
    recent_activity: int = 0
    like_rate: float = 0.0
    bookmark_rate: float = 0.0
    share_rate: float = 0.0
    engagement_score: float = 0.0

    @classmethod
    def empty(cls) -> InteractionStats:
        return cls()

    @classmethod
    def from_counts(
        cls,
        total_viewed: int,
        total_liked: int,
        total_bookmarked: int,
        total_shared: int,
        recent_activity: int,
    ) -> InteractionStats:
        """Build stats, computing rates against views (0 when nothing was viewed)."""
        if total_viewed > 0:
            like_rate = total_liked / total_viewed
            bookmark_rate = total_bookmarked / total_viewed
            share_rate = total_shared / total_viewed
        else:
            like_rate = bookmark_rate = share_rate = 0.0

        return cls(
            total_viewed=total_viewed,
            total_liked=total_liked,
            total_bookmarked=total_bookmarked,
            total_shared=total_shared,
            recent_activity=recent_activity,
            like_rate=like_rate,
            bookmark_rate=bookmark_rate,
            share_rate=share_rate,
            engagement_score=0.4 * like_rate + 0.4 * bookmark_rate + 0.2 * share_rate,
        )


@dataclass
class LearningPatterns:
    """Signals derived from the last week of viewing."""

    difficulty_progression: Trend = Trend.STABLE
    topic_diversity: float = 0.0
    engagement_trend: Trend = Trend.STABLE
    preferred_tags: list[str] = field(default_factory=list)
    learning_velocity: float = 0.0
    consistency_score: float = 0.0

    @classmethod
    def neutral(cls) -> LearningPatterns:
        return cls()


@dataclass
class UserProfile:
    """Per-user personalization profile, rebuilt on demand."""

    user_id: str
    difficulty_level: Difficulty
    enabled_category_ids: frozenset[str]
    category_engagement: dict[str, float]
    interaction_stats: InteractionStats
    learning_patterns: LearningPatterns
    personality_score: float
    current_streak: int = 0
    longest_streak: int = 0

    def engagement_for(self, category_id: str) -> float:
        return self.category_engagement.get(category_id, 0.0)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to plain JSON-compatible types (for caching)."""
        data = asdict(self)
        data["difficulty_level"] = self.difficulty_level.value
        data["enabled_category_ids"] = sorted(self.enabled_category_ids)
        patterns = data["learning_patterns"]
        patterns["difficulty_progression"] = self.learning_patterns.difficulty_progression.value
        patterns["engagement_trend"] = self.learning_patterns.engagement_trend.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        patterns = dict(data["learning_patterns"])
        patterns["difficulty_progression"] = Trend(patterns["difficulty_progression"])
        patterns["engagement_trend"] = Trend(patterns["engagement_trend"])
        patterns["preferred_tags"] = list(patterns.get("preferred_tags", []))

        return cls(
            user_id=data["user_id"],
            difficulty_level=Difficulty.parse(data["difficulty_level"]),
            enabled_category_ids=frozenset(data.get("enabled_category_ids", [])),
            category_engagement=dict(data.get("category_engagement", {})),
            interaction_stats=InteractionStats(**data["interaction_stats"]),
            learning_patterns=LearningPatterns(**patterns),
            personality_score=float(data["personality_score"]),
            current_streak=int(data.get("current_streak", 0)),
            longest_streak=int(data.get("longest_streak", 0)),
        )


@dataclass
class DeliveryTask:
    """One user's delivery attempt within a distribution tick (not persisted)."""

    user: User
    reference_hour: int
    delivery_hour: int
    item: ContentItem | None = None
    notification_id: int | None = None
    outcome: DeliveryOutcome | None = None
    error: str | None = None
