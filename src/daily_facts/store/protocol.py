"""
Repository and Cache Protocol Interfaces.

The personalization core and the scheduler only talk to storage through
these protocols. Implementations must be async-compatible and tolerate
concurrent calls from overlapping jobs; every write is idempotent by key.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol, runtime_checkable

from ..models import (
    AnalyticsSnapshot,
    ContentItem,
    DeliveryStatus,
    Difficulty,
    InteractionRecord,
    InteractionUpdate,
    NotificationRecord,
    NotificationUpdate,
    User,
    UserPreferences,
)


class StoreError(RuntimeError):
    """Repository misuse, such as querying a store that was never initialized."""


# =============================================================================
# Query Filters
# =============================================================================


class ItemOrder:
    """Orderings supported by find_eligible_items."""

    # Candidate retrieval: featured first, newest first
    FEATURED_NEWEST = "featured_newest"
    # Global fallback: featured, then most liked, then most viewed
    POPULARITY = "popularity"
    NEWEST = "newest"

    ALL = frozenset({FEATURED_NEWEST, POPULARITY, NEWEST})


@dataclass
class ItemFilter:
    """
    Filter for eligible content items.

    Eligibility (approved, active, published at or before `now`) is always
    applied; the remaining fields narrow it further.
    """

    now: datetime
    exclude_ids: frozenset[str] = frozenset()
    difficulty: Difficulty | None = None
    category_ids: frozenset[str] = frozenset()
    limit: int = 30
    order: str = ItemOrder.FEATURED_NEWEST

    def __post_init__(self) -> None:
        if self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        if self.order not in ItemOrder.ALL:
            raise ValueError(f"Unknown item order: {self.order!r}")


@dataclass
class InteractionFilter:
    """Filter for a user's interaction records."""

    viewed: bool | None = None
    liked: bool | None = None
    bookmarked: bool | None = None
    shared: bool | None = None
    viewed_since: datetime | None = None
    include_items: bool = False
    # Oldest view first when True, newest first otherwise
    chronological: bool = True
    limit: int | None = None


@dataclass
class DailyMetrics:
    """Raw counters for one reporting window."""

    new_users: int = 0
    active_users: int = 0
    items_viewed: int = 0
    items_liked: int = 0
    items_shared: int = 0
    notifications_sent: int = 0


# =============================================================================
# Repository Protocol
# =============================================================================


@runtime_checkable
class Repository(Protocol):
    """
    Abstract storage interface consumed by the personalization core.

    All methods are coroutines and may raise; callers convert failures into
    their documented fallback values.
    """

    # -------------------------------------------------------------------------
    # Users and preferences
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def find_user_preferences(self, user_id: str) -> UserPreferences | None: ...

    @abstractmethod
    async def find_users_by_category_overlap(
        self,
        category_ids: Collection[str],
        exclude_user_id: str,
        difficulty: Difficulty | None = None,
        limit: int = 10,
    ) -> list[User]:
        """Active users with at least one of `category_ids` enabled."""
        ...

    @abstractmethod
    async def find_notifiable_users(self) -> list[User]:
        """Active users with notifications enabled."""
        ...

    @abstractmethod
    async def find_active_users(self) -> list[User]: ...

    @abstractmethod
    async def update_user_streak(
        self, user_id: str, current_streak: int, longest_streak: int
    ) -> None: ...

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_interactions(
        self, user_id: str, filters: InteractionFilter | None = None
    ) -> list[InteractionRecord]: ...

    @abstractmethod
    async def count_interactions(
        self, user_id: str, filters: InteractionFilter | None = None
    ) -> int: ...

    @abstractmethod
    async def upsert_interaction(
        self,
        user_id: str,
        item_id: str,
        update: InteractionUpdate,
        now: datetime | None = None,
    ) -> InteractionRecord:
        """Create the (user, item) record on first touch, update it thereafter."""
        ...

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    @abstractmethod
    async def find_eligible_items(self, filters: ItemFilter) -> list[ContentItem]: ...

    @abstractmethod
    async def find_liked_items_by_users(
        self, user_ids: Sequence[str], now: datetime, limit: int
    ) -> list[ContentItem]:
        """Distinct eligible items liked by any of `user_ids`, most recently updated first."""
        ...

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_notification(
        self,
        user_id: str,
        item_id: str | None,
        title: str,
        body: str,
        now: datetime,
        status: DeliveryStatus = DeliveryStatus.PENDING,
    ) -> NotificationRecord: ...

    @abstractmethod
    async def update_notification(
        self, notification_id: int, update: NotificationUpdate, now: datetime
    ) -> None: ...

    @abstractmethod
    async def get_notification(self, notification_id: int) -> NotificationRecord | None: ...

    @abstractmethod
    async def find_failed_notifications(
        self, now: datetime, limit: int = 50
    ) -> list[NotificationRecord]:
        """FAILED records with retries left whose next_retry_at has passed."""
        ...

    @abstractmethod
    async def count_todays_notifications(self, user_id: str, now: datetime) -> int:
        """SENT/DELIVERED/OPENED notifications created since midnight UTC of `now`."""
        ...

    @abstractmethod
    async def delete_notifications_before(
        self, cutoff: datetime, statuses: Collection[DeliveryStatus]
    ) -> int: ...

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @abstractmethod
    async def delete_expired_sessions(self, now: datetime) -> int: ...

    @abstractmethod
    async def count_daily_metrics(self, start: datetime, end: datetime) -> DailyMetrics: ...

    @abstractmethod
    async def save_analytics_snapshot(self, snapshot: AnalyticsSnapshot) -> None: ...

    @abstractmethod
    async def get_analytics_snapshot(self, day: date) -> AnalyticsSnapshot | None: ...


# =============================================================================
# Cache Protocol
# =============================================================================


@runtime_checkable
class Cache(Protocol):
    """
    Optional key-value accelerator with TTLs.

    Results must be identical with or without a cache; a miss is never an error.
    """

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...
