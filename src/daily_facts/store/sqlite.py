"""
SQLite Implementation of the Repository.

Uses WAL mode so the distribution, retry and maintenance jobs can overlap.
Timestamps are stored as REAL Unix epoch seconds (UTC). Every write commits
immediately; no transaction is held across a notification send.
"""

from __future__ import annotations

import json
import time
from collections.abc import Collection, Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..core.clock import UTC, ensure_utc, start_of_day
from ..core.logging import get_logger
from ..models import (
    DELIVERED_STATUSES,
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
from .migrations import MigrationRunner
from .protocol import DailyMetrics, InteractionFilter, ItemFilter, ItemOrder, StoreError

logger = get_logger(__name__)

_ORDER_CLAUSES = {
    ItemOrder.FEATURED_NEWEST: "is_featured DESC, created_at DESC, id ASC",
    ItemOrder.POPULARITY: "is_featured DESC, like_count DESC, view_count DESC, created_at DESC, id ASC",
    ItemOrder.NEWEST: "created_at DESC, id ASC",
}

# Values written when a NOT NULL column is cleared with an explicit None
_INTERACTION_DEFAULTS: dict[str, Any] = {
    "is_viewed": 0,
    "is_liked": 0,
    "is_bookmarked": 0,
    "is_shared": 0,
    "delivery_status": DeliveryStatus.PENDING.value,
}

_NOTIFICATION_DEFAULTS: dict[str, Any] = {
    "status": DeliveryStatus.PENDING.value,
    "retry_count": 0,
}


def _to_ts(value: datetime | None) -> float | None:
    if value is None:
        return None
    return ensure_utc(value).timestamp()


def _from_ts(value: float | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def _to_column(value: Any) -> Any:
    """Convert a Python value to its stored representation."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return _to_ts(value)
    if isinstance(value, (DeliveryStatus, Difficulty)):
        return value.value
    return value


def _placeholders(values: Collection[Any]) -> str:
    return ",".join("?" * len(values))


class SQLiteRepository:
    """
    SQLite implementation of Repository.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        max_notification_retries: int | None = None,
    ):
        """
        Initialize the repository.

        Args:
            db_path: Path to database file. Defaults to the configured db_path.
            max_notification_retries: Retry bound stamped on new notifications.
        """
        if db_path is None or max_notification_retries is None:
            from ..core.config import get_settings

            settings = get_settings()
            if db_path is None:
                db_path = settings.db_path
            if max_notification_retries is None:
                max_notification_retries = settings.max_notification_retries

        self.db_path = Path(db_path)
        self.max_notification_retries = max_notification_retries
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """
        Open the database and run pending migrations.

        Must be called before any other operations.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA busy_timeout=5000")
        await self._db.execute("PRAGMA synchronous=NORMAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        runner = MigrationRunner(self._db)
        await runner.run_migrations()

        self._db.row_factory = aiosqlite.Row
        logger.info("Daily facts store initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Daily facts store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise StoreError("Store not initialized. Call initialize() first.")
        return self._db

    # -------------------------------------------------------------------------
    # Seeding (used by the CLI and tests; not part of the Repository protocol)
    # -------------------------------------------------------------------------

    async def save_user(self, user: User) -> None:
        """Insert or update a user account."""
        created_at = user.created_at or datetime.now(tz=UTC)
        await self.db.execute(
            """
            INSERT INTO users (
                id, is_active, timezone, notifications_enabled, daily_notification_time,
                max_notifications_per_day, weekend_notifications, difficulty_level,
                current_streak, longest_streak, last_active_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                is_active = excluded.is_active,
                timezone = excluded.timezone,
                notifications_enabled = excluded.notifications_enabled,
                daily_notification_time = excluded.daily_notification_time,
                max_notifications_per_day = excluded.max_notifications_per_day,
                weekend_notifications = excluded.weekend_notifications,
                difficulty_level = excluded.difficulty_level,
                current_streak = excluded.current_streak,
                longest_streak = excluded.longest_streak,
                last_active_at = excluded.last_active_at
            """,
            (
                user.id,
                int(user.is_active),
                user.timezone,
                int(user.notifications_enabled),
                user.daily_notification_time,
                user.max_notifications_per_day,
                int(user.weekend_notifications),
                user.difficulty_level.value,
                user.current_streak,
                user.longest_streak,
                _to_ts(user.last_active_at),
                _to_ts(created_at),
            ),
        )
        await self.db.commit()

    async def save_category(self, category_id: str, name: str | None = None) -> None:
        await self.db.execute(
            "INSERT OR IGNORE INTO categories (id, name) VALUES (?, ?)",
            (category_id, name or category_id),
        )
        await self.db.commit()

    async def set_category_preference(
        self,
        user_id: str,
        category_id: str,
        enabled: bool = True,
        engagement_score: float | None = None,
    ) -> None:
        """Enable or disable a category for a user."""
        await self.save_category(category_id)
        await self.db.execute(
            """
            INSERT INTO user_categories (user_id, category_id, is_enabled, engagement_score, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id, category_id) DO UPDATE SET
                is_enabled = excluded.is_enabled,
                engagement_score = excluded.engagement_score
            """,
            (user_id, category_id, int(enabled), engagement_score, time.time()),
        )
        await self.db.commit()

    async def save_item(self, item: ContentItem) -> None:
        """Insert or update a content item (its category is created if missing)."""
        await self.save_category(item.category_id)
        created_at = item.created_at or datetime.now(tz=UTC)
        await self.db.execute(
            """
            INSERT INTO facts (
                id, title, short_content, category_id, difficulty, tags,
                is_approved, is_featured, is_active,
                view_count, like_count, share_count, bookmark_count,
                published_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                short_content = excluded.short_content,
                category_id = excluded.category_id,
                difficulty = excluded.difficulty,
                tags = excluded.tags,
                is_approved = excluded.is_approved,
                is_featured = excluded.is_featured,
                is_active = excluded.is_active,
                view_count = excluded.view_count,
                like_count = excluded.like_count,
                share_count = excluded.share_count,
                bookmark_count = excluded.bookmark_count,
                published_at = excluded.published_at
            """,
            (
                item.id,
                item.title,
                item.short_content,
                item.category_id,
                item.difficulty.value,
                json.dumps(list(item.tags)),
                int(item.is_approved),
                int(item.is_featured),
                int(item.is_active),
                item.view_count,
                item.like_count,
                item.share_count,
                item.bookmark_count,
                _to_ts(item.published_at),
                _to_ts(created_at),
            ),
        )
        await self.db.commit()

    async def add_session(
        self,
        user_id: str,
        refresh_token: str,
        expires_at: datetime,
        is_active: bool = True,
    ) -> None:
        await self.db.execute(
            """
            INSERT INTO user_sessions (user_id, refresh_token, is_active, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, refresh_token, int(is_active), _to_ts(expires_at), time.time()),
        )
        await self.db.commit()

    async def count_sessions(self) -> int:
        cursor = await self.db.execute("SELECT COUNT(*) FROM user_sessions")
        row = await cursor.fetchone()
        return row[0] if row else 0

    # -------------------------------------------------------------------------
    # Users and preferences
    # -------------------------------------------------------------------------

    async def find_user(self, user_id: str) -> User | None:
        cursor = await self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = await cursor.fetchone()
        return self._row_to_user(row) if row else None

    async def find_user_preferences(self, user_id: str) -> UserPreferences | None:
        user = await self.find_user(user_id)
        if user is None:
            return None

        cursor = await self.db.execute(
            """
            SELECT category_id, is_enabled, engagement_score
            FROM user_categories
            WHERE user_id = ?
            """,
            (user_id,),
        )
        rows = await cursor.fetchall()

        enabled = frozenset(row["category_id"] for row in rows if row["is_enabled"])
        engagement = {
            row["category_id"]: float(row["engagement_score"])
            for row in rows
            if row["engagement_score"] is not None
        }

        return UserPreferences(
            user_id=user.id,
            difficulty_level=user.difficulty_level,
            enabled_category_ids=enabled,
            category_engagement=engagement,
            current_streak=user.current_streak,
            longest_streak=user.longest_streak,
        )

    async def find_users_by_category_overlap(
        self,
        category_ids: Collection[str],
        exclude_user_id: str,
        difficulty: Difficulty | None = None,
        limit: int = 10,
    ) -> list[User]:
        if not category_ids or limit <= 0:
            return []

        ids = sorted(category_ids)
        conditions = [
            f"uc.category_id IN ({_placeholders(ids)})",
            "uc.is_enabled = 1",
            "u.is_active = 1",
            "u.id != ?",
        ]
        params: list[Any] = [*ids, exclude_user_id]

        if difficulty is not None:
            conditions.append("u.difficulty_level = ?")
            params.append(difficulty.value)

        params.append(limit)
        cursor = await self.db.execute(
            f"""
            SELECT DISTINCT u.*
            FROM users u
            JOIN user_categories uc ON uc.user_id = u.id
            WHERE {" AND ".join(conditions)}
            ORDER BY u.id
            LIMIT ?
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    async def find_notifiable_users(self) -> list[User]:
        cursor = await self.db.execute(
            """
            SELECT * FROM users
            WHERE is_active = 1 AND notifications_enabled = 1
            ORDER BY id
            """
        )
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    async def find_active_users(self) -> list[User]:
        cursor = await self.db.execute("SELECT * FROM users WHERE is_active = 1 ORDER BY id")
        rows = await cursor.fetchall()
        return [self._row_to_user(row) for row in rows]

    async def update_user_streak(
        self, user_id: str, current_streak: int, longest_streak: int
    ) -> None:
        await self.db.execute(
            "UPDATE users SET current_streak = ?, longest_streak = ? WHERE id = ?",
            (current_streak, longest_streak, user_id),
        )
        await self.db.commit()

    # -------------------------------------------------------------------------
    # Interactions
    # -------------------------------------------------------------------------

    def _interaction_conditions(
        self, user_id: str, filters: InteractionFilter
    ) -> tuple[list[str], list[Any]]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]

        for column, value in (
            ("is_viewed", filters.viewed),
            ("is_liked", filters.liked),
            ("is_bookmarked", filters.bookmarked),
            ("is_shared", filters.shared),
        ):
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(int(value))

        if filters.viewed_since is not None:
            conditions.append("viewed_at >= ?")
            params.append(_to_ts(filters.viewed_since))

        return conditions, params

    async def find_interactions(
        self, user_id: str, filters: InteractionFilter | None = None
    ) -> list[InteractionRecord]:
        filters = filters or InteractionFilter()
        conditions, params = self._interaction_conditions(user_id, filters)

        direction = "ASC" if filters.chronological else "DESC"
        query = f"""
            SELECT * FROM user_facts
            WHERE {" AND ".join(conditions)}
            ORDER BY COALESCE(viewed_at, created_at) {direction}, id {direction}
        """
        if filters.limit is not None:
            query += " LIMIT ?"
            params.append(filters.limit)

        cursor = await self.db.execute(query, params)
        rows = await cursor.fetchall()
        records = [self._row_to_interaction(row) for row in rows]

        if filters.include_items and records:
            items = await self._load_items({r.item_id for r in records})
            for record in records:
                record.item = items.get(record.item_id)

        return records

    async def count_interactions(
        self, user_id: str, filters: InteractionFilter | None = None
    ) -> int:
        conditions, params = self._interaction_conditions(user_id, filters or InteractionFilter())
        cursor = await self.db.execute(
            f"SELECT COUNT(*) FROM user_facts WHERE {' AND '.join(conditions)}",
            params,
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def upsert_interaction(
        self,
        user_id: str,
        item_id: str,
        update: InteractionUpdate,
        now: datetime | None = None,
    ) -> InteractionRecord:
        """
        Create or update the (user, item) interaction.

        Only supplied fields are written. An explicit None clears nullable
        columns and resets flag columns to their default.
        """
        now_ts = _to_ts(now) if now is not None else time.time()

        changes = {
            column: _INTERACTION_DEFAULTS.get(column) if value is None else _to_column(value)
            for column, value in update.as_changes().items()
        }

        columns = ["user_id", "fact_id", "created_at", "updated_at", *changes]
        values = [user_id, item_id, now_ts, now_ts, *changes.values()]
        assignments = ["updated_at = excluded.updated_at"]
        assignments.extend(f"{column} = excluded.{column}" for column in changes)

        await self.db.execute(
            f"""
            INSERT INTO user_facts ({", ".join(columns)})
            VALUES ({_placeholders(values)})
            ON CONFLICT(user_id, fact_id) DO UPDATE SET {", ".join(assignments)}
            """,
            values,
        )
        await self.db.commit()

        cursor = await self.db.execute(
            "SELECT * FROM user_facts WHERE user_id = ? AND fact_id = ?",
            (user_id, item_id),
        )
        row = await cursor.fetchone()
        if row is None:
            raise StoreError(f"Interaction ({user_id}, {item_id}) missing after upsert")
        return self._row_to_interaction(row)

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    async def find_eligible_items(self, filters: ItemFilter) -> list[ContentItem]:
        """Eligible items narrowed by `filters`, in the filter's order."""
        if filters.limit == 0:
            return []

        conditions = [
            "is_approved = 1",
            "is_active = 1",
            "published_at IS NOT NULL",
            "published_at <= ?",
        ]
        params: list[Any] = [_to_ts(filters.now)]

        if filters.exclude_ids:
            excluded = sorted(filters.exclude_ids)
            conditions.append(f"id NOT IN ({_placeholders(excluded)})")
            params.extend(excluded)

        if filters.difficulty is not None:
            conditions.append("difficulty = ?")
            params.append(filters.difficulty.value)

        if filters.category_ids:
            categories = sorted(filters.category_ids)
            conditions.append(f"category_id IN ({_placeholders(categories)})")
            params.extend(categories)

        params.append(filters.limit)
        cursor = await self.db.execute(
            f"""
            SELECT * FROM facts
            WHERE {" AND ".join(conditions)}
            ORDER BY {_ORDER_CLAUSES[filters.order]}
            LIMIT ?
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def find_liked_items_by_users(
        self, user_ids: Sequence[str], now: datetime, limit: int
    ) -> list[ContentItem]:
        if not user_ids or limit <= 0:
            return []

        ids = list(dict.fromkeys(user_ids))
        cursor = await self.db.execute(
            f"""
            SELECT f.*
            FROM facts f
            JOIN user_facts uf ON uf.fact_id = f.id
            WHERE uf.user_id IN ({_placeholders(ids)})
              AND uf.is_liked = 1
              AND f.is_approved = 1
              AND f.is_active = 1
              AND f.published_at IS NOT NULL
              AND f.published_at <= ?
            GROUP BY f.id
            ORDER BY MAX(uf.updated_at) DESC, f.id ASC
            LIMIT ?
            """,
            [*ids, _to_ts(now), limit],
        )
        rows = await cursor.fetchall()
        return [self._row_to_item(row) for row in rows]

    async def _load_items(self, item_ids: Collection[str]) -> dict[str, ContentItem]:
        ids = sorted(item_ids)
        cursor = await self.db.execute(
            f"SELECT * FROM facts WHERE id IN ({_placeholders(ids)})",
            ids,
        )
        rows = await cursor.fetchall()
        return {row["id"]: self._row_to_item(row) for row in rows}

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def create_notification(
        self,
        user_id: str,
        item_id: str | None,
        title: str,
        body: str,
        now: datetime,
        status: DeliveryStatus = DeliveryStatus.PENDING,
    ) -> NotificationRecord:
        now_ts = _to_ts(now)
        cursor = await self.db.execute(
            """
            INSERT INTO notifications (
                user_id, fact_id, title, body, status, max_retries, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, item_id, title, body, status.value, self.max_notification_retries, now_ts, now_ts),
        )
        await self.db.commit()

        notification_id = cursor.lastrowid
        if notification_id is None:
            raise StoreError("Notification insert returned no row id")

        record = await self.get_notification(notification_id)
        if record is None:
            raise StoreError(f"Notification {notification_id} missing after insert")
        return record

    async def update_notification(
        self, notification_id: int, update: NotificationUpdate, now: datetime
    ) -> None:
        if update.is_empty():
            return

        changes = {
            column: _NOTIFICATION_DEFAULTS.get(column) if value is None else _to_column(value)
            for column, value in update.as_changes().items()
        }

        assignments = [f"{column} = ?" for column in changes]
        assignments.append("updated_at = ?")
        await self.db.execute(
            f"UPDATE notifications SET {', '.join(assignments)} WHERE id = ?",
            [*changes.values(), _to_ts(now), notification_id],
        )
        await self.db.commit()

    async def get_notification(self, notification_id: int) -> NotificationRecord | None:
        cursor = await self.db.execute(
            "SELECT * FROM notifications WHERE id = ?", (notification_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_notification(row) if row else None

    async def find_failed_notifications(
        self, now: datetime, limit: int = 50
    ) -> list[NotificationRecord]:
        cursor = await self.db.execute(
            """
            SELECT * FROM notifications
            WHERE status = ?
              AND retry_count < max_retries
              AND next_retry_at IS NOT NULL
              AND next_retry_at <= ?
            ORDER BY next_retry_at ASC, id ASC
            LIMIT ?
            """,
            (DeliveryStatus.FAILED.value, _to_ts(now), limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def count_todays_notifications(self, user_id: str, now: datetime) -> int:
        statuses = sorted(s.value for s in DELIVERED_STATUSES)
        cursor = await self.db.execute(
            f"""
            SELECT COUNT(*) FROM notifications
            WHERE user_id = ?
              AND status IN ({_placeholders(statuses)})
              AND created_at >= ?
            """,
            [user_id, *statuses, _to_ts(start_of_day(now))],
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def count_notifications(self, user_id: str | None = None) -> int:
        if user_id is None:
            cursor = await self.db.execute("SELECT COUNT(*) FROM notifications")
        else:
            cursor = await self.db.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ?", (user_id,)
            )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def delete_notifications_before(
        self, cutoff: datetime, statuses: Collection[DeliveryStatus]
    ) -> int:
        if not statuses:
            return 0

        values = sorted(s.value for s in statuses)
        cursor = await self.db.execute(
            f"""
            DELETE FROM notifications
            WHERE created_at < ? AND status IN ({_placeholders(values)})
            """,
            [_to_ts(cutoff), *values],
        )
        await self.db.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def delete_expired_sessions(self, now: datetime) -> int:
        cursor = await self.db.execute(
            "DELETE FROM user_sessions WHERE expires_at < ? OR is_active = 0",
            (_to_ts(now),),
        )
        await self.db.commit()
        return cursor.rowcount

    async def count_daily_metrics(self, start: datetime, end: datetime) -> DailyMetrics:
        """Aggregate counters for the half-open window [start, end)."""
        window = (_to_ts(start), _to_ts(end))

        async def scalar(query: str, params: Sequence[Any] = window) -> int:
            cursor = await self.db.execute(query, params)
            row = await cursor.fetchone()
            return row[0] if row and row[0] is not None else 0

        sent_statuses = sorted(s.value for s in DELIVERED_STATUSES)

        return DailyMetrics(
            new_users=await scalar(
                "SELECT COUNT(*) FROM users WHERE created_at >= ? AND created_at < ?"
            ),
            active_users=await scalar(
                "SELECT COUNT(*) FROM users WHERE last_active_at >= ? AND last_active_at < ?"
            ),
            items_viewed=await scalar(
                "SELECT COUNT(*) FROM user_facts WHERE viewed_at >= ? AND viewed_at < ?"
            ),
            items_liked=await scalar(
                """
                SELECT COUNT(*) FROM user_facts
                WHERE is_liked = 1 AND updated_at >= ? AND updated_at < ?
                """
            ),
            items_shared=await scalar(
                """
                SELECT COUNT(*) FROM user_facts
                WHERE is_shared = 1 AND updated_at >= ? AND updated_at < ?
                """
            ),
            notifications_sent=await scalar(
                f"""
                SELECT COUNT(*) FROM notifications
                WHERE status IN ({_placeholders(sent_statuses)})
                  AND sent_at >= ? AND sent_at < ?
                """,
                [*sent_statuses, *window],
            ),
        )

    async def save_analytics_snapshot(self, snapshot: AnalyticsSnapshot) -> None:
        """Store the snapshot for its day, replacing any earlier one."""
        await self.db.execute(
            """
            INSERT OR REPLACE INTO analytics_snapshots (day, metrics_json, created_at)
            VALUES (?, ?, ?)
            """,
            (snapshot.day.isoformat(), json.dumps(snapshot.metrics()), time.time()),
        )
        await self.db.commit()

    async def get_analytics_snapshot(self, day: date) -> AnalyticsSnapshot | None:
        cursor = await self.db.execute(
            "SELECT metrics_json FROM analytics_snapshots WHERE day = ?",
            (day.isoformat(),),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return AnalyticsSnapshot(day=day, **json.loads(row["metrics_json"]))

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            is_active=bool(row["is_active"]),
            timezone=row["timezone"],
            notifications_enabled=bool(row["notifications_enabled"]),
            daily_notification_time=row["daily_notification_time"],
            max_notifications_per_day=row["max_notifications_per_day"],
            weekend_notifications=bool(row["weekend_notifications"]),
            difficulty_level=Difficulty.parse(row["difficulty_level"]),
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_active_at=_from_ts(row["last_active_at"]),
            created_at=_from_ts(row["created_at"]),
        )

    def _row_to_item(self, row: aiosqlite.Row) -> ContentItem:
        return ContentItem(
            id=row["id"],
            category_id=row["category_id"],
            difficulty=Difficulty.parse(row["difficulty"]),
            tags=tuple(json.loads(row["tags"] or "[]")),
            title=row["title"],
            short_content=row["short_content"],
            created_at=_from_ts(row["created_at"]),
            published_at=_from_ts(row["published_at"]),
            view_count=row["view_count"],
            like_count=row["like_count"],
            share_count=row["share_count"],
            bookmark_count=row["bookmark_count"],
            is_approved=bool(row["is_approved"]),
            is_active=bool(row["is_active"]),
            is_featured=bool(row["is_featured"]),
        )

    def _row_to_interaction(self, row: aiosqlite.Row) -> InteractionRecord:
        return InteractionRecord(
            user_id=row["user_id"],
            item_id=row["fact_id"],
            is_viewed=bool(row["is_viewed"]),
            viewed_at=_from_ts(row["viewed_at"]),
            is_liked=bool(row["is_liked"]),
            is_bookmarked=bool(row["is_bookmarked"]),
            is_shared=bool(row["is_shared"]),
            delivery_status=DeliveryStatus(row["delivery_status"]),
            delivered_at=_from_ts(row["delivered_at"]),
            time_spent=row["time_spent"],
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )

    def _row_to_notification(self, row: aiosqlite.Row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            user_id=row["user_id"],
            item_id=row["fact_id"],
            title=row["title"],
            body=row["body"],
            status=DeliveryStatus(row["status"]),
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            next_retry_at=_from_ts(row["next_retry_at"]),
            sent_at=_from_ts(row["sent_at"]),
            error_message=row["error_message"],
            error_code=row["error_code"],
            created_at=_from_ts(row["created_at"]),
            updated_at=_from_ts(row["updated_at"]),
        )
