"""
Maintenance Jobs.

Daily and hourly housekeeping driven by the scheduler:
- Streak recomputation (daily 01:00 UTC)
- Expired session and in-process cache cleanup (hourly)
- Old notification pruning (daily 02:00 UTC)
- Analytics snapshot of the previous day (daily 03:00 UTC)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..core.clock import UTC, ensure_utc
from ..core.logging import get_logger
from ..models import AnalyticsSnapshot, DeliveryStatus
from ..store.cache import MemoryCache
from ..store.protocol import Repository

logger = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 30

# Notifications in these states are safe to prune once old enough
PRUNABLE_STATUSES = frozenset(
    {
        DeliveryStatus.SENT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.OPENED,
        DeliveryStatus.CANCELLED,
    }
)


def next_streak(current: int, last_active: date, today: date) -> int:
    """
    Streak after the daily recomputation.

    Active today: keep the streak, or start one at 1. Last active before
    yesterday: reset to 0. Active yesterday: unchanged.
    """
    if last_active == today:
        return current if current > 0 else 1
    if last_active != today - timedelta(days=1) and current > 0:
        return 0
    return current


@dataclass
class StreakReport:
    processed: int = 0
    updated: int = 0


@dataclass
class MaintenanceJobs:
    repository: Repository
    retention_days: int = DEFAULT_RETENTION_DAYS
    cache: Optional[MemoryCache] = None

    async def update_streaks(self, now: datetime) -> StreakReport:
        """Recompute streaks for active users, writing only changed ones."""
        today = ensure_utc(now).date()
        users = await self.repository.find_active_users()
        report = StreakReport(processed=len(users))

        for user in users:
            if user.last_active_at is None:
                continue

            new_streak = next_streak(user.current_streak, ensure_utc(user.last_active_at).date(), today)
            if new_streak == user.current_streak:
                continue

            try:
                await self.repository.update_user_streak(
                    user.id, new_streak, max(user.longest_streak, new_streak)
                )
                report.updated += 1
            except Exception as e:
                logger.error(
                    "Streak update failed for %s: %s",
                    user.id,
                    e,
                    exc_info=True,
                    extra={"user_id": user.id, "operation": "update_user_streak"},
                )

        logger.info(
            "User streaks update completed",
            extra={"processed_users": report.processed, "updated_users": report.updated},
        )
        return report

    async def cleanup_expired_sessions(self, now: datetime) -> int:
        """Delete expired sessions and drop expired in-process cache entries."""
        cleaned = await self.repository.delete_expired_sessions(now)
        logger.info("Expired sessions cleanup completed", extra={"cleaned_count": cleaned})

        if self.cache is not None:
            evicted = self.cache.cleanup_expired()
            logger.debug("Evicted %d expired cache entries", evicted)
        return cleaned

    async def prune_notifications(self, now: datetime) -> int:
        """Delete finished notifications older than the retention window."""
        cutoff = now - timedelta(days=self.retention_days)
        deleted = await self.repository.delete_notifications_before(cutoff, PRUNABLE_STATUSES)
        logger.info(
            "Old notifications cleanup completed",
            extra={"deleted_count": deleted, "retention_days": self.retention_days},
        )
        return deleted

    async def snapshot_analytics(self, now: datetime) -> AnalyticsSnapshot:
        """Aggregate the previous UTC day into one snapshot (re-running replaces it)."""
        day = ensure_utc(now).date() - timedelta(days=1)
        start = datetime(day.year, day.month, day.day, tzinfo=UTC)
        metrics = await self.repository.count_daily_metrics(start, start + timedelta(days=1))

        snapshot = AnalyticsSnapshot(
            day=day,
            new_users=metrics.new_users,
            active_users=metrics.active_users,
            items_viewed=metrics.items_viewed,
            items_liked=metrics.items_liked,
            items_shared=metrics.items_shared,
            notifications_sent=metrics.notifications_sent,
        )
        await self.repository.save_analytics_snapshot(snapshot)
        logger.info("Daily analytics generated for %s", day.isoformat(), extra=snapshot.metrics())
        return snapshot
