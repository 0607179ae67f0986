"""
Hourly Daily-Fact Distribution.

Each tick:
1. Computes the current hour in the reference zone
2. Loads active users with notifications enabled
3. Keeps users whose local delivery time converts to that hour
4. Drops users who opted out of weekend delivery on Saturday/Sunday
5. Processes survivors in batches (parallel within a batch, paused between)
6. Per user: enforce the daily cap, pick one item, record and send it

A failure for one user never aborts the batch. Re-running a tick for a user
at their cap creates nothing.
"""

from __future__ import annotations

import asyncio
import random
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from ..core.clock import Clock, SystemClock, delivery_hour, is_weekend, reference_hour
from ..core.logging import get_logger
from ..models import (
    ContentItem,
    DeliveryOutcome,
    DeliveryStatus,
    DeliveryTask,
    InteractionUpdate,
    NotificationUpdate,
    User,
)
from ..personalization.selector import CandidateSelector, SelectionOptions
from ..store.protocol import InteractionFilter, ItemFilter, ItemOrder, Repository
from .sender import NotificationContent, NotificationSender, SendResult

logger = get_logger(__name__)

# Relaxation tiers when personalized selection comes back empty
UNSEEN_CANDIDATES = 10
ANY_CANDIDATES = 5


@dataclass
class DistributionReport:
    """Counts for one distribution tick."""

    reference_hour: int
    notifiable: int = 0
    due: int = 0
    sent: int = 0
    failed: int = 0
    skipped_cap: int = 0
    skipped_no_content: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.sent + self.failed + self.skipped_cap + self.skipped_no_content + self.errors

    def record(self, tasks: Sequence[DeliveryTask]) -> None:
        outcomes = Counter(task.outcome for task in tasks)
        self.sent += outcomes[DeliveryOutcome.SENT]
        self.failed += outcomes[DeliveryOutcome.FAILED]
        self.skipped_cap += outcomes[DeliveryOutcome.SKIPPED_CAP]
        self.skipped_no_content += outcomes[DeliveryOutcome.SKIPPED_NO_CONTENT]
        self.errors += outcomes[DeliveryOutcome.ERROR]


@dataclass
class DistributionJob:
    """Matches users to their delivery hour and sends one fact each."""

    repository: Repository
    sender: NotificationSender
    selector: CandidateSelector
    clock: Clock = field(default_factory=SystemClock)
    rng: random.Random = field(default_factory=random.Random)
    reference_timezone: str = "UTC"
    batch_size: int = 50
    batch_pause_seconds: float = 1.0
    retry_base_minutes: int = 5
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

    def is_due(self, user: User, now: datetime, current_hour: int) -> bool:
        """True if the user's delivery hour is `current_hour` and weekends allow it."""
        try:
            hour = delivery_hour(
                user.daily_notification_time, user.timezone, self.reference_timezone, now
            )
        except ValueError:
            logger.warning(
                "Invalid notification time %r for %s", user.daily_notification_time, user.id
            )
            return False

        if hour != current_hour:
            return False
        if not user.weekend_notifications and is_weekend(now, self.reference_timezone):
            return False
        return True

    async def run_tick(self, now: datetime | None = None) -> DistributionReport:
        now = now or self.clock.now()
        current_hour = reference_hour(now, self.reference_timezone)
        report = DistributionReport(reference_hour=current_hour)

        users = await self.repository.find_notifiable_users()
        report.notifiable = len(users)

        tasks = [
            DeliveryTask(
                user=user,
                reference_hour=current_hour,
                delivery_hour=current_hour,
            )
            for user in users
            if self.is_due(user, now, current_hour)
        ]
        report.due = len(tasks)
        logger.info("Processing daily facts for %d users", len(tasks))

        for start in range(0, len(tasks), self.batch_size):
            batch = tasks[start : start + self.batch_size]
            await asyncio.gather(*(self.deliver(task, now) for task in batch))
            report.record(batch)

            if start + self.batch_size < len(tasks):
                await self.sleep(self.batch_pause_seconds)

        logger.info(
            "Daily facts distribution completed: sent=%d failed=%d skipped=%d errors=%d",
            report.sent,
            report.failed,
            report.skipped_cap + report.skipped_no_content,
            report.errors,
        )
        return report

    async def deliver(self, task: DeliveryTask, now: datetime) -> DeliveryTask:
        """Run one user's delivery; the outcome is recorded on the task."""
        user = task.user
        try:
            sent_today = await self.repository.count_todays_notifications(user.id, now)
            if sent_today >= user.max_notifications_per_day:
                logger.debug("User %s already received max notifications for today", user.id)
                task.outcome = DeliveryOutcome.SKIPPED_CAP
                return task

            item = await self.choose_item(user, now)
            if item is None:
                logger.debug("No suitable fact found for user %s", user.id)
                task.outcome = DeliveryOutcome.SKIPPED_NO_CONTENT
                return task

            task.item = item
            await self._send(task, item, now)
        except Exception as e:
            task.outcome = DeliveryOutcome.ERROR
            task.error = str(e)
            logger.error(
                "Error sending daily fact to user %s: %s",
                user.id,
                e,
                exc_info=True,
                extra={"user_id": user.id, "operation": "deliver"},
            )
        return task

    async def choose_item(self, user: User, now: datetime) -> ContentItem | None:
        """
        Pick one item for the user.

        Personalized selection first; then a random unseen item in the user's
        categories at their difficulty; then a random recent item at their
        difficulty in any category.
        """
        picks = await self.selector.select_personalized(user.id, SelectionOptions(limit=1))
        if picks:
            return picks[0].item

        try:
            preferences = await self.repository.find_user_preferences(user.id)
            viewed = await self.repository.find_interactions(user.id, InteractionFilter(viewed=True))
            unseen = await self.repository.find_eligible_items(
                ItemFilter(
                    now=now,
                    exclude_ids=frozenset(record.item_id for record in viewed),
                    difficulty=user.difficulty_level,
                    category_ids=preferences.enabled_category_ids if preferences else frozenset(),
                    limit=UNSEEN_CANDIDATES,
                    order=ItemOrder.FEATURED_NEWEST,
                )
            )
            if unseen:
                return self.rng.choice(unseen)

            any_items = await self.repository.find_eligible_items(
                ItemFilter(
                    now=now,
                    difficulty=user.difficulty_level,
                    limit=ANY_CANDIDATES,
                    order=ItemOrder.NEWEST,
                )
            )
        except Exception as e:
            logger.error(
                "Error getting fallback fact for user %s: %s",
                user.id,
                e,
                exc_info=True,
                extra={"user_id": user.id, "operation": "choose_item"},
            )
            return None

        return self.rng.choice(any_items) if any_items else None

    async def _send(self, task: DeliveryTask, item: ContentItem, now: datetime) -> None:
        user = task.user
        content = NotificationContent.for_item(item)
        record = await self.repository.create_notification(
            user.id, item.id, content.title, content.body, now
        )
        task.notification_id = record.id

        try:
            result = await self.sender.send(user.id, content)
        except Exception as e:
            logger.error("Sender raised for %s: %s", user.id, e, exc_info=True)
            result = SendResult(delivered=False, error_code="sender_error", error=str(e))

        if result.delivered:
            await self.repository.update_notification(
                record.id,
                NotificationUpdate(status=DeliveryStatus.SENT, sent_at=now),
                now,
            )
            await self.repository.upsert_interaction(
                user.id,
                item.id,
                InteractionUpdate(delivery_status=DeliveryStatus.SENT, delivered_at=now),
                now,
            )
            task.outcome = DeliveryOutcome.SENT
            logger.debug("Daily fact sent to user %s", user.id, extra={"fact_id": item.id})
            return

        await self.repository.update_notification(
            record.id,
            NotificationUpdate(
                status=DeliveryStatus.FAILED,
                retry_count=0,
                next_retry_at=now + timedelta(minutes=self.retry_base_minutes),
                error_message=result.error,
                error_code=result.error_code,
            ),
            now,
        )
        await self.repository.upsert_interaction(
            user.id,
            item.id,
            InteractionUpdate(delivery_status=DeliveryStatus.FAILED),
            now,
        )
        task.outcome = DeliveryOutcome.FAILED
        task.error = result.error
        logger.warning(
            "Daily fact delivery failed for %s: %s",
            user.id,
            result.error,
            extra={"user_id": user.id, "error_code": result.error_code},
        )
