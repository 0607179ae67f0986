"""
Failed Notification Retry Job.

Every tick picks up to a batch of FAILED notifications with retries left
whose next_retry_at has passed. Notifications for users who are gone or
have disabled notifications are cancelled. The rest get their retry count
bumped and the next attempt pushed out by base * 2^retry_count minutes, so a
record is never picked up again once the count reaches max_retries.

With `resend` enabled the notification is also re-sent; a successful
resend marks it SENT.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..core.clock import Clock, SystemClock
from ..core.logging import get_logger
from ..models import DeliveryStatus, NotificationRecord, NotificationUpdate
from ..store.protocol import Repository
from .sender import NotificationContent, NotificationSender

logger = get_logger(__name__)


def next_retry_delay(retry_count: int, base_minutes: int = 5) -> timedelta:
    """Backoff before the attempt following `retry_count` (5, 10, 20, 40... minutes)."""
    return timedelta(minutes=base_minutes * (2**retry_count))


@dataclass
class RetryReport:
    selected: int = 0
    rescheduled: int = 0
    resent: int = 0
    cancelled: int = 0
    errors: int = 0


@dataclass
class RetryJob:
    repository: Repository
    sender: Optional[NotificationSender] = None
    clock: Clock = field(default_factory=SystemClock)
    batch_size: int = 50
    base_minutes: int = 5
    resend: bool = False

    async def run_tick(self, now: datetime | None = None) -> RetryReport:
        now = now or self.clock.now()
        records = await self.repository.find_failed_notifications(now, limit=self.batch_size)
        report = RetryReport(selected=len(records))
        logger.info("Retrying failed notifications", extra={"count": len(records)})

        for record in records:
            try:
                await self._retry(record, now, report)
            except Exception as e:
                report.errors += 1
                logger.error(
                    "Error retrying notification %d: %s",
                    record.id,
                    e,
                    exc_info=True,
                    extra={"user_id": record.user_id, "operation": "retry_notification"},
                )

        logger.info(
            "Retry failed notifications completed: rescheduled=%d resent=%d cancelled=%d",
            report.rescheduled,
            report.resent,
            report.cancelled,
        )
        return report

    async def _retry(self, record: NotificationRecord, now: datetime, report: RetryReport) -> None:
        user = await self.repository.find_user(record.user_id)
        if user is None or not user.notifications_enabled:
            await self.repository.update_notification(
                record.id, NotificationUpdate(status=DeliveryStatus.CANCELLED), now
            )
            report.cancelled += 1
            return

        retry_count = record.retry_count + 1

        if self.resend and self.sender is not None:
            content = NotificationContent(
                title=record.title,
                body=record.body,
                data={"type": "daily_fact", "fact_id": record.item_id or ""},
            )
            result = await self.sender.send(record.user_id, content)
            if result.delivered:
                await self.repository.update_notification(
                    record.id,
                    NotificationUpdate(
                        status=DeliveryStatus.SENT,
                        sent_at=now,
                        retry_count=retry_count,
                        next_retry_at=None,
                        error_message=None,
                        error_code=None,
                    ),
                    now,
                )
                report.resent += 1
                return

            await self.repository.update_notification(
                record.id,
                NotificationUpdate(
                    retry_count=retry_count,
                    next_retry_at=now + next_retry_delay(retry_count, self.base_minutes),
                    error_message=result.error,
                    error_code=result.error_code,
                ),
                now,
            )
            report.rescheduled += 1
            return

        await self.repository.update_notification(
            record.id,
            NotificationUpdate(
                retry_count=retry_count,
                next_retry_at=now + next_retry_delay(retry_count, self.base_minutes),
            ),
            now,
        )
        report.rescheduled += 1
