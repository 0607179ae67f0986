"""
Distribution Service.

Long-lived object constructed once at process start. Wires the
personalization pipeline, the distribution, retry and maintenance jobs and
the scheduler that drives them, and exposes start()/stop() plus the
on-demand selection entry point used by the HTTP layer.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..core.clock import Clock, SystemClock
from ..core.config import FactsSettings, get_settings
from ..core.logging import get_logger
from ..personalization.profile import ProfileBuilder
from ..personalization.selector import CandidateSelector, ScoredItem, SelectionOptions
from ..store.cache import MemoryCache
from ..store.protocol import Cache, Repository
from .distribution import DistributionJob
from .jobs import JobSchedule, JobScheduler
from .maintenance import MaintenanceJobs
from .retry import RetryJob
from .sender import NotificationSender

logger = get_logger(__name__)

DISTRIBUTION_JOB = "daily-facts-distribution"
RETRY_JOB = "retry-failed-notifications"
SESSION_CLEANUP_JOB = "cleanup-expired-sessions"
NOTIFICATION_PRUNE_JOB = "cleanup-old-notifications"
STREAK_JOB = "update-user-streaks"
ANALYTICS_JOB = "generate-analytics"

JOB_SCHEDULES: dict[str, JobSchedule] = {
    DISTRIBUTION_JOB: JobSchedule.hourly(),
    RETRY_JOB: JobSchedule.every_minutes(15),
    SESSION_CLEANUP_JOB: JobSchedule.hourly(),
    NOTIFICATION_PRUNE_JOB: JobSchedule.daily(hour=2),
    STREAK_JOB: JobSchedule.daily(hour=1),
    ANALYTICS_JOB: JobSchedule.daily(hour=3),
}


@dataclass
class DistributionService:
    """
    Personalization and scheduling core.

    Usage:
        service = DistributionService(repository=repo, sender=sender)
        await service.start()
        # ... run until shutdown
        await service.stop()
    """

    repository: Repository
    sender: NotificationSender
    cache: Optional[Cache] = None
    clock: Clock = field(default_factory=SystemClock)
    rng: random.Random = field(default_factory=random.Random)
    settings: FactsSettings = field(default_factory=get_settings)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    profiles: ProfileBuilder = field(init=False)
    selector: CandidateSelector = field(init=False)
    distribution: DistributionJob = field(init=False)
    retry: RetryJob = field(init=False)
    maintenance: MaintenanceJobs = field(init=False)
    scheduler: JobScheduler = field(init=False)

    def __post_init__(self) -> None:
        settings = self.settings
        self.profiles = ProfileBuilder(
            self.repository,
            cache=self.cache,
            clock=self.clock,
            ttl_seconds=settings.profile_cache_ttl_seconds,
        )
        self.selector = CandidateSelector(self.repository, self.profiles, clock=self.clock)
        self.distribution = DistributionJob(
            repository=self.repository,
            sender=self.sender,
            selector=self.selector,
            clock=self.clock,
            rng=self.rng,
            reference_timezone=settings.reference_timezone,
            batch_size=settings.distribution_batch_size,
            batch_pause_seconds=settings.distribution_batch_pause_seconds,
            retry_base_minutes=settings.retry_base_minutes,
            sleep=self.sleep,
        )
        self.retry = RetryJob(
            repository=self.repository,
            sender=self.sender,
            clock=self.clock,
            batch_size=settings.retry_batch_size,
            base_minutes=settings.retry_base_minutes,
            resend=settings.retry_resend,
        )
        self.maintenance = MaintenanceJobs(
            self.repository,
            retention_days=settings.notification_retention_days,
            cache=self.cache if isinstance(self.cache, MemoryCache) else None,
        )

        self.scheduler = JobScheduler(clock=self.clock, sleep=self.sleep)
        handlers: dict[str, Callable[[datetime], Awaitable[Any]]] = {
            DISTRIBUTION_JOB: self.distribution.run_tick,
            RETRY_JOB: self.retry.run_tick,
            SESSION_CLEANUP_JOB: self.maintenance.cleanup_expired_sessions,
            NOTIFICATION_PRUNE_JOB: self.maintenance.prune_notifications,
            STREAK_JOB: self.maintenance.update_streaks,
            ANALYTICS_JOB: self.maintenance.snapshot_analytics,
        }
        for name, handler in handlers.items():
            self.scheduler.register(name, JOB_SCHEDULES[name], handler)

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    async def start(self) -> None:
        """Start all scheduled jobs."""
        logger.info("Starting distribution service")
        await self.scheduler.start()

    async def stop(self) -> None:
        """Stop all scheduled jobs."""
        logger.info("Stopping distribution service")
        await self.scheduler.stop()

    async def run_job(self, name: str, now: datetime | None = None) -> bool:
        """Run one named job immediately."""
        return await self.scheduler.run_now(name, now)

    async def select_personalized(
        self, user_id: str, options: SelectionOptions | None = None
    ) -> list[ScoredItem]:
        return await self.selector.select_personalized(user_id, options)

    def get_status(self) -> dict[str, Any]:
        status = self.scheduler.get_status()
        status["reference_timezone"] = self.settings.reference_timezone
        return status
