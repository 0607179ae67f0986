"""
Daily Facts Delivery: scheduler, distribution, retry and maintenance jobs.

Usage:
    from daily_facts.delivery import DistributionService, WebhookSender

    service = DistributionService(repository=repo, sender=WebhookSender(url))
    await service.start()
"""

from .distribution import DistributionJob, DistributionReport
from .jobs import Job, JobMetrics, JobSchedule, JobScheduler, JobState
from .maintenance import MaintenanceJobs, StreakReport, next_streak
from .retry import RetryJob, RetryReport, next_retry_delay
from .sender import (
    LogSender,
    NotificationContent,
    NotificationSender,
    SendResult,
    WebhookSender,
)
from .service import JOB_SCHEDULES, DistributionService

__all__ = [
    # Service
    "DistributionService",
    "JOB_SCHEDULES",
    # Scheduler
    "Job",
    "JobMetrics",
    "JobSchedule",
    "JobScheduler",
    "JobState",
    # Jobs
    "DistributionJob",
    "DistributionReport",
    "RetryJob",
    "RetryReport",
    "next_retry_delay",
    "MaintenanceJobs",
    "StreakReport",
    "next_streak",
    # Senders
    "NotificationSender",
    "NotificationContent",
    "SendResult",
    "WebhookSender",
    "LogSender",
]
