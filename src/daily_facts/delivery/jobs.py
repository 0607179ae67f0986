"""
Recurring Job Scheduler.

Runs named handlers on fixed UTC cadences, one asyncio task per job. Each job
moves stopped -> scheduled -> running -> scheduled until the scheduler stops.
A handler that raises is logged and counted; its next run still happens.
Stopping cancels only jobs that are waiting; a tick in progress finishes.

Handlers take the tick's `now` so they can be called directly in tests.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from ..core.clock import UTC, Clock, SystemClock, ensure_utc
from ..core.logging import get_logger

logger = get_logger(__name__)

JobHandler = Callable[[datetime], Awaitable[Any]]
Sleeper = Callable[[float], Awaitable[None]]

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class JobSchedule:
    """
    Fixed cadence aligned to the UTC epoch.

    Runs fire at `offset + k * interval` past midnight 1970-01-01 UTC, so
    an hourly interval fires on the hour and a daily one with a 1h offset
    fires at 01:00 UTC.
    """

    interval: timedelta
    offset: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError(f"interval must be positive, got {self.interval}")
        if not timedelta(0) <= self.offset < self.interval:
            raise ValueError(f"offset must be within [0, interval), got {self.offset}")

    @classmethod
    def every_minutes(cls, minutes: int) -> JobSchedule:
        return cls(timedelta(minutes=minutes))

    @classmethod
    def hourly(cls, minute: int = 0) -> JobSchedule:
        return cls(timedelta(hours=1), timedelta(minutes=minute))

    @classmethod
    def daily(cls, hour: int, minute: int = 0) -> JobSchedule:
        return cls(timedelta(days=1), timedelta(hours=hour, minutes=minute))

    def next_run_after(self, now: datetime) -> datetime:
        """First fire time strictly after `now`."""
        elapsed = ensure_utc(now) - _EPOCH - self.offset
        periods = elapsed // self.interval
        return _EPOCH + self.offset + (periods + 1) * self.interval


class JobState(Enum):
    """Job lifecycle states."""

    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@dataclass
class JobMetrics:
    """Metrics for a single job."""

    runs: int = 0
    failures: int = 0
    last_started_at: datetime | None = None
    last_duration_ms: float | None = None
    last_error: str | None = None


@dataclass
class Job:
    name: str
    schedule: JobSchedule
    handler: JobHandler
    state: JobState = JobState.STOPPED
    next_run_at: datetime | None = None
    last_fired_at: datetime | None = None
    metrics: JobMetrics = field(default_factory=JobMetrics)
    _task: asyncio.Task | None = field(default=None, repr=False)
    _in_tick: bool = field(default=False, repr=False)


@dataclass
class JobScheduler:
    """
    Registry and runner for recurring jobs.

    Usage:
        scheduler = JobScheduler(clock=SystemClock())
        scheduler.register("retry-failed-notifications", JobSchedule.every_minutes(15), retry.run_tick)
        await scheduler.start()
        # ... run until shutdown
        await scheduler.stop()
    """

    clock: Clock = field(default_factory=SystemClock)
    sleep: Sleeper = field(default=asyncio.sleep, repr=False)

    _jobs: dict[str, Job] = field(default_factory=dict, repr=False)
    _running: bool = field(default=False, repr=False)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, Job]:
        return dict(self._jobs)

    def register(self, name: str, schedule: JobSchedule, handler: JobHandler) -> bool:
        """
        Register a named job.

        Returns:
            False (with a warning) if a job with that name already exists
        """
        if name in self._jobs:
            logger.warning("Job %s already exists, skipping", name)
            return False

        job = Job(name=name, schedule=schedule, handler=handler)
        self._jobs[name] = job
        logger.info("Registered job: %s every %s", name, schedule.interval)

        if self._running:
            self._spawn(job)
        return True

    async def start(self) -> None:
        """Start one task per registered job."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        logger.info("Starting scheduler with %d jobs", len(self._jobs))
        for job in self._jobs.values():
            self._spawn(job)

    async def stop(self) -> None:
        """
        Stop every job and wait for the tasks to finish.

        Jobs waiting for their next tick are cancelled. A tick already in
        progress runs to completion; its loop exits afterwards.
        """
        if not self._running:
            logger.warning("Scheduler not running")
            return

        self._running = False
        logger.info("Stopping scheduler")

        tasks = []
        for job in self._jobs.values():
            if job._task is None:
                continue
            if job._in_tick:
                logger.info("Waiting for running job %s to finish", job.name)
            else:
                job._task.cancel()
            tasks.append(job._task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        for job in self._jobs.values():
            job._task = None
            job.state = JobState.STOPPED
            job.next_run_at = None
            logger.info("Stopped job: %s", job.name)

    async def run_now(self, name: str, now: datetime | None = None) -> bool:
        """
        Run a job's handler once, outside its cadence.

        Returns:
            True if the handler completed without raising

        Raises:
            KeyError: If no job has that name
        """
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(f"Unknown job: {name}")
        return await self._execute(job, now or self.clock.now())

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "jobs": {
                job.name: {
                    "state": job.state.value,
                    "interval_seconds": job.schedule.interval.total_seconds(),
                    "next_run_at": job.next_run_at.isoformat() if job.next_run_at else None,
                    "last_fired_at": job.last_fired_at.isoformat() if job.last_fired_at else None,
                    "runs": job.metrics.runs,
                    "failures": job.metrics.failures,
                    "last_duration_ms": job.metrics.last_duration_ms,
                    "last_error": job.metrics.last_error,
                }
                for job in self._jobs.values()
            },
        }

    def _spawn(self, job: Job) -> None:
        job.state = JobState.SCHEDULED
        job._task = asyncio.create_task(self._job_loop(job), name=f"job:{job.name}")

    async def _job_loop(self, job: Job) -> None:
        while self._running:
            now = self.clock.now()
            # A wake-up that reads slightly early must not repeat the last tick
            after = now if job.last_fired_at is None else max(now, job.last_fired_at)
            job.next_run_at = job.schedule.next_run_after(after)
            delay = (job.next_run_at - now).total_seconds()

            try:
                await self.sleep(max(0.0, delay))
            except asyncio.CancelledError:
                break

            if not self._running:
                break

            job.last_fired_at = job.next_run_at
            job._in_tick = True
            try:
                await self._execute(job, job.next_run_at)
            finally:
                job._in_tick = False

    async def _execute(self, job: Job, now: datetime) -> bool:
        previous_state = job.state
        job.state = JobState.RUNNING
        job.metrics.last_started_at = now
        start = time.monotonic()
        logger.info("Starting scheduled job: %s", job.name)

        try:
            await job.handler(now)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            job.metrics.failures += 1
            job.metrics.last_duration_ms = duration_ms
            job.metrics.last_error = str(e)
            logger.error(
                "Error in scheduled job %s after %.0fms: %s",
                job.name,
                duration_ms,
                e,
                exc_info=True,
                extra={"job": job.name},
            )
            return False
        else:
            duration_ms = (time.monotonic() - start) * 1000
            job.metrics.runs += 1
            job.metrics.last_duration_ms = duration_ms
            job.metrics.last_error = None
            logger.info("Completed scheduled job: %s in %.0fms", job.name, duration_ms)
            return True
        finally:
            if self._running and job._task is not None:
                job.state = JobState.SCHEDULED
            else:
                job.state = previous_state if previous_state != JobState.RUNNING else JobState.STOPPED
