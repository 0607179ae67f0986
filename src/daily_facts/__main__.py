#!/usr/bin/env python3
"""
Daily Facts CLI Entry Point

Process bootstrap for the distribution service.
Run with: python -m daily_facts <command> [args]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime, timezone

from .core.clock import SystemClock
from .core.config import get_settings
from .core.logging import get_logger
from .delivery.sender import LogSender, NotificationSender, WebhookSender
from .delivery.service import JOB_SCHEDULES, DistributionService
from .store.cache import MemoryCache
from .store.migrations import MigrationRunner
from .store.sqlite import SQLiteRepository

logger = get_logger(__name__)


def get_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent, default=str))


def build_sender() -> NotificationSender:
    settings = get_settings()
    if settings.webhook_url:
        return WebhookSender(settings.webhook_url, timeout_seconds=settings.webhook_timeout_seconds)
    logger.warning("No webhook URL configured, notifications will only be logged")
    return LogSender()


async def _close_sender(sender: NotificationSender) -> None:
    if isinstance(sender, WebhookSender):
        await sender.close()


# =============================================================================
# Commands
# =============================================================================


async def _run_service() -> dict:
    repository = SQLiteRepository()
    await repository.initialize()
    sender = build_sender()
    service = DistributionService(repository=repository, sender=sender, cache=MemoryCache())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await service.start()
        await stop_event.wait()
    finally:
        await service.stop()
        await _close_sender(sender)
        await repository.close()

    return {}


async def _tick(job_name: str) -> dict:
    repository = SQLiteRepository()
    await repository.initialize()
    sender = build_sender()
    try:
        service = DistributionService(repository=repository, sender=sender)
        success = await service.run_job(job_name)
    finally:
        await _close_sender(sender)
        await repository.close()

    return {
        "job": job_name,
        "success": success,
        "query_timestamp": get_utc_timestamp(),
    }


async def _status() -> dict:
    settings = get_settings()
    repository = SQLiteRepository()
    await repository.initialize()
    try:
        schema_version = await MigrationRunner(repository.db).get_current_version()
    finally:
        await repository.close()

    now = SystemClock().now()
    return {
        "db_path": str(settings.db_path),
        "schema_version": schema_version,
        "reference_timezone": settings.reference_timezone,
        "jobs": {
            name: {
                "interval_seconds": schedule.interval.total_seconds(),
                "next_run_at": schedule.next_run_after(now).isoformat(),
            }
            for name, schedule in JOB_SCHEDULES.items()
        },
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_run(args: argparse.Namespace) -> dict:
    """Run the scheduler until SIGINT/SIGTERM."""
    return asyncio.run(_run_service())


def cmd_tick(args: argparse.Namespace) -> dict:
    """Run one job immediately."""
    return asyncio.run(_tick(args.job))


def cmd_status(args: argparse.Namespace) -> dict:
    """Show database and job schedule status."""
    return asyncio.run(_status())


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="daily-facts",
        description="Daily facts personalization and delivery scheduler",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the scheduler until interrupted")
    run_parser.set_defaults(func=cmd_run)

    tick_parser = subparsers.add_parser("tick", help="Run one job now")
    tick_parser.add_argument("job", choices=sorted(JOB_SCHEDULES), help="Job name")
    tick_parser.set_defaults(func=cmd_tick)

    status_parser = subparsers.add_parser("status", help="Show database and schedule status")
    status_parser.set_defaults(func=cmd_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        result = args.func(args)
        if isinstance(result, dict) and result:
            output_json(result)
            if result.get("success") is False:
                return 1
        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_json(
            {
                "error": "command_error",
                "message": str(e),
                "command": args.command,
                "query_timestamp": get_utc_timestamp(),
            }
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
