"""
Clock and time zone helpers.

The scheduler and the personalization windows never read wall-clock time
inline; they take a Clock so tests can pin "now". Time zone conversion uses
zoneinfo for DST handling, falling back to UTC for unknown zone names.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .logging import get_logger

logger = get_logger(__name__)

UTC = timezone.utc


@runtime_checkable
class Clock(Protocol):
    """Source of the current time (timezone-aware, UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)


@dataclass
class FixedClock:
    """
    Clock pinned to a fixed instant.

    Naive datetimes are interpreted as UTC. `advance()` moves the clock forward.
    """

    current: datetime

    def __post_init__(self) -> None:
        self.current = ensure_utc(self.current)

    def now(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> datetime:
        self.current = self.current + delta
        return self.current


def ensure_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def get_zone(name: str | None) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to UTC."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def parse_time_of_day(value: str) -> time:
    """
    Parse an "HH:MM" string.

    Raises:
        ValueError: If the string is not a valid time of day
    """
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hour=int(parts[0]), minute=int(parts[1]))


def local_date(now: datetime, zone_name: str) -> date:
    """Calendar date of `now` in the given zone."""
    return ensure_utc(now).astimezone(get_zone(zone_name)).date()


def reference_hour(now: datetime, reference_tz: str) -> int:
    """Hour of `now` in the scheduler's reference zone."""
    return ensure_utc(now).astimezone(get_zone(reference_tz)).hour


def delivery_hour(
    time_of_day: str,
    user_tz: str,
    reference_tz: str,
    on: datetime,
) -> int:
    """
    Convert a user's local delivery time to an hour in the reference zone.

    The conversion is anchored on the user's local calendar date of `on`, so
    DST offsets in effect that day are applied.

    Args:
        time_of_day: "HH:MM" in the user's zone
        user_tz: User's IANA zone name
        reference_tz: Scheduler reference zone name
        on: Instant whose local date anchors the conversion

    Returns:
        Hour (0-23) in the reference zone
    """
    user_zone = get_zone(user_tz)
    local_day = ensure_utc(on).astimezone(user_zone).date()
    local_dt = datetime.combine(local_day, parse_time_of_day(time_of_day), tzinfo=user_zone)
    return local_dt.astimezone(get_zone(reference_tz)).hour


def is_weekend(now: datetime, reference_tz: str) -> bool:
    """True on Saturday or Sunday in the reference calendar."""
    return local_date(now, reference_tz).weekday() >= 5


def start_of_day(now: datetime, zone_name: str = "UTC") -> datetime:
    """Midnight of `now`'s calendar day in the given zone, as UTC."""
    zone = get_zone(zone_name)
    day = ensure_utc(now).astimezone(zone).date()
    return datetime.combine(day, time(0, 0), tzinfo=zone).astimezone(UTC)
