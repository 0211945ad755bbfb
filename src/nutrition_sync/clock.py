"""Local timezone date and time helpers."""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

BREAKFAST_UNTIL_HOUR = 10
LUNCH_UNTIL_HOUR = 14
SNACK_UNTIL_HOUR = 18


class Clock(Protocol):
    """Source of the current local time."""

    def now(self) -> datetime:
        """Return the current timezone-aware local time."""


@dataclass
class LocalClock(Clock):
    """Clock bound to a configured zone, or the system zone when unset."""

    timezone_name: str | None = None

    def now(self) -> datetime:
        """Return the current local time."""
        if self.timezone_name:
            return datetime.now(tz=ZoneInfo(self.timezone_name))
        return datetime.now().astimezone()


def today(clock: Clock) -> date:
    """Return the local calendar date."""
    return clock.now().date()


def local_date_string(clock: Clock) -> str:
    """Return the local date as YYYY-MM-DD."""
    return date_string(today(clock))


def local_time_string(clock: Clock) -> str:
    """Return the local time as HH:MM:SS."""
    return clock.now().strftime("%H:%M:%S")


def date_string(day: date) -> str:
    return day.isoformat()


def parse_date(value: object) -> date | None:
    """Parse a YYYY-MM-DD string, returning None when malformed."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def date_days_ago(clock: Clock, days: int) -> date:
    return today(clock) - timedelta(days=days)


def is_today(clock: Clock, day: date) -> bool:
    return day == today(clock)


def is_yesterday(clock: Clock, day: date) -> bool:
    return day == date_days_ago(clock, 1)


def date_range(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def meal_type_for(hour: int) -> str:
    """Return the meal type implied by an hour of the day."""
    if hour < BREAKFAST_UNTIL_HOUR:
        return "breakfast"
    if hour < LUNCH_UNTIL_HOUR:
        return "lunch"
    if hour < SNACK_UNTIL_HOUR:
        return "snack"
    return "dinner"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are read as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
