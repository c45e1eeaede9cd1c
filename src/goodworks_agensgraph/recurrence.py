"""Expansion of recurring GoodWorks into dated instances.

Patterns are ``TYPE:interval[:extra]`` strings:

- ``DAILY:1``
- ``WEEKLY:1:MON,WED,FRI``
- ``MONTHLY:1:15``
- ``YEARLY:1:3:15`` (month, then day)

Everything here is pure; no graph access.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from .models import GoodWork

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

DEFAULT_MAX_INSTANCES = 52
DEFAULT_UPCOMING_COUNT = 5
MAX_UPCOMING_ITERATIONS = 100

RECURRENCE_TYPES = {"DAILY", "WEEKLY", "MONTHLY", "YEARLY"}

# Monday == 0, as returned by datetime.weekday()
WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_WEEKDAY_LOOKUP = {
    **{name.upper(): index for index, name in enumerate(WEEKDAY_NAMES)},
    "MONDAY": 0,
    "TUESDAY": 1,
    "WEDNESDAY": 2,
    "THURSDAY": 3,
    "FRIDAY": 4,
    "SATURDAY": 5,
    "SUNDAY": 6,
}


@dataclass
class RecurrencePattern:
    type: Optional[str]
    interval: int = 1
    days_of_week: List[int] = field(default_factory=list)
    day_of_month: int = 1
    month_of_year: int = 1


def _parse_int(value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        return default


def parse_pattern(pattern: Optional[str]) -> RecurrencePattern:
    """Parse a pattern string. Unknown types parse with ``type=None``."""
    parts = (pattern or "").split(":")
    kind = parts[0].strip().upper()
    parsed = RecurrencePattern(type=kind if kind in RECURRENCE_TYPES else None)

    if len(parts) > 1:
        parsed.interval = _parse_int(parts[1], 1)
    if parsed.interval < 1:
        parsed.interval = 1

    if parsed.type == "WEEKLY" and len(parts) > 2:
        days = []
        for token in parts[2].split(","):
            day = _WEEKDAY_LOOKUP.get(token.strip().upper())
            if day is not None and day not in days:
                days.append(day)
        parsed.days_of_week = days
    elif parsed.type == "MONTHLY" and len(parts) > 2:
        parsed.day_of_month = _parse_int(parts[2], 1)
    elif parsed.type == "YEARLY" and len(parts) > 3:
        parsed.month_of_year = _parse_int(parts[2], 1)
        parsed.day_of_month = _parse_int(parts[3], 1)

    return parsed


def _next_weekly(current: datetime, pattern: RecurrencePattern) -> datetime:
    if not pattern.days_of_week:
        return current + timedelta(days=7 * pattern.interval)

    candidate = current + timedelta(days=1)
    for _ in range(7 * pattern.interval + 7):
        if candidate.weekday() in pattern.days_of_week:
            return candidate
        candidate += timedelta(days=1)

    return current + timedelta(days=7 * pattern.interval)


def next_occurrence(current: datetime, pattern: RecurrencePattern) -> datetime:
    if pattern.type == "DAILY":
        return current + timedelta(days=pattern.interval)
    if pattern.type == "WEEKLY":
        return _next_weekly(current, pattern)
    if pattern.type == "MONTHLY":
        return current + relativedelta(months=pattern.interval)
    if pattern.type == "YEARLY":
        return current + relativedelta(years=pattern.interval)
    return current + timedelta(days=7)


def _instance(master: GoodWork, start: datetime) -> GoodWork:
    instance = master.model_copy(deep=True)
    instance.start_time = start
    if master.end_time is not None and master.start_time is not None:
        instance.end_time = start + (master.end_time - master.start_time)
    instance.is_recurring = True
    return instance


def expand_instances(
    master: GoodWork, max_instances: int = DEFAULT_MAX_INSTANCES
) -> List[GoodWork]:
    """Expand a recurring GoodWork into dated copies.

    Non-recurring works, works without a pattern or start time, and works
    whose recurrence ends before they start all come back as ``[master]``.
    Otherwise the first instance falls on the start time and stepping stops
    at the recurrence end date (default one year after the start) or after
    ``max_instances`` copies.
    """
    if not master.is_recurring or not master.recurrence_pattern or master.start_time is None:
        return [master]

    pattern = parse_pattern(master.recurrence_pattern)
    current = master.start_time
    end_date = master.recurrence_end_date or current + relativedelta(years=1)
    end_date = _align(end_date, current)

    if end_date < current:
        return [master]

    instances = []
    while current <= end_date and len(instances) < max_instances:
        instances.append(_instance(master, current))
        current = next_occurrence(current, pattern)

    logger.debug(
        f"Expanded '{master.recurrence_pattern}' into {len(instances)} instances"
    )
    return instances


def _align(value: datetime, reference: datetime) -> datetime:
    """Give value the same naive/aware kind as reference; naive means UTC."""
    if reference.tzinfo is None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if reference.tzinfo is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def upcoming_occurrences(
    work: GoodWork,
    count: int = DEFAULT_UPCOMING_COUNT,
    now: Optional[datetime] = None,
) -> List[datetime]:
    """Next ``count`` start times at or after ``now``.

    A start time in the past is first moved to today at the same time of day.
    At most ``MAX_UPCOMING_ITERATIONS`` steps are taken, so a pattern that
    never reaches the future still terminates.
    """
    if not work.is_recurring or work.start_time is None:
        return []

    now = _align(now or datetime.now(timezone.utc), work.start_time)
    pattern = parse_pattern(work.recurrence_pattern)
    current = work.start_time

    if current < now:
        current = datetime.combine(now.date(), current.timetz())

    end_date = _align(work.recurrence_end_date or current + relativedelta(years=1), current)

    occurrences = []
    iterations = 0
    while len(occurrences) < count and current <= end_date and iterations < MAX_UPCOMING_ITERATIONS:
        if current >= now:
            occurrences.append(current)
        current = next_occurrence(current, pattern)
        iterations += 1

    return occurrences


def format_pattern(pattern: Optional[str]) -> str:
    """Human-readable description of a recurrence pattern."""
    if not pattern:
        return "Does not repeat"

    parsed = parse_pattern(pattern)
    if parsed.type == "DAILY":
        suffix = "s" if parsed.interval > 1 else ""
        return f"Daily (every {parsed.interval} day{suffix})"
    if parsed.type == "WEEKLY":
        return "Weekly on " + ", ".join(WEEKDAY_NAMES[day] for day in parsed.days_of_week)
    if parsed.type == "MONTHLY":
        return f"Monthly on day {parsed.day_of_month}"
    if parsed.type == "YEARLY":
        return f"Yearly on {parsed.month_of_year}/{parsed.day_of_month}"
    return "Does not repeat"
