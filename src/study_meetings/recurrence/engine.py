"""Recurrence computation for repeating study-group meetings.

Everything in this module is pure and synchronous: no I/O, no shared state.
Functions can be called concurrently without coordination.

## Conventions

- Days of the week are numbered Sunday=0 .. Saturday=6.
- Naive datetimes are treated as UTC.
- Steps are computed in the start time's own timezone, so a meeting at
  19:00 Europe/Berlin stays at 19:00 local across DST changes.
- Monthly steps are anchored on the start date and clamp to the last day of
  shorter months: Jan 31 -> Feb 28/29 -> Mar 31 (never drifting to the 28th).
- Weekly recurrences with explicit days only fire in every ``interval``-th
  week, counted from the week containing the start time. Weeks start on
  Monday, matching the RRULE default ``WKST=MO``.

## Rule Grammar

```
RRULE:FREQ=<DAILY|WEEKLY|MONTHLY>[;INTERVAL=<n>][;BYDAY=<SU,MO,...>][;UNTIL=<YYYYMMDDTHHMMSSZ>]
```
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 52
MIN_INTERVAL = 1
MAX_INTERVAL = 99

# Safety bound for day-by-day searches, multiplied by the interval
WEEKLY_SEARCH_HORIZON_WEEKS = 8

UNTIL_FORMAT = "%Y%m%dT%H%M%SZ"


class RecurrencePattern(str, Enum):
    """Supported recurrence frequencies."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: object) -> RecurrencePattern | None:
        """Parse a pattern name case-insensitively, returning None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


DAY_NAMES_TO_NUMBERS = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

DAY_NUMBERS_TO_NAMES = {number: name.title() for name, number in DAY_NAMES_TO_NUMBERS.items()}


def day_code(day: int) -> str:
    """Two-letter RRULE code for a day number (0 -> "SU")."""
    try:
        return DAY_NUMBERS_TO_NAMES[day][:2].upper()
    except KeyError:
        raise ValueError(f"Invalid day of week: {day!r}") from None


def sunday_based_weekday(value: datetime) -> int:
    """Day of week with Sunday=0 (Python's weekday() has Monday=0)."""
    return (value.weekday() + 1) % 7


def _is_day(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 6


def _is_interval(value: object) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_INTERVAL <= value <= MAX_INTERVAL
    )


def _as_datetime(value: datetime | date) -> datetime:
    """Coerce a date or datetime into an aware datetime (UTC when naive)."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _current_time(now: datetime | None) -> datetime:
    return _as_datetime(now) if now is not None else datetime.now(timezone.utc)


def _require_interval(interval: int) -> None:
    if interval < MIN_INTERVAL:
        raise ValueError(f"interval must be at least {MIN_INTERVAL}, got {interval}")


def format_until(end_date: datetime | date) -> str:
    """Render an end date as an RRULE UNTIL value (UTC, second precision)."""
    return _as_datetime(end_date).astimezone(timezone.utc).strftime(UNTIL_FORMAT)


def validate_recurrence_params(
    pattern: object,
    interval: object,
    days_of_week: Iterable[int] | None = None,
    end_date: datetime | date | None = None,
    *,
    now: datetime | None = None,
) -> list[str]:
    """Check recurrence parameters.

    Never raises. Returns an empty list if and only if the parameters are legal.

    Args:
        pattern: "daily", "weekly" or "monthly" (any case)
        interval: Step between occurrences, 1-99
        days_of_week: Optional day numbers (Sunday=0). None means "same
            weekday as the start"; an explicit empty list is invalid for weekly.
            Daily and monthly series accept no days.
        end_date: Optional end of the series, must be in the future
        now: Reference time for the end-date check (defaults to current UTC time)

    Returns:
        List of human-readable error messages
    """
    errors: list[str] = []

    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        errors.append("Invalid recurrence pattern. Must be daily, weekly, or monthly.")

    if not _is_interval(interval):
        errors.append(f"Invalid interval. Must be between {MIN_INTERVAL} and {MAX_INTERVAL}.")

    if days_of_week is not None:
        try:
            days = list(days_of_week)
        except TypeError:
            days = [days_of_week]
        if parsed is RecurrencePattern.WEEKLY and not days:
            errors.append("Weekly recurrence requires at least one day of the week.")
        elif parsed is not None and parsed is not RecurrencePattern.WEEKLY and days:
            errors.append("Days of the week are only supported for weekly recurrence.")
        if not all(_is_day(day) for day in days):
            errors.append("Invalid day of week. Must be 0-6 (Sunday-Saturday).")

    if end_date is not None:
        if not isinstance(end_date, date):
            errors.append("Invalid end date.")
        elif _as_datetime(end_date) <= _current_time(now):
            errors.append("End date must be in the future.")

    return errors


def generate_recurrence_rule(
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    end_date: datetime | date | None = None,
) -> str:
    """Build the RRULE text sent to Google Calendar.

    Days are rendered in the order supplied. Call
    :func:`validate_recurrence_params` first; this function raises
    ``ValueError`` for an unknown pattern or day rather than emit a rule the
    provider would reject.

    Example:
        >>> generate_recurrence_rule("weekly", 2, [1, 3])
        'RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE'
    """
    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        raise ValueError(f"Unrecognized recurrence pattern: {pattern!r}")

    parts = [f"FREQ={parsed.value.upper()}"]

    if interval > 1:
        parts.append(f"INTERVAL={interval}")

    days = list(days_of_week or [])
    if days:
        parts.append("BYDAY=" + ",".join(day_code(day) for day in days))

    if end_date is not None:
        parts.append(f"UNTIL={format_until(end_date)}")

    return "RRULE:" + ";".join(parts)


def _nth_step(
    anchor: datetime,
    pattern: RecurrencePattern,
    interval: int,
    n: int,
) -> datetime:
    """The n-th occurrence of a fixed-step series, computed from the anchor."""
    if pattern is RecurrencePattern.DAILY:
        return anchor + timedelta(days=n * interval)
    if pattern is RecurrencePattern.WEEKLY:
        return anchor + timedelta(weeks=n * interval)
    return anchor + relativedelta(months=n * interval)


def _steps_before(
    anchor: datetime,
    target: datetime,
    pattern: RecurrencePattern,
    interval: int,
) -> int:
    """Lower bound on the number of whole steps from anchor to target."""
    if pattern is RecurrencePattern.MONTHLY:
        local = target.astimezone(anchor.tzinfo)
        months = (local.year - anchor.year) * 12 + (local.month - anchor.month)
        steps = months // interval
    else:
        days = interval if pattern is RecurrencePattern.DAILY else 7 * interval
        steps = int((target - anchor) / timedelta(days=days))
    # Wall-clock steps can differ from elapsed time by a DST hour
    return max(0, steps - 1)


def _week_start(value: datetime) -> date:
    day = value.date()
    return day - timedelta(days=day.weekday())


def _in_active_week(candidate: datetime, anchor: datetime, interval: int) -> bool:
    weeks = (_week_start(candidate) - _week_start(anchor)).days // 7
    return weeks % interval == 0


def _weekly_matches(
    candidate: datetime,
    anchor: datetime,
    interval: int,
    days: frozenset[int],
) -> bool:
    return sunday_based_weekday(candidate) in days and _in_active_week(
        candidate, anchor, interval
    )


def _search_weekly(
    base: datetime,
    anchor: datetime,
    interval: int,
    days: frozenset[int],
    after: datetime,
) -> datetime | None:
    """Walk forward day by day from base to the first match strictly after `after`."""
    horizon_days = WEEKLY_SEARCH_HORIZON_WEEKS * 7 * interval
    for offset in range(horizon_days + 1):
        candidate = base + timedelta(days=offset)
        if candidate > after and _weekly_matches(candidate, anchor, interval, days):
            return candidate

    logger.warning(
        f"No weekly occurrence on days {sorted(days)} within "
        f"{WEEKLY_SEARCH_HORIZON_WEEKS * interval} weeks of {base.isoformat()}"
    )
    return None


def _day_set(days_of_week: Iterable[int] | None) -> frozenset[int]:
    days = frozenset(days_of_week or ())
    invalid = [day for day in days if not _is_day(day)]
    if invalid:
        raise ValueError(f"Invalid day of week: {invalid}")
    return days


def calculate_next_occurrence(
    start_time: datetime,
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    *,
    now: datetime | None = None,
) -> datetime | None:
    """Find the next time a recurring meeting fires.

    A start time in the future is itself the next occurrence. Otherwise the
    series is advanced from the start time until it passes ``now``. Weekly
    series with explicit days search day by day, at the start's time of day,
    for the earliest permitted day after ``now``.

    Returns:
        The next occurrence, or None for an unrecognized pattern or when the
        weekly search horizon is exhausted
    """
    start = _as_datetime(start_time)
    current_time = _current_time(now)

    if start > current_time:
        return start

    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        return None

    _require_interval(interval)
    days = _day_set(days_of_week)

    if parsed is RecurrencePattern.WEEKLY and days:
        local_now = current_time.astimezone(start.tzinfo)
        base = datetime.combine(local_now.date(), start.timetz())
        return _search_weekly(base, start, interval, days, after=current_time)

    n = _steps_before(start, current_time, parsed, interval)
    candidate = _nth_step(start, parsed, interval, n)
    while candidate <= current_time:
        n += 1
        candidate = _nth_step(start, parsed, interval, n)
    return candidate


def generate_occurrences(
    start_time: datetime,
    end_time: datetime,
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[datetime]:
    """Materialize the occurrences of a series between two instants.

    The result is strictly increasing, lies within ``[start_time, end_time]``
    and never holds more than ``max_occurrences`` entries, whatever the span.
    For weekly series with explicit days the first entry is the first
    permitted day on or after the start time.

    An unrecognized pattern is not an error: the start time is emitted and
    the series stops there.
    """
    start = _as_datetime(start_time)
    end = _as_datetime(end_time)
    occurrences: list[datetime] = []

    if max_occurrences <= 0 or start > end:
        return occurrences

    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        logger.warning(f"Unrecognized recurrence pattern {pattern!r}; stopping after start")
        occurrences.append(start)
        return occurrences

    _require_interval(interval)
    days = _day_set(days_of_week)

    if parsed is RecurrencePattern.WEEKLY and days:
        if _weekly_matches(start, start, interval, days):
            current = start
        else:
            current = _search_weekly(start, start, interval, days, after=start)
        while current is not None and current <= end and len(occurrences) < max_occurrences:
            occurrences.append(current)
            current = _search_weekly(current, start, interval, days, after=current)
        return occurrences

    n = 0
    current = start
    while current <= end and len(occurrences) < max_occurrences:
        occurrences.append(current)
        n += 1
        current = _nth_step(start, parsed, interval, n)

    return occurrences


def _join_names(names: list[str]) -> str:
    if len(names) <= 1:
        return "".join(names)
    return ", ".join(names[:-1]) + " and " + names[-1]


def format_recurrence_description(
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    end_date: datetime | date | None = None,
) -> str:
    """Human-readable summary, e.g. "Every 2 weeks on Monday and Wednesday"."""
    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        return "Custom recurrence"

    count = f"{interval} " if interval > 1 else ""
    plural = "s" if interval > 1 else ""
    days = list(days_of_week or [])

    if parsed is RecurrencePattern.WEEKLY and days:
        names = _join_names([DAY_NUMBERS_TO_NAMES[day] for day in days])
        if interval > 1:
            description = f"Every {count}weeks on {names}"
        else:
            description = f"Every {names}"
    else:
        unit = {
            RecurrencePattern.DAILY: "day",
            RecurrencePattern.WEEKLY: "week",
            RecurrencePattern.MONTHLY: "month",
        }[parsed]
        description = f"Every {count}{unit}{plural}"

    if end_date is not None:
        until = _as_datetime(end_date)
        description += f" until {until:%B} {until.day}, {until.year}"

    return description
