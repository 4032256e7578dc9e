"""Recurrence engine.

Turns a recurrence specification (pattern, interval, days of week, end date)
into:

- validation messages for bad input
- the RRULE text forwarded verbatim to Google Calendar
- the next occurrence after "now"
- a bounded, strictly increasing list of occurrences

All functions are pure; see `study_meetings.recurrence.engine` for the
calendar-arithmetic conventions.
"""

from study_meetings.recurrence.engine import (
    DAY_NAMES_TO_NUMBERS,
    DAY_NUMBERS_TO_NAMES,
    DEFAULT_MAX_OCCURRENCES,
    RecurrencePattern,
    calculate_next_occurrence,
    format_recurrence_description,
    generate_occurrences,
    generate_recurrence_rule,
    validate_recurrence_params,
)
from study_meetings.recurrence.spec import RecurrenceSpec

__all__ = [
    "DAY_NAMES_TO_NUMBERS",
    "DAY_NUMBERS_TO_NAMES",
    "DEFAULT_MAX_OCCURRENCES",
    "RecurrencePattern",
    "RecurrenceSpec",
    "calculate_next_occurrence",
    "format_recurrence_description",
    "generate_occurrences",
    "generate_recurrence_rule",
    "validate_recurrence_params",
]
