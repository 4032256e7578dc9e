"""Recurrence specification model."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from study_meetings.errors import RecurrenceValidationError
from study_meetings.recurrence.engine import (
    DEFAULT_MAX_OCCURRENCES,
    calculate_next_occurrence,
    format_recurrence_description,
    generate_occurrences,
    generate_recurrence_rule,
    validate_recurrence_params,
)


class RecurrenceSpec(BaseModel):
    """How a meeting repeats.

    Fields are deliberately loose so that an invalid request can still be
    represented and reported through :meth:`check`.

    Example:
        ```python
        spec = RecurrenceSpec(pattern="weekly", interval=2, days_of_week=[1, 3])
        spec.check()        # []
        spec.to_rule()      # "RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE"
        ```
    """

    pattern: str = Field(description="daily, weekly or monthly")
    interval: int = Field(default=1, description="Step between occurrences (1-99)")
    days_of_week: list[int] | None = Field(
        default=None,
        description="Day numbers, Sunday=0. None means the start's weekday.",
    )
    end_date: datetime | date | None = Field(
        default=None,
        description="Last instant the series may fire",
    )

    def check(self, now: datetime | None = None) -> list[str]:
        """Validation messages; empty when the recurrence is legal."""
        return validate_recurrence_params(
            self.pattern,
            self.interval,
            self.days_of_week,
            self.end_date,
            now=now,
        )

    def ensure_valid(self, now: datetime | None = None) -> None:
        """Raise RecurrenceValidationError if :meth:`check` reports anything."""
        errors = self.check(now)
        if errors:
            raise RecurrenceValidationError(errors)

    def to_rule(self) -> str:
        return generate_recurrence_rule(
            self.pattern, self.interval, self.days_of_week, self.end_date
        )

    def next_occurrence(
        self,
        start_time: datetime,
        now: datetime | None = None,
    ) -> datetime | None:
        return calculate_next_occurrence(
            start_time, self.pattern, self.interval, self.days_of_week, now=now
        )

    def occurrences(
        self,
        start_time: datetime,
        end_time: datetime | None = None,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    ) -> list[datetime]:
        """Occurrences from start_time up to end_time (or end_date)."""
        if end_time is None:
            if self.end_date is None:
                raise ValueError("end_time is required when the recurrence has no end_date")
            end_time = self.end_date
        if not isinstance(end_time, datetime):
            end_time = datetime.combine(end_time, datetime.max.time())
        return generate_occurrences(
            start_time,
            end_time,
            self.pattern,
            self.interval,
            self.days_of_week,
            max_occurrences,
        )

    def describe(self) -> str:
        return format_recurrence_description(
            self.pattern, self.interval, self.days_of_week, self.end_date
        )
