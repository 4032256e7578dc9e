"""Study Meetings.

Recurring study-group meetings mirrored onto Google Calendar:

- `study_meetings.recurrence`: pure recurrence arithmetic and RRULE text
- `study_meetings.auth`: Google OAuth and the credential lifecycle
- `study_meetings.calendar`: event create/update/delete against Google Calendar
- `study_meetings.scheduler`: start/stop handle for the reminder sweep
"""

__version__ = "0.1.0"
