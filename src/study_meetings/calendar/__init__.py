"""Calendar integration module.

Mirrors study-group meetings onto Google Calendar with Google Meet links.

## Features

- Create events with a Meet conference and optional RRULE recurrence
- Replace events when a meeting changes
- Delete events, treating already-deleted events as success
- Track each meeting's mirror state (unsynced, synced, deleted)

## Google Calendar API

Uses the Google Calendar API v3:
- https://developers.google.com/calendar/api/v3/reference
"""

from study_meetings.calendar.google_calendar import (
    GoogleCalendarClient,
    translate_http_error,
)
from study_meetings.calendar.events import (
    DeleteResult,
    EventSpec,
    RemoteEventRef,
    new_conference_request_id,
)
from study_meetings.calendar.sync import (
    CalendarSyncClient,
    MeetingMirror,
    SyncState,
)

__all__ = [
    "GoogleCalendarClient",
    "translate_http_error",
    "DeleteResult",
    "EventSpec",
    "RemoteEventRef",
    "new_conference_request_id",
    "CalendarSyncClient",
    "MeetingMirror",
    "SyncState",
]
