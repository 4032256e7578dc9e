"""Event payloads exchanged with Google Calendar.

## Request Body

```
summary, description,
start{dateTime,timeZone}, end{dateTime,timeZone},
attendees[{email}],
conferenceData.createRequest{requestId, conferenceSolutionKey.type="hangoutsMeet"},
recurrence[<RRULE text>],
guestsCanModify=false, guestsCanInviteOthers=false, guestsCanSeeOtherGuests=true
```

## Response Fields Used

`id`, `conferenceData.conferenceId`, `hangoutLink`, `attendees[]`
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

REQUEST_ID_PREFIX = "study-group"
_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_conference_request_id() -> str:
    """Client-generated Meet request id: millisecond timestamp plus random suffix.

    Distinct per call, so resubmitting a request provisions a new conference.
    This avoids payload collisions; it is not an idempotency key.
    """
    suffix = "".join(secrets.choice(_REQUEST_ID_ALPHABET) for _ in range(6))
    return f"{REQUEST_ID_PREFIX}-{int(time.time() * 1000)}-{suffix}"


class EventSpec(BaseModel):
    """A request to schedule a study-group meeting on Google Calendar."""

    title: str = Field(min_length=1)
    description: str | None = None
    start_time: datetime
    end_time: datetime
    time_zone: str | None = Field(
        default=None,
        description="IANA zone or UTC; defaults to the configured zone",
    )
    attendees: list[str] = Field(default_factory=list, description="Attendee e-mails")
    recurrence_rule: str | None = Field(
        default=None,
        description="RRULE text, forwarded verbatim",
    )
    conference_request_id: str | None = None

    @model_validator(mode="after")
    def check_times(self) -> EventSpec:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_rule)

    def to_api_body(self, default_time_zone: str = "UTC") -> dict[str, Any]:
        """Build the Calendar API event resource."""
        time_zone = self.time_zone or default_time_zone

        body: dict[str, Any] = {
            "summary": self.title,
            "description": self.description or f"Study Group: {self.title}",
            "start": {
                "dateTime": self.start_time.isoformat(),
                "timeZone": time_zone,
            },
            "end": {
                "dateTime": self.end_time.isoformat(),
                "timeZone": time_zone,
            },
            "attendees": [{"email": email} for email in self.attendees],
            "conferenceData": {
                "createRequest": {
                    "requestId": self.conference_request_id or new_conference_request_id(),
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "guestsCanModify": False,
            "guestsCanInviteOthers": False,
            "guestsCanSeeOtherGuests": True,
        }

        if self.recurrence_rule:
            body["recurrence"] = [self.recurrence_rule]

        return body


@dataclass
class RemoteEventRef:
    """Where a meeting lives on Google Calendar.

    The caller persists the mapping from its meeting to `external_id`.
    """

    external_id: str
    conference_id: str | None = None
    join_link: str | None = None
    attendees: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteEventRef:
        """Create from Google Calendar API response."""
        conference = data.get("conferenceData") or {}
        return cls(
            external_id=data["id"],
            conference_id=conference.get("conferenceId"),
            join_link=data.get("hangoutLink"),
            attendees=data.get("attendees", []),
        )


@dataclass
class DeleteResult:
    """Outcome of a successful delete.

    `already_deleted` is set when Google no longer had the event, either at
    the existence check or at the delete call itself.
    """

    external_id: str
    already_deleted: bool = False
