"""Mirroring study-group meetings onto Google Calendar.

## Operations

- **create**: token, payload with a fresh Meet request id, insert. Not
  idempotent: resubmitting creates a second remote event.
- **update**: token, payload, full replace of the remote event.
- **delete**: token, existence check, delete. Not-found at either step,
  or an event Google already reports as cancelled, counts as success, so
  repeating a delete has the same observable outcome.

Every operation asks the credential manager for a token first; if that
fails, nothing is sent. Errors from the calendar call are not retried.

## Mirror State

```
Unsynced --create--> Synced --update--> Synced
                     Synced --delete--> Deleted   (terminal)
```
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from study_meetings.calendar.events import DeleteResult, EventSpec, RemoteEventRef
from study_meetings.config import get_settings
from study_meetings.errors import InvalidSyncTransition, NotFoundError

if TYPE_CHECKING:
    from study_meetings.auth.credentials import CredentialManager

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Lifecycle of a meeting's remote mirror."""

    UNSYNCED = "unsynced"
    SYNCED = "synced"
    DELETED = "deleted"


@dataclass
class MeetingMirror:
    """Caller-side record of where a meeting lives remotely.

    Transitions are monotonic; nothing leaves DELETED.
    """

    state: SyncState = SyncState.UNSYNCED
    external_id: str | None = None

    def mark_created(self, ref: RemoteEventRef) -> None:
        if self.state is not SyncState.UNSYNCED:
            raise InvalidSyncTransition(f"Cannot create a mirror that is {self.state.value}")
        self.state = SyncState.SYNCED
        self.external_id = ref.external_id

    def mark_updated(self, ref: RemoteEventRef) -> None:
        if self.state is not SyncState.SYNCED:
            raise InvalidSyncTransition(f"Cannot update a mirror that is {self.state.value}")
        self.external_id = ref.external_id

    def mark_deleted(self) -> None:
        if self.state is not SyncState.SYNCED:
            raise InvalidSyncTransition(f"Cannot delete a mirror that is {self.state.value}")
        self.state = SyncState.DELETED


class CalendarSyncClient:
    """Create, update and delete study-group events on a user's calendar.

    Stateless between calls; the caller keeps the `MeetingMirror`.

    Example:
        ```python
        sync = CalendarSyncClient(credential_manager)

        ref = await sync.create_event(user_id, spec)
        mirror.mark_created(ref)

        result = await sync.delete_event(user_id, mirror.external_id)
        mirror.mark_deleted()
        ```
    """

    def __init__(
        self,
        credentials: CredentialManager,
        calendar_id: str | None = None,
    ):
        """Initialize the sync client.

        Args:
            credentials: Source of token-bound calendar clients
            calendar_id: Target calendar (defaults to the configured one)
        """
        settings = get_settings()

        self.credentials = credentials
        self.calendar_id = calendar_id or settings.google_calendar_id
        self.send_updates = settings.calendar_send_updates
        self.default_time_zone = settings.default_time_zone

    async def create_event(self, user_id: uuid.UUID, spec: EventSpec) -> RemoteEventRef:
        """Create the remote event with a Meet conference attached."""
        client = await self.credentials.get_calendar_client(user_id)
        body = spec.to_api_body(self.default_time_zone)

        logger.info(
            f"Creating Google Calendar event '{spec.title}' "
            f"({len(spec.attendees)} attendees, recurring={spec.is_recurring})"
        )

        try:
            data = await client.insert_event(self.calendar_id, body, self.send_updates)
        except Exception as e:
            logger.error(f"Failed to create Google Calendar event: {e}")
            raise

        ref = RemoteEventRef.from_api(data)
        logger.info(
            f"Created Google Calendar event {ref.external_id} "
            f"(conference {ref.conference_id})"
        )
        return ref

    async def update_event(
        self,
        user_id: uuid.UUID,
        external_id: str,
        spec: EventSpec,
    ) -> RemoteEventRef:
        """Replace the remote event at external_id with the new spec.

        Raises:
            NotFoundError: If the remote event no longer exists
        """
        client = await self.credentials.get_calendar_client(user_id)
        body = spec.to_api_body(self.default_time_zone)

        try:
            data = await client.update_event(
                self.calendar_id, external_id, body, self.send_updates
            )
        except Exception as e:
            logger.error(f"Failed to update Google Calendar event {external_id}: {e}")
            raise

        logger.info(f"Updated Google Calendar event {external_id}")
        return RemoteEventRef.from_api(data)

    async def delete_event(self, user_id: uuid.UUID, external_id: str) -> DeleteResult:
        """Delete the remote event; an already-missing event is a success.

        Raises:
            PermissionDeniedError: Insufficient Google scope
            AuthError: Token rejected between probe and call
            SyncError: Any other provider failure
        """
        client = await self.credentials.get_calendar_client(user_id)

        existing = await client.get_event(self.calendar_id, external_id)
        if existing is None or existing.get("status") == "cancelled":
            logger.warning(f"Google Calendar event {external_id} already deleted")
            return DeleteResult(external_id=external_id, already_deleted=True)

        try:
            await client.delete_event(self.calendar_id, external_id, self.send_updates)
        except NotFoundError:
            logger.warning(f"Google Calendar event {external_id} vanished before delete")
            return DeleteResult(external_id=external_id, already_deleted=True)
        except Exception as e:
            logger.error(f"Failed to delete Google Calendar event {external_id}: {e}")
            raise

        logger.info(f"Deleted Google Calendar event {external_id}")
        return DeleteResult(external_id=external_id)
