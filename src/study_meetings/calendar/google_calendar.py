"""Google Calendar API client.

Thin awaitable wrapper over `google-api-python-client`. The discovery client
is blocking, so every `execute()` runs in a worker thread.

## API Documentation

https://developers.google.com/calendar/api/v3/reference

## Error Mapping

Every `HttpError` is translated at this boundary:

| Status     | Raised                 |
|------------|------------------------|
| 401        | AuthError              |
| 403        | PermissionDeniedError  |
| 404, 410   | NotFoundError          |
| other      | SyncError              |

Transport failures and timeouts also surface as SyncError. No call is
retried here, and the transport never refreshes the token itself: a 401
reaches the caller as AuthError so the credential manager can refresh.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from study_meetings.errors import (
    AuthError,
    NotFoundError,
    PermissionDeniedError,
    StudyMeetingsError,
    SyncError,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 30


def _error_message(error: HttpError) -> str:
    reason = getattr(error, "reason", None)
    return str(reason) if reason else str(error)


def translate_http_error(error: HttpError) -> StudyMeetingsError:
    """Map a Calendar API error onto the study-meetings taxonomy."""
    status = error.resp.status
    message = _error_message(error)

    if status == 401:
        return AuthError(f"Google Calendar unauthorized: {message}", status_code=status)
    if status == 403:
        return PermissionDeniedError(
            f"Google Calendar permission denied: {message}", status_code=status
        )
    if status in (404, 410):
        return NotFoundError(f"Google Calendar resource not found: {message}", status_code=status)
    return SyncError(f"Google Calendar error: {message}", status_code=status)


class GoogleCalendarClient:
    """Client for Google Calendar API, bound to one access token.

    Example:
        ```python
        client = GoogleCalendarClient(access_token)

        await client.probe()
        created = await client.insert_event("primary", body)
        await client.delete_event("primary", created["id"])
        ```
    """

    def __init__(self, access_token: str, service: Any | None = None):
        """Initialize the client.

        Args:
            access_token: OAuth access token
            service: Prebuilt discovery resource (built from the token on
                first use if omitted)
        """
        self.access_token = access_token
        self._service = service

    def _build_service(self) -> Any:
        # No refresh fields on these credentials: a 401 must come back as HttpError
        http = google_auth_httplib2.AuthorizedHttp(
            Credentials(token=self.access_token),
            http=httplib2.Http(timeout=REQUEST_TIMEOUT_SECONDS),
            refresh_status_codes=(),
        )
        return build("calendar", "v3", http=http, cache_discovery=False)

    async def _get_service(self) -> Any:
        if self._service is None:
            # build() parses the discovery document synchronously
            self._service = await asyncio.to_thread(self._build_service)
        return self._service

    async def _execute(self, request: Any) -> Any:
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            raise translate_http_error(e) from e
        except RefreshError as e:
            raise AuthError(f"Google Calendar unauthorized: {e}", status_code=401) from e
        except (httplib2.HttpLib2Error, OSError) as e:
            # TimeoutError is an OSError
            raise SyncError(f"Google Calendar transport error: {e}") from e

    async def probe(self) -> None:
        """Cheap read-only call that fails with AuthError on a dead token."""
        service = await self._get_service()
        await self._execute(service.calendarList().list(maxResults=1))

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any] | None:
        """Get a single event by ID.

        Returns:
            Event resource, or None if it does not exist (or was deleted)
        """
        try:
            service = await self._get_service()
            return await self._execute(
                service.events().get(calendarId=calendar_id, eventId=event_id)
            )
        except NotFoundError:
            return None

    async def insert_event(
        self,
        calendar_id: str,
        body: dict[str, Any],
        send_updates: str = "all",
    ) -> dict[str, Any]:
        """Create an event, provisioning any requested Meet conference."""
        service = await self._get_service()
        return await self._execute(
            service.events().insert(
                calendarId=calendar_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates=send_updates,
            )
        )

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
        send_updates: str = "all",
    ) -> dict[str, Any]:
        """Replace an event entirely (PUT semantics, not a patch)."""
        service = await self._get_service()
        return await self._execute(
            service.events().update(
                calendarId=calendar_id,
                eventId=event_id,
                body=body,
                conferenceDataVersion=1,
                sendUpdates=send_updates,
            )
        )

    async def delete_event(
        self,
        calendar_id: str,
        event_id: str,
        send_updates: str = "all",
    ) -> None:
        service = await self._get_service()
        await self._execute(
            service.events().delete(
                calendarId=calendar_id,
                eventId=event_id,
                sendUpdates=send_updates,
            )
        )
