"""Tests for the Google Calendar API wrapper."""

import json
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError

from study_meetings.calendar.google_calendar import GoogleCalendarClient, translate_http_error
from study_meetings.errors import (
    AuthError,
    NotFoundError,
    PermissionDeniedError,
    SyncError,
)


def make_http_error(status: int, message: str = "error") -> HttpError:
    resp = httplib2.Response({"status": str(status), "reason": message})
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp, content)


@pytest.fixture
def service() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(service) -> GoogleCalendarClient:
    return GoogleCalendarClient("access-token", service=service)


class TestTranslateHttpError:
    """Status code mapping."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            (401, AuthError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (410, NotFoundError),
            (400, SyncError),
            (500, SyncError),
            (503, SyncError),
        ],
    )
    def test_mapping(self, status, expected):
        error = translate_http_error(make_http_error(status))
        assert type(error) is expected
        assert error.status_code == status

    def test_keeps_reason(self):
        error = translate_http_error(make_http_error(403, "Insufficient Permission"))
        assert "Insufficient Permission" in error.message


class TestGoogleCalendarClient:
    """Calls against a mocked discovery resource."""

    @pytest.mark.asyncio
    async def test_probe(self, client, service):
        await client.probe()
        service.calendarList.return_value.list.assert_called_once_with(maxResults=1)

    @pytest.mark.asyncio
    async def test_probe_unauthorized(self, client, service):
        request = service.calendarList.return_value.list.return_value
        request.execute.side_effect = make_http_error(401, "Invalid Credentials")

        with pytest.raises(AuthError):
            await client.probe()

    @pytest.mark.asyncio
    async def test_insert_requests_conference(self, client, service):
        request = service.events.return_value.insert.return_value
        request.execute.return_value = {"id": "evt1"}

        created = await client.insert_event("primary", {"summary": "Algebra"}, "none")

        assert created == {"id": "evt1"}
        service.events.return_value.insert.assert_called_once_with(
            calendarId="primary",
            body={"summary": "Algebra"},
            conferenceDataVersion=1,
            sendUpdates="none",
        )

    @pytest.mark.asyncio
    async def test_update_uses_full_replace(self, client, service):
        events = service.events.return_value
        events.update.return_value.execute.return_value = {"id": "evt1"}

        await client.update_event("primary", "evt1", {"summary": "Geometry"})

        events.update.assert_called_once()
        events.patch.assert_not_called()
        assert events.update.call_args.kwargs["eventId"] == "evt1"

    @pytest.mark.asyncio
    async def test_get_event_missing(self, client, service):
        request = service.events.return_value.get.return_value
        request.execute.side_effect = make_http_error(404, "Not Found")

        assert await client.get_event("primary", "gone") is None

    @pytest.mark.asyncio
    async def test_get_event_deleted(self, client, service):
        request = service.events.return_value.get.return_value
        request.execute.side_effect = make_http_error(410, "Resource has been deleted")

        assert await client.get_event("primary", "gone") is None

    @pytest.mark.asyncio
    async def test_delete_not_found_raises(self, client, service):
        request = service.events.return_value.delete.return_value
        request.execute.side_effect = make_http_error(404)

        with pytest.raises(NotFoundError):
            await client.delete_event("primary", "gone")

    @pytest.mark.asyncio
    async def test_transport_error(self, client, service):
        request = service.events.return_value.get.return_value
        request.execute.side_effect = TimeoutError("timed out")

        with pytest.raises(SyncError):
            await client.get_event("primary", "evt1")

    @pytest.mark.asyncio
    async def test_httplib2_error(self, client, service):
        request = service.events.return_value.delete.return_value
        request.execute.side_effect = httplib2.ServerNotFoundError("no route")

        with pytest.raises(SyncError):
            await client.delete_event("primary", "evt1")

    @pytest.mark.asyncio
    async def test_refresh_error_is_auth_error(self, client, service):
        request = service.calendarList.return_value.list.return_value
        request.execute.side_effect = RefreshError("credentials cannot be refreshed")

        with pytest.raises(AuthError):
            await client.probe()


class TestBuiltClient:
    """Clients built from a bare access token."""

    def test_build_deferred_until_first_call(self):
        with patch("study_meetings.calendar.google_calendar.build") as build:
            GoogleCalendarClient("access-token")
        build.assert_not_called()

    @pytest.mark.asyncio
    async def test_service_built_once(self):
        with patch("study_meetings.calendar.google_calendar.build") as build:
            client = GoogleCalendarClient("access-token")
            await client.probe()
            await client.get_event("primary", "evt1")

        build.assert_called_once()
        assert "credentials" not in build.call_args.kwargs

    @pytest.mark.asyncio
    async def test_expired_token_raises_auth_error(self):
        resp = httplib2.Response({"status": "401", "content-type": "application/json"})
        content = json.dumps(
            {"error": {"code": 401, "message": "Request had invalid authentication credentials."}}
        ).encode()
        client = GoogleCalendarClient("expired-token")

        with patch.object(httplib2.Http, "request", return_value=(resp, content)) as request:
            with pytest.raises(AuthError) as exc_info:
                await client.probe()

        assert exc_info.value.status_code == 401
        request.assert_called_once()
        headers = request.call_args.kwargs.get("headers") or request.call_args.args[3]
        assert headers["authorization"] == "Bearer expired-token"
