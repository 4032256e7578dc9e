"""Pytest fixtures for study meetings tests.

This module provides test fixtures that ensure:
1. No external API calls are made (Google OAuth, Google Calendar)
2. Credential records live in memory unless a test opts into SQLite
3. Isolated test environment with controlled configuration
"""

import os
import uuid
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# Set test environment BEFORE importing application modules
os.environ.setdefault("SECRET_KEY", "test-secret-key-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")

from study_meetings.auth.google import EVENTS_SCOPE, GoogleAccount, GoogleOAuth, TokenGrant
from study_meetings.database.credential_store import CredentialRecord, CredentialStore


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings cache before each test to ensure clean state."""
    from study_meetings.auth.google import get_google_oauth
    from study_meetings.config import get_settings

    get_settings.cache_clear()
    get_google_oauth.cache_clear()
    yield
    get_settings.cache_clear()
    get_google_oauth.cache_clear()


@pytest.fixture
def mock_httpx_client():
    """Mock httpx client to prevent any external HTTP calls."""
    with patch("httpx.AsyncClient") as mock_client:
        mock_instance = AsyncMock()
        mock_instance.request = AsyncMock()
        mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
        mock_instance.__aexit__ = AsyncMock(return_value=None)
        mock_client.return_value = mock_instance
        yield mock_instance


def make_response(status_code: int, payload: Any = None, text: str = "") -> MagicMock:
    """Fake httpx.Response with the attributes the OAuth client reads."""
    response = MagicMock()
    response.status_code = status_code
    response.text = text or str(payload)
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


# =============================================================================
# Fakes
# =============================================================================


class InMemoryCredentialStore(CredentialStore):
    """Credential store keyed by user id, for unit tests."""

    def __init__(self) -> None:
        self.records: dict[uuid.UUID, CredentialRecord] = {}
        self.update_calls: list[tuple[str, str]] = []

    def add_user(
        self,
        refresh_token: str | None = None,
        access_token: str | None = None,
    ) -> uuid.UUID:
        user_id = uuid.uuid4()
        self.records[user_id] = CredentialRecord(
            user_id=user_id,
            refresh_token=refresh_token,
            access_token=access_token,
        )
        return user_id

    async def get_by_user_id(self, user_id: uuid.UUID) -> CredentialRecord | None:
        record = self.records.get(user_id)
        if record is None:
            return None
        return CredentialRecord(**vars(record))

    async def update_access_token(self, refresh_token: str, access_token: str) -> int:
        self.update_calls.append((refresh_token, access_token))
        updated = 0
        for record in self.records.values():
            if record.refresh_token == refresh_token:
                record.access_token = access_token
                updated += 1
        return updated

    async def save(self, record: CredentialRecord) -> None:
        for other in self.records.values():
            if (
                other.user_id != record.user_id
                and record.refresh_token
                and other.refresh_token == record.refresh_token
            ):
                raise ValueError("refresh token already linked")
        self.records[record.user_id] = CredentialRecord(**vars(record))

    async def delete(self, user_id: uuid.UUID) -> bool:
        record = self.records.get(user_id)
        if record is None or not (record.refresh_token or record.access_token):
            return False
        self.records[user_id] = CredentialRecord(user_id=user_id)
        return True


class FakeCalendarClient:
    """Stands in for GoogleCalendarClient; also acts as its own factory.

    Set `errors["<method>"]` to an exception to make that call fail.
    """

    def __init__(self) -> None:
        self.access_token: str | None = None
        self.tokens: list[str] = []
        self.calls: list[tuple[Any, ...]] = []
        self.errors: dict[str, Exception] = {}
        self.events: dict[str, dict[str, Any]] = {}
        self.next_id = 1

    def __call__(self, access_token: str) -> "FakeCalendarClient":
        self.access_token = access_token
        self.tokens.append(access_token)
        return self

    def _maybe_fail(self, name: str) -> None:
        error = self.errors.get(name)
        if error is not None:
            raise error

    def called(self, name: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == name]

    async def probe(self) -> None:
        self.calls.append(("probe",))
        self._maybe_fail("probe")

    async def get_event(self, calendar_id: str, event_id: str) -> dict[str, Any] | None:
        self.calls.append(("get_event", calendar_id, event_id))
        self._maybe_fail("get_event")
        return self.events.get(event_id)

    async def insert_event(
        self, calendar_id: str, body: dict[str, Any], send_updates: str = "all"
    ) -> dict[str, Any]:
        self.calls.append(("insert_event", calendar_id, body, send_updates))
        self._maybe_fail("insert_event")
        event_id = f"evt{self.next_id}"
        self.next_id += 1
        event = {
            "id": event_id,
            "conferenceData": {"conferenceId": f"abc-defg-{self.next_id:03d}"},
            "hangoutLink": f"https://meet.google.com/abc-defg-{self.next_id:03d}",
            "attendees": body.get("attendees", []),
        }
        self.events[event_id] = event
        return event

    async def update_event(
        self,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
        send_updates: str = "all",
    ) -> dict[str, Any]:
        self.calls.append(("update_event", calendar_id, event_id, body, send_updates))
        self._maybe_fail("update_event")
        event = dict(self.events.get(event_id, {"id": event_id}))
        event["attendees"] = body.get("attendees", [])
        self.events[event_id] = event
        return event

    async def delete_event(
        self, calendar_id: str, event_id: str, send_updates: str = "all"
    ) -> None:
        self.calls.append(("delete_event", calendar_id, event_id, send_updates))
        self._maybe_fail("delete_event")
        self.events.pop(event_id, None)


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def calendar_client() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def mock_google_oauth() -> MagicMock:
    """Mock Google OAuth to prevent external authentication calls."""
    oauth = MagicMock(spec=GoogleOAuth)
    oauth.refresh_access_token = AsyncMock(
        side_effect=lambda refresh_token: TokenGrant(
            access_token="refreshed-access-token",
            refresh_token=refresh_token,
        )
    )
    oauth.exchange_code = AsyncMock(
        return_value=TokenGrant(
            access_token="linked-access-token",
            refresh_token="linked-refresh-token",
            scopes=frozenset([EVENTS_SCOPE, "openid", "email"]),
        )
    )
    oauth.get_account = AsyncMock(
        return_value=GoogleAccount(
            email="student@example.com",
            name="Test Student",
            verified=True,
        )
    )
    oauth.revoke_token = AsyncMock(return_value=True)
    return oauth


@pytest.fixture
def now() -> datetime:
    """Fixed reference time: Monday 2026-10-19 12:00 UTC."""
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
