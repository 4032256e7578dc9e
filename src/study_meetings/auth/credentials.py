"""Credential lifecycle for a user's Google Calendar link.

## Token Validation Strategy

Probe first, then refresh. A cached access token is checked with a cheap
read-only call (`calendarList.list(maxResults=1)`) before it is handed out:

1. No user -> NotFoundError
2. No refresh token on file -> MissingCredentialError
3. Cached token and probe succeeds -> cached token
4. Cached token and probe says 401 -> exactly one refresh, new token
5. Cached token and probe fails otherwise -> that error propagates
6. No cached token -> refresh directly, no probe

The probe costs one round-trip per operation but never issues a doomed
mutation with a dead token. A token can still expire between probe and use;
that surfaces from the calendar call as AuthError and is not retried.

## Concurrency

Refreshes are not locked. Two concurrent refreshes for one user both
succeed at Google and the store keeps whichever write lands last.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from study_meetings.auth.google import EVENTS_SCOPE, GoogleOAuth, get_google_oauth
from study_meetings.calendar.google_calendar import GoogleCalendarClient
from study_meetings.database.credential_store import CredentialRecord, CredentialStore
from study_meetings.errors import (
    AuthError,
    MissingCredentialError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GoogleCalendarClient]


class CredentialManager:
    """Hands out usable Google access tokens for users.

    Example:
        ```python
        manager = CredentialManager(SqlCredentialStore(get_session_factory()))
        token = await manager.get_valid_access_token(user_id)
        ```
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth: GoogleOAuth | None = None,
        client_factory: ClientFactory = GoogleCalendarClient,
    ):
        """Initialize the manager.

        Args:
            store: Durable per-user credential records
            oauth: Google OAuth client (cached default if omitted)
            client_factory: Builds a calendar client from an access token
        """
        self.store = store
        self.oauth = oauth or get_google_oauth()
        self.client_factory = client_factory

    async def _load_linked(self, user_id: uuid.UUID) -> CredentialRecord:
        record = await self.store.get_by_user_id(user_id)
        if record is None:
            raise NotFoundError(f"User {user_id} not found")
        if not record.refresh_token:
            raise MissingCredentialError(
                f"User {user_id} has not linked Google Calendar"
            )
        return record

    async def get_valid_access_token(self, user_id: uuid.UUID) -> str:
        """Return an access token that passed the probe or was just refreshed.

        Raises:
            NotFoundError: Unknown user
            MissingCredentialError: No refresh token on file
            AuthError: Refresh token rejected by Google
            PermissionDeniedError, SyncError: Probe failed for another reason
        """
        client = await self.get_calendar_client(user_id)
        return client.access_token

    async def get_calendar_client(self, user_id: uuid.UUID) -> GoogleCalendarClient:
        """Calendar client bound to a valid token.

        The client that ran the probe is returned as is, so a caller's
        calendar call reuses its discovery resource.

        Raises:
            Same as :meth:`get_valid_access_token`
        """
        record = await self._load_linked(user_id)

        if record.access_token:
            client = self.client_factory(record.access_token)
            try:
                await client.probe()
                return client
            except AuthError:
                logger.info(f"Access token for user {user_id} expired, refreshing")

        access_token = await self.refresh_access_token(record.refresh_token)
        return self.client_factory(access_token)

    async def force_refresh(self, user_id: uuid.UUID) -> str:
        """Refresh a user's access token without probing the cached one."""
        record = await self._load_linked(user_id)
        return await self.refresh_access_token(record.refresh_token)

    async def refresh_access_token(self, refresh_token: str) -> str:
        """Exchange a refresh token and persist the new access token.

        The record is matched by refresh-token value.

        Raises:
            AuthError: If Google rejects the refresh token
        """
        try:
            grant = await self.oauth.refresh_access_token(refresh_token)
        except AuthError:
            logger.error("Failed to refresh access token: refresh token rejected")
            raise

        updated = await self.store.update_access_token(refresh_token, grant.access_token)
        if updated:
            logger.info("Refreshed Google access token")
        else:
            logger.warning("Refreshed access token matched no stored credential")

        return grant.access_token

    async def link_account(self, user_id: uuid.UUID, code: str) -> CredentialRecord:
        """Create or replace a user's link from an OAuth authorization code.

        Google omits the refresh token when the user had already consented;
        the one on file is kept in that case.

        Raises:
            NotFoundError: Unknown user
            PermissionDeniedError: The user unticked calendar access on the
                consent screen; nothing is stored
            AuthError: The code was rejected
        """
        existing = await self.store.get_by_user_id(user_id)
        if existing is None:
            raise NotFoundError(f"User {user_id} not found")

        grant = await self.oauth.exchange_code(code)
        missing = grant.missing_scopes(EVENTS_SCOPE)
        if missing:
            raise PermissionDeniedError(
                f"Google Calendar access not granted for user {user_id}: {sorted(missing)}"
            )

        account = await self.oauth.get_account(grant.access_token)

        record = CredentialRecord(
            user_id=user_id,
            refresh_token=grant.refresh_token or existing.refresh_token,
            access_token=grant.access_token,
            google_email=account.email,
        )
        if not record.refresh_token:
            logger.warning(
                f"Google returned no refresh token for user {user_id}; "
                "calendar sync will require re-consent"
            )

        await self.store.save(record)
        logger.info(f"Linked Google Calendar {account.email} for user {user_id}")
        return record

    async def unlink_account(self, user_id: uuid.UUID) -> bool:
        """Revoke the refresh token (best effort) and destroy the record.

        Returns:
            True if a credential record existed
        """
        record = await self.store.get_by_user_id(user_id)
        if record is None:
            raise NotFoundError(f"User {user_id} not found")

        if record.refresh_token:
            revoked = await self.oauth.revoke_token(record.refresh_token)
            if not revoked:
                logger.warning(f"Could not revoke Google token for user {user_id}")

        deleted = await self.store.delete(user_id)
        logger.info(f"Unlinked Google Calendar for user {user_id}")
        return deleted
