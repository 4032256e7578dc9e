"""Google OAuth 2.0 endpoints used to link a Google Calendar.

Consent URL, code exchange, token refresh, account lookup and revocation.
Every request is a single shot over `httpx.AsyncClient`; nothing here
retries.

## Setup

Create a "Web application" OAuth client in Google Cloud Console with the
Calendar API enabled, register GOOGLE_REDIRECT_URI as an authorized
redirect, and export GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET.

## Failure Mapping

| Response                                         | Raised     |
|--------------------------------------------------|------------|
| 401, or `error` in REJECTED_GRANT_ERRORS         | AuthError  |
| any other non-2xx, transport failure, timeout    | SyncError  |

Revocation is best effort and reports failure as `False` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any
from urllib.parse import urlencode

import httpx

from study_meetings.config import get_settings
from study_meetings.errors import AuthError, SyncError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"

IDENTITY_SCOPES = ["openid", "email"]

# Minimum grant needed to write study-group events
EVENTS_SCOPE = "https://www.googleapis.com/auth/calendar.events"

REJECTED_GRANT_ERRORS = {"invalid_grant", "invalid_client", "unauthorized_client"}

REQUEST_TIMEOUT_SECONDS = 10.0


@dataclass
class TokenGrant:
    """Tokens returned by the token endpoint."""

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    scopes: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_response(cls, data: dict[str, Any], refresh_token: str | None = None) -> TokenGrant:
        """Parse a token response.

        A refresh response usually omits `refresh_token`; the one that was
        exchanged is kept in that case.
        """
        expires_at = None
        if "expires_in" in data:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(data["expires_in"]))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=expires_at,
            scopes=frozenset(data.get("scope", "").split()),
        )

    def missing_scopes(self, *required: str) -> set[str]:
        """Required scopes absent from the grant (empty if Google listed none)."""
        if not self.scopes:
            return set()
        return set(required) - self.scopes


@dataclass
class GoogleAccount:
    """The Google identity behind an access token."""

    email: str
    name: str | None = None
    verified: bool = False


def _error_code(response: httpx.Response) -> str:
    try:
        return str(response.json().get("error", ""))
    except ValueError:
        return ""


class GoogleOAuth:
    """Google OAuth client configured from settings.

    Example:
        ```python
        oauth = get_google_oauth()
        redirect_to = oauth.get_authorization_url(state=csrf_state)

        # on callback
        grant = await oauth.exchange_code(code)
        account = await oauth.get_account(grant.access_token)
        ```
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        settings = get_settings()

        self.client_id = client_id or settings.google_client_id
        self.client_secret = client_secret or settings.google_client_secret
        self.redirect_uri = redirect_uri or settings.google_redirect_uri
        self.scopes = [*settings.google_calendar_scopes, *IDENTITY_SCOPES]
        self.timeout = timeout

        if not self.is_configured:
            logger.warning("Google OAuth client id/secret missing; calendar linking disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _client_credentials(self) -> dict[str, str]:
        if not self.is_configured:
            raise RuntimeError("Google OAuth not configured")
        return {"client_id": self.client_id, "client_secret": self.client_secret}

    async def _send(self, method: str, url: str, action: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{action} failed: {e}")
            raise SyncError(f"{action} failed: {e}") from e

    def _raise_for_status(self, response: httpx.Response, action: str) -> None:
        if response.status_code == 200:
            return

        logger.error(f"{action} failed ({response.status_code}): {response.text}")
        code = _error_code(response)
        if response.status_code == 401 or code in REJECTED_GRANT_ERRORS:
            raise AuthError(
                f"{action} rejected: {code or response.status_code}",
                status_code=response.status_code,
            )
        raise SyncError(
            f"{action} failed: {code or response.status_code}",
            status_code=response.status_code,
        )

    def get_authorization_url(self, state: str) -> str:
        """Consent URL that always yields a refresh token.

        `access_type=offline` plus `prompt=consent` makes Google issue a new
        refresh token even for a user who consented before.
        """
        credentials = self._client_credentials()
        query = {
            "client_id": credentials["client_id"],
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        return f"{AUTHORIZE_URL}?{urlencode(query)}"

    async def exchange_code(self, code: str) -> TokenGrant:
        """Trade an authorization code for tokens.

        Raises:
            AuthError: Code rejected (expired, reused, wrong client)
            SyncError: Any other failure
        """
        form = {
            **self._client_credentials(),
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
        }
        response = await self._send("POST", TOKEN_URL, "Code exchange", data=form)
        self._raise_for_status(response, "Code exchange")
        return TokenGrant.from_response(response.json())

    async def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        """Trade a refresh token for a new access token.

        Raises:
            AuthError: Refresh token revoked, expired or unknown
            SyncError: Any other failure
        """
        form = {
            **self._client_credentials(),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        response = await self._send("POST", TOKEN_URL, "Token refresh", data=form)
        self._raise_for_status(response, "Token refresh")
        return TokenGrant.from_response(response.json(), refresh_token=refresh_token)

    async def get_account(self, access_token: str) -> GoogleAccount:
        response = await self._send(
            "GET",
            USERINFO_URL,
            "Account lookup",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        self._raise_for_status(response, "Account lookup")

        data = response.json()
        return GoogleAccount(
            email=data["email"],
            name=data.get("name"),
            verified=bool(data.get("verified_email", False)),
        )

    async def revoke_token(self, token: str) -> bool:
        """Revoke a token at Google. Returns False instead of raising."""
        try:
            response = await self._send(
                "POST", REVOKE_URL, "Token revocation", params={"token": token}
            )
        except SyncError:
            return False
        return response.status_code == 200


@lru_cache
def get_google_oauth() -> GoogleOAuth:
    """Process-wide OAuth client (`get_google_oauth.cache_clear()` to rebuild)."""
    return GoogleOAuth()
