"""Authentication module for Google Calendar access.

Provides the Google OAuth client and the credential manager that keeps a
user's access token usable.

## Linking Flow

1. User opens the consent URL from `GoogleOAuth.get_authorization_url`
2. Google redirects back with an authorization code
3. `CredentialManager.link_account` exchanges it and stores the tokens
4. Every calendar call asks `get_valid_access_token` for a token
5. `unlink_account` revokes the refresh token and deletes the record

## Security

- Tokens are encrypted at rest
- Refresh tokens are unique across users
"""

from study_meetings.auth.credentials import CredentialManager
from study_meetings.auth.google import (
    GoogleAccount,
    GoogleOAuth,
    TokenGrant,
    get_google_oauth,
)

__all__ = [
    "CredentialManager",
    "GoogleAccount",
    "GoogleOAuth",
    "TokenGrant",
    "get_google_oauth",
]
