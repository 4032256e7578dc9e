"""Database module for study meetings.

This module provides:
- SQLAlchemy async database connection
- User and calendar credential models
- Encrypted storage for OAuth tokens
- The credential store used by the credential manager
"""

from study_meetings.database.connection import (
    close_db,
    create_tables,
    get_session_factory,
    init_db,
    session_scope,
)
from study_meetings.database.credential_store import (
    CredentialRecord,
    CredentialStore,
    SqlCredentialStore,
)
from study_meetings.database.encryption import TokenCipher, get_cipher
from study_meetings.database.models import Base, CalendarCredential, User

__all__ = [
    # Connection
    "get_session_factory",
    "init_db",
    "close_db",
    "create_tables",
    "session_scope",
    # Encryption
    "TokenCipher",
    "get_cipher",
    # Store
    "CredentialRecord",
    "CredentialStore",
    "SqlCredentialStore",
    # Models
    "Base",
    "User",
    "CalendarCredential",
]
