"""Durable per-user storage for Google Calendar credentials.

The credential manager only needs four operations, captured by
`CredentialStore`:

- read the record for a user id
- update the access token of the record whose refresh token matches
- save (link or relink) a record
- delete a record (unlink)

Concurrent refreshes for the same user are not serialized here: both
refreshed tokens are valid at Google and the last write wins.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from study_meetings.database.encryption import TokenCipher, get_cipher
from study_meetings.database.models import CalendarCredential, User

logger = logging.getLogger(__name__)


@dataclass
class CredentialRecord:
    """A user's link to Google Calendar."""

    user_id: uuid.UUID
    refresh_token: str | None = None
    access_token: str | None = None
    google_email: str | None = None

    @property
    def is_linked(self) -> bool:
        return bool(self.refresh_token)


class CredentialStore(ABC):
    """Persistence contract for credential records."""

    @abstractmethod
    async def get_by_user_id(self, user_id: uuid.UUID) -> CredentialRecord | None:
        """Load a user's record.

        Returns:
            None if the user does not exist. A user that never linked Google
            yields a record without a refresh token.
        """

    @abstractmethod
    async def update_access_token(self, refresh_token: str, access_token: str) -> int:
        """Store a new access token on the record owning refresh_token.

        Returns:
            Number of records updated (0 or 1)
        """

    @abstractmethod
    async def save(self, record: CredentialRecord) -> None:
        """Create or replace the record for record.user_id.

        Raises:
            ValueError: If the refresh token is already linked to another user
        """

    @abstractmethod
    async def delete(self, user_id: uuid.UUID) -> bool:
        """Remove a user's record. Returns True if one existed."""


class SqlCredentialStore(CredentialStore):
    """SQLAlchemy-backed credential store with encrypted tokens.

    Example:
        ```python
        store = SqlCredentialStore(await init_db())
        record = await store.get_by_user_id(user_id)
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher | None = None,
    ):
        self._session_factory = session_factory
        self._cipher = cipher or get_cipher()

    async def get_by_user_id(self, user_id: uuid.UUID) -> CredentialRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(User.id, CalendarCredential)
                .outerjoin(CalendarCredential, CalendarCredential.user_id == User.id)
                .where(User.id == user_id)
            )
            row = result.first()

        if row is None:
            return None

        credential = row[1]
        if credential is None:
            return CredentialRecord(user_id=user_id)

        return CredentialRecord(
            user_id=user_id,
            refresh_token=self._cipher.decrypt(credential.refresh_token_encrypted),
            access_token=self._cipher.decrypt(credential.access_token_encrypted),
            google_email=credential.google_email,
        )

    async def update_access_token(self, refresh_token: str, access_token: str) -> int:
        lookup = self._cipher.digest(refresh_token)
        async with self._session_factory() as session:
            result = await session.execute(
                update(CalendarCredential)
                .where(CalendarCredential.refresh_token_hash == lookup)
                .values(access_token_encrypted=self._cipher.encrypt(access_token))
            )
            await session.commit()
        return result.rowcount

    async def save(self, record: CredentialRecord) -> None:
        async with self._session_factory() as session:
            credential = await session.get(CalendarCredential, record.user_id)
            if credential is None:
                credential = CalendarCredential(user_id=record.user_id)
                session.add(credential)

            credential.access_token_encrypted = self._cipher.encrypt(record.access_token)
            credential.refresh_token_encrypted = self._cipher.encrypt(record.refresh_token)
            credential.refresh_token_hash = (
                self._cipher.digest(record.refresh_token) if record.refresh_token else None
            )
            credential.google_email = record.google_email

            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ValueError(
                    f"Refresh token for user {record.user_id} is already linked "
                    "to another user"
                ) from e

        logger.info(f"Saved calendar credentials for user {record.user_id}")

    async def delete(self, user_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(CalendarCredential).where(CalendarCredential.user_id == user_id)
            )
            await session.commit()
        return result.rowcount > 0

    async def rotate_keys(self) -> int:
        """Re-encrypt every stored record under the current secret.

        Run after moving the old SECRET_KEY into PREVIOUS_SECRET_KEYS. Digests
        are recomputed too, since they are keyed by the current secret.

        Returns:
            Number of records rewritten
        """
        async with self._session_factory() as session:
            credentials = (await session.execute(select(CalendarCredential))).scalars().all()
            for credential in credentials:
                refresh_token = self._cipher.decrypt(credential.refresh_token_encrypted)
                credential.access_token_encrypted = self._cipher.rotate(
                    credential.access_token_encrypted
                )
                credential.refresh_token_encrypted = self._cipher.rotate(
                    credential.refresh_token_encrypted
                )
                credential.refresh_token_hash = (
                    self._cipher.digest(refresh_token) if refresh_token else None
                )
            await session.commit()

        logger.info(f"Re-encrypted {len(credentials)} calendar credentials")
        return len(credentials)
