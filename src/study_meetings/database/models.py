"""Database models for calendar credentials.

## Schema Overview

```
users
└── calendar_credentials (1:1) - tokens encrypted
```

Only the columns the credential lifecycle needs are modelled here; the rest
of the user profile belongs to the host application.

## Invariants

- A refresh token belongs to at most one user. The refresh flow updates the
  row matched by refresh token, so `refresh_token_hash` is UNIQUE.
- Deleting a user deletes its credentials.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""


class User(Base):
    """Application user that may link a Google Calendar."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    calendar_credential: Mapped["CalendarCredential | None"] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class CalendarCredential(Base):
    """Google Calendar tokens for one user.

    Created when the user links Google Calendar, updated by every successful
    refresh, deleted when the user unlinks.
    """

    __tablename__ = "calendar_credentials"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )

    # Tokens (encrypted)
    access_token_encrypted: Mapped[str | None] = mapped_column(Text)
    refresh_token_encrypted: Mapped[str | None] = mapped_column(Text)
    refresh_token_hash: Mapped[str | None] = mapped_column(String(64), unique=True)

    google_email: Mapped[str | None] = mapped_column(String(255))

    linked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="calendar_credential")

    def __repr__(self) -> str:
        return f"<CalendarCredential user_id={self.user_id}>"
