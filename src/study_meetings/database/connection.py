"""Engine and session lifecycle for the credential store.

One async engine per process, created by `init_db()` and disposed by
`close_db()`. PostgreSQL (asyncpg) in production; tests pass an aiosqlite
URL.

## Usage

```python
from study_meetings.database import init_db, close_db
from study_meetings.database.credential_store import SqlCredentialStore

sessions = await init_db()
store = SqlCredentialStore(sessions)
...
await close_db()
```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from study_meetings.config import get_settings
from study_meetings.database.models import Base

logger = logging.getLogger(__name__)


@dataclass
class _Database:
    engine: AsyncEngine
    sessions: async_sessionmaker[AsyncSession]


_db: _Database | None = None


def _engine_options(database_url: str) -> dict[str, Any]:
    settings = get_settings()
    options: dict[str, Any] = {"echo": settings.database_echo}
    # SQLite has no server-side pool to size or ping
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    return options


def _require_db() -> _Database:
    if _db is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db


async def init_db(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the engine and session factory.

    Args:
        database_url: Overrides DATABASE_URL from the settings

    Returns:
        The session factory, also available from `get_session_factory()`
    """
    global _db

    if _db is not None:
        await close_db()

    url = database_url or get_settings().database_url
    engine = create_async_engine(url, **_engine_options(url))
    sessions = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    _db = _Database(engine=engine, sessions=sessions)

    logger.info(f"Database engine ready ({engine.url.get_backend_name()})")
    return sessions


async def close_db() -> None:
    """Dispose of the engine. Safe to call when not initialized."""
    global _db

    if _db is None:
        return
    db, _db = _db, None
    await db.engine.dispose()
    logger.info("Database engine disposed")


async def create_tables() -> None:
    """Create the credential tables. Production schemas come from migrations."""
    db = _require_db()
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Credential tables created")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return _require_db().sessions


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on error.

    ```python
    async with session_scope() as session:
        session.add(User(email="a@example.com"))
    ```
    """
    async with _require_db().sessions() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
