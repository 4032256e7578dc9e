"""Tests for token encryption and the SQLAlchemy credential store."""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy import select

from study_meetings.database import (
    CalendarCredential,
    CredentialRecord,
    SqlCredentialStore,
    TokenCipher,
    User,
    close_db,
    create_tables,
    get_cipher,
    init_db,
    session_scope,
)
from study_meetings.database.encryption import reset_cipher

SALT = "test-salt"
OLD_SECRET = "old-secret-key-at-least-32-characters-long"
NEW_SECRET = "new-secret-key-at-least-32-characters-long"


@pytest.fixture(autouse=True)
def fresh_cipher():
    reset_cipher()
    yield
    reset_cipher()


@pytest_asyncio.fixture
async def sessions(tmp_path):
    factory = await init_db(f"sqlite+aiosqlite:///{tmp_path / 'credentials.db'}")
    await create_tables()
    yield factory
    await close_db()


@pytest.fixture
def store(sessions) -> SqlCredentialStore:
    return SqlCredentialStore(sessions)


async def add_user(email: str) -> uuid.UUID:
    async with session_scope() as session:
        user = User(email=email, name=email.split("@")[0])
        session.add(user)
        await session.flush()
        return user.id


async def load_credential(user_id: uuid.UUID) -> CalendarCredential:
    async with session_scope() as session:
        return (
            await session.execute(
                select(CalendarCredential).where(CalendarCredential.user_id == user_id)
            )
        ).scalar_one()


class TestTokenCipher:
    """Token encryption and lookup digests."""

    def test_encryption_is_randomized(self):
        cipher = get_cipher()
        first = cipher.encrypt("secret-token")
        second = cipher.encrypt("secret-token")

        assert first != second
        assert cipher.decrypt(first) == "secret-token"

    def test_empty_values_stored_as_null(self):
        cipher = get_cipher()
        assert cipher.encrypt(None) is None
        assert cipher.encrypt("") is None
        assert cipher.decrypt(None) is None

    def test_corrupt_ciphertext(self):
        with pytest.raises(ValueError):
            get_cipher().decrypt("not-a-fernet-token")

    def test_digest_is_keyed(self):
        old = TokenCipher(OLD_SECRET, SALT)
        new = TokenCipher(NEW_SECRET, SALT)

        assert old.digest("refresh") == old.digest("refresh")
        assert len(old.digest("refresh")) == 64
        assert old.digest("refresh") != new.digest("refresh")

    def test_previous_secret_still_decrypts(self):
        stored = TokenCipher(OLD_SECRET, SALT).encrypt("refresh")
        rotated = TokenCipher(NEW_SECRET, SALT, previous_secrets=[OLD_SECRET])

        assert rotated.decrypt(stored) == "refresh"
        with pytest.raises(ValueError):
            TokenCipher(NEW_SECRET, SALT).decrypt(stored)

    def test_rotate_moves_to_current_key(self):
        stored = TokenCipher(OLD_SECRET, SALT).encrypt("refresh")
        rotated = TokenCipher(NEW_SECRET, SALT, previous_secrets=[OLD_SECRET]).rotate(stored)

        assert TokenCipher(NEW_SECRET, SALT).decrypt(rotated) == "refresh"


class TestSqlCredentialStore:
    """Persistence of credential records."""

    @pytest.mark.asyncio
    async def test_unknown_user(self, store):
        assert await store.get_by_user_id(uuid.uuid4()) is None

    @pytest.mark.asyncio
    async def test_user_without_link(self, store):
        user_id = await add_user("a@example.com")

        record = await store.get_by_user_id(user_id)

        assert record == CredentialRecord(user_id=user_id)
        assert not record.is_linked

    @pytest.mark.asyncio
    async def test_save_and_load(self, store):
        user_id = await add_user("a@example.com")

        await store.save(
            CredentialRecord(
                user_id=user_id,
                refresh_token="refresh-1",
                access_token="access-1",
                google_email="a@gmail.com",
            )
        )
        record = await store.get_by_user_id(user_id)

        assert record.refresh_token == "refresh-1"
        assert record.access_token == "access-1"
        assert record.google_email == "a@gmail.com"

    @pytest.mark.asyncio
    async def test_tokens_encrypted_at_rest(self, store):
        user_id = await add_user("a@example.com")
        await store.save(CredentialRecord(user_id, "refresh-1", "access-1"))

        credential = await load_credential(user_id)

        assert credential.refresh_token_encrypted != "refresh-1"
        assert credential.access_token_encrypted != "access-1"
        assert credential.refresh_token_hash == get_cipher().digest("refresh-1")

    @pytest.mark.asyncio
    async def test_update_by_refresh_token(self, store):
        first = await add_user("a@example.com")
        second = await add_user("b@example.com")
        await store.save(CredentialRecord(first, "refresh-1", "access-1"))
        await store.save(CredentialRecord(second, "refresh-2", "access-2"))

        assert await store.update_access_token("refresh-1", "access-new") == 1
        assert await store.update_access_token("unknown", "access-x") == 0

        assert (await store.get_by_user_id(first)).access_token == "access-new"
        assert (await store.get_by_user_id(second)).access_token == "access-2"

    @pytest.mark.asyncio
    async def test_relink_replaces_record(self, store):
        user_id = await add_user("a@example.com")
        await store.save(CredentialRecord(user_id, "refresh-1", "access-1"))
        await store.save(CredentialRecord(user_id, "refresh-2", "access-2"))

        record = await store.get_by_user_id(user_id)

        assert record.refresh_token == "refresh-2"
        assert await store.update_access_token("refresh-1", "stale") == 0

    @pytest.mark.asyncio
    async def test_refresh_token_unique_across_users(self, store):
        first = await add_user("a@example.com")
        second = await add_user("b@example.com")
        await store.save(CredentialRecord(first, "shared-refresh", "access-1"))

        with pytest.raises(ValueError):
            await store.save(CredentialRecord(second, "shared-refresh", "access-2"))

    @pytest.mark.asyncio
    async def test_delete(self, store):
        user_id = await add_user("a@example.com")
        await store.save(CredentialRecord(user_id, "refresh-1", "access-1"))

        assert await store.delete(user_id) is True
        assert await store.delete(user_id) is False
        assert not (await store.get_by_user_id(user_id)).is_linked

    @pytest.mark.asyncio
    async def test_rotate_keys(self, sessions):
        old_store = SqlCredentialStore(sessions, TokenCipher(OLD_SECRET, SALT))
        user_id = await add_user("a@example.com")
        await old_store.save(CredentialRecord(user_id, "refresh-1", "access-1"))

        new_store = SqlCredentialStore(
            sessions, TokenCipher(NEW_SECRET, SALT, previous_secrets=[OLD_SECRET])
        )
        assert await new_store.update_access_token("refresh-1", "access-2") == 0

        assert await new_store.rotate_keys() == 1

        assert await new_store.update_access_token("refresh-1", "access-2") == 1
        current_only = SqlCredentialStore(sessions, TokenCipher(NEW_SECRET, SALT))
        record = await current_only.get_by_user_id(user_id)
        assert record.refresh_token == "refresh-1"
        assert record.access_token == "access-2"
