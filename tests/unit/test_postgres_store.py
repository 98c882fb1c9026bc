"""Unit tests for PostgresCredentialStore with a mocked asyncpg pool."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import asyncpg
import pytest

from identityhub.exceptions import DuplicateEmailError, TokenConflictError
from identityhub.models.user import RefreshToken, User
from identityhub.store.postgres import PostgresCredentialStore


# ---------------------------------------------------------------------------
# asyncpg mock helpers
# ---------------------------------------------------------------------------

class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock()
        self.transaction = MagicMock(return_value=_AsyncContext(None))


class MockPool:
    """Mock asyncpg pool with acquire() context manager."""

    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _AsyncContext(self._conn)


class _AsyncContext:
    def __init__(self, value):
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, *args):
        return False


def _user_row(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "email": "alice@example.com",
        "username": "alice@example.com",
        "password_hash": "hash",
        "first_name": "Alice",
        "last_name": None,
        "phone_number": None,
        "profile_picture_url": None,
        "is_active": True,
        "email_confirmed": False,
        "roles": ["User"],
        "security_stamp": "stamp",
        "access_failed_count": 0,
        "lockout_end": None,
        "lockout_enabled": True,
        "created_at": now,
        "updated_at": None,
    }
    row.update(overrides)
    return row


def _make_token(user_id=None, value="tok") -> RefreshToken:
    return RefreshToken.issue(
        user_id or uuid4(), value, datetime.now(timezone.utc), timedelta(days=7)
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_pool():
    """Patch get_pool and return the (pool, connection) pair."""
    conn = MockConnection()
    pool = MockPool(conn)
    with patch("identityhub.store.postgres.get_pool", AsyncMock(return_value=pool)):
        yield pool, conn


@pytest.fixture
def pg_store():
    return PostgresCredentialStore()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class TestUserQueries:
    @pytest.mark.asyncio
    async def test_get_user_by_email_maps_row(self, pg_store, mock_pool):
        _, conn = mock_pool
        row = _user_row()
        conn.fetchrow.return_value = row

        user = await pg_store.get_user_by_email("ALICE@example.com")

        assert user.id == row["id"]
        assert user.first_name == "Alice"
        sql = conn.fetchrow.call_args[0][0]
        assert "LOWER(email) = LOWER($1)" in sql

    @pytest.mark.asyncio
    async def test_get_user_missing(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchrow.return_value = None
        assert await pg_store.get_user_by_id(uuid4()) is None

    @pytest.mark.asyncio
    async def test_create_user_unique_violation(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")
        user = User(**{k: v for k, v in _user_row().items()})

        with pytest.raises(DuplicateEmailError):
            await pg_store.create_user(user)

    @pytest.mark.asyncio
    async def test_list_users_passes_filter_params(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetch.return_value = [_user_row(), _user_row(email="alicia@example.com")]

        users = await pg_store.list_users("ali", False, 10, 5)

        assert len(users) == 2
        args = conn.fetch.call_args[0]
        assert args[1:] == ("ali", False, 10, 5)
        assert "ORDER BY created_at ASC, id ASC" in args[0]

    @pytest.mark.asyncio
    async def test_count_users(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchval.return_value = 7
        assert await pg_store.count_users(None, True) == 7

    @pytest.mark.asyncio
    async def test_update_profile_sets_only_given_columns(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchrow.return_value = _user_row(last_name="Jones")
        user_id = uuid4()
        now = datetime.now(timezone.utc)

        user = await pg_store.update_profile(user_id, {"last_name": "Jones"}, now)

        assert user.last_name == "Jones"
        args = conn.fetchrow.call_args[0]
        assert "SET updated_at = $2, last_name = $3" in args[0]
        assert "password_hash =" not in args[0]
        assert args[1:] == (user_id, now, "Jones")

    @pytest.mark.asyncio
    async def test_update_profile_rejects_other_columns(self, pg_store, mock_pool):
        _, conn = mock_pool

        with pytest.raises(ValueError):
            await pg_store.update_profile(uuid4(), {"roles": ["Admin"]}, datetime.now(timezone.utc))
        conn.fetchrow.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_password_checks_stamp(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.execute.return_value = "UPDATE 0"

        changed = await pg_store.set_password(
            uuid4(), "h2", "s2", "s1", datetime.now(timezone.utc)
        )

        assert changed is False
        args = conn.execute.call_args[0]
        assert "security_stamp = $4" in args[0]
        assert args[2:5] == ("h2", "s2", "s1")

    @pytest.mark.asyncio
    async def test_mark_email_confirmed(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.execute.return_value = "UPDATE 1"

        assert await pg_store.mark_email_confirmed(uuid4(), datetime.now(timezone.utc)) is True
        assert "email_confirmed = TRUE" in conn.execute.call_args[0][0]


class TestFailedAccessQueries:
    @pytest.mark.asyncio
    async def test_record_failed_access_is_single_update(self, pg_store, mock_pool):
        _, conn = mock_pool
        now = datetime.now(timezone.utc)
        lockout_end = now + timedelta(minutes=5)
        conn.fetchrow.return_value = _user_row(lockout_end=lockout_end)
        user_id = uuid4()

        user = await pg_store.record_failed_access(user_id, 5, lockout_end, now)

        assert user.lockout_end == lockout_end
        args = conn.fetchrow.call_args[0]
        assert "access_failed_count + 1 >= $2" in args[0]
        assert "WHEN lockout_end > $4" in args[0]
        assert args[1:] == (user_id, 5, lockout_end, now)
        conn.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_record_failed_access_unknown_user(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchrow.return_value = None
        now = datetime.now(timezone.utc)

        assert await pg_store.record_failed_access(uuid4(), 5, now, now) is None

    @pytest.mark.asyncio
    async def test_reset_access_failed(self, pg_store, mock_pool):
        _, conn = mock_pool
        user_id = uuid4()

        await pg_store.reset_access_failed(user_id)

        args = conn.execute.call_args[0]
        assert "access_failed_count = 0, lockout_end = NULL" in args[0]
        assert args[1] == user_id


# ---------------------------------------------------------------------------
# Refresh tokens
# ---------------------------------------------------------------------------

class TestRefreshTokenQueries:
    @pytest.mark.asyncio
    async def test_add_token_collision(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.execute.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(TokenConflictError):
            await pg_store.add_refresh_token(_make_token())

    @pytest.mark.asyncio
    async def test_rotate_success_inserts_replacement(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchval.return_value = uuid4()
        replacement = _make_token(value="new")

        rotated = await pg_store.rotate_refresh_token("old", replacement, datetime.now(timezone.utc))

        assert rotated is True
        conn.transaction.assert_called_once()
        update_sql = conn.fetchval.call_args[0][0]
        assert "NOT is_revoked" in update_sql
        assert "expires_at > $1" in update_sql
        insert_args = conn.execute.call_args[0]
        assert "INSERT INTO refresh_tokens" in insert_args[0]
        assert insert_args[2] == "new"

    @pytest.mark.asyncio
    async def test_rotate_inactive_writes_nothing(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.fetchval.return_value = None

        rotated = await pg_store.rotate_refresh_token(
            "old", _make_token(value="new"), datetime.now(timezone.utc)
        )

        assert rotated is False
        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_revoke_user_tokens_parses_status(self, pg_store, mock_pool):
        _, conn = mock_pool
        conn.execute.return_value = "UPDATE 3"

        assert await pg_store.revoke_user_refresh_tokens(uuid4(), datetime.now(timezone.utc)) == 3

    @pytest.mark.asyncio
    async def test_get_refresh_token_maps_row(self, pg_store, mock_pool):
        _, conn = mock_pool
        token = _make_token()
        conn.fetchrow.return_value = token.model_dump()

        found = await pg_store.get_refresh_token(token.token)

        assert found == token
