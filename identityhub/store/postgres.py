"""PostgreSQL credential store backed by asyncpg."""

from datetime import datetime
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from identityhub.database import get_pool, health_check
from identityhub.exceptions import DuplicateEmailError, TokenConflictError
from identityhub.models.user import PROFILE_FIELDS, RefreshToken, User

logger = structlog.get_logger(__name__)

USER_COLUMNS = """
    id, email, username, password_hash, first_name, last_name, phone_number,
    profile_picture_url, is_active, email_confirmed, roles, security_stamp,
    access_failed_count, lockout_end, lockout_enabled, created_at, updated_at
"""

TOKEN_COLUMNS = "id, token, user_id, expires_at, is_revoked, revoked_at, created_at"

USER_FILTER = """
    ($1::text IS NULL
        OR POSITION(LOWER($1) IN LOWER(email)) > 0
        OR POSITION(LOWER($1) IN LOWER(COALESCE(first_name, ''))) > 0
        OR POSITION(LOWER($1) IN LOWER(COALESCE(last_name, ''))) > 0)
    AND ($2::boolean OR is_active)
"""


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        username=row["username"],
        password_hash=row["password_hash"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone_number=row["phone_number"],
        profile_picture_url=row["profile_picture_url"],
        is_active=row["is_active"],
        email_confirmed=row["email_confirmed"],
        roles=list(row["roles"] or []),
        security_stamp=row["security_stamp"],
        access_failed_count=row["access_failed_count"],
        lockout_end=row["lockout_end"],
        lockout_enabled=row["lockout_enabled"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_token(row) -> RefreshToken:
    return RefreshToken(
        id=row["id"],
        token=row["token"],
        user_id=row["user_id"],
        expires_at=row["expires_at"],
        is_revoked=row["is_revoked"],
        revoked_at=row["revoked_at"],
        created_at=row["created_at"],
    )


def _affected_rows(status: str) -> int:
    """Parse the row count from an asyncpg command status like 'UPDATE 3'."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresCredentialStore:
    """Credential store over the shared asyncpg pool."""

    async def create_user(self, user: User) -> User:
        pool = await get_pool()

        async with pool.acquire() as conn:
            try:
                await conn.execute(
                    f"""
                    INSERT INTO users ({USER_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
                    """,
                    user.id,
                    user.email,
                    user.username,
                    user.password_hash,
                    user.first_name,
                    user.last_name,
                    user.phone_number,
                    user.profile_picture_url,
                    user.is_active,
                    user.email_confirmed,
                    user.roles,
                    user.security_stamp,
                    user.access_failed_count,
                    user.lockout_end,
                    user.lockout_enabled,
                    user.created_at,
                    user.updated_at,
                )
            except asyncpg.UniqueViolationError as e:
                raise DuplicateEmailError(user.email) from e

        logger.info("user_row_inserted", user_id=str(user.id))
        return user

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        return _row_to_user(row) if row is not None else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER($1)",
                email,
            )

        return _row_to_user(row) if row is not None else None

    async def update_profile(
        self, user_id: UUID, changes: dict, updated_at: datetime
    ) -> Optional[User]:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Not profile fields: {sorted(unknown)}")

        # Column names come from PROFILE_FIELDS only; values stay parameters
        columns = [c for c in PROFILE_FIELDS if c in changes]
        assignments = ["updated_at = $2"] + [
            f"{column} = ${index}" for index, column in enumerate(columns, start=3)
        ]
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET {", ".join(assignments)}
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                updated_at,
                *(changes[c] for c in columns),
            )

        return _row_to_user(row) if row is not None else None

    async def set_password(
        self,
        user_id: UUID,
        password_hash: str,
        security_stamp: str,
        expected_stamp: str,
        updated_at: datetime,
    ) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE users
                SET password_hash = $2, security_stamp = $3, updated_at = $5
                WHERE id = $1 AND security_stamp = $4
                """,
                user_id,
                password_hash,
                security_stamp,
                expected_stamp,
                updated_at,
            )

        return _affected_rows(result) == 1

    async def mark_email_confirmed(self, user_id: UUID, updated_at: datetime) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE users SET email_confirmed = TRUE, updated_at = $2 WHERE id = $1",
                user_id,
                updated_at,
            )

        return _affected_rows(result) == 1

    async def record_failed_access(
        self, user_id: UUID, max_attempts: int, lockout_end: datetime, now: datetime
    ) -> Optional[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            # Right-hand sides read the pre-update row; the row lock makes
            # concurrent failures count one after another.
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET access_failed_count = CASE
                        WHEN lockout_end > $4 THEN access_failed_count
                        WHEN access_failed_count + 1 >= $2 THEN 0
                        ELSE access_failed_count + 1
                    END,
                    lockout_end = CASE
                        WHEN lockout_end > $4 THEN lockout_end
                        WHEN access_failed_count + 1 >= $2 THEN $3
                        ELSE lockout_end
                    END
                WHERE id = $1
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                max_attempts,
                lockout_end,
                now,
            )

        return _row_to_user(row) if row is not None else None

    async def reset_access_failed(self, user_id: UUID) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE users SET access_failed_count = 0, lockout_end = NULL WHERE id = $1",
                user_id,
            )

    async def list_users(
        self,
        search_term: Optional[str],
        include_inactive: bool,
        offset: int,
        limit: int,
    ) -> list[User]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                WHERE {USER_FILTER}
                ORDER BY created_at ASC, id ASC
                OFFSET $3 LIMIT $4
                """,
                search_term,
                include_inactive,
                offset,
                limit,
            )

        return [_row_to_user(row) for row in rows]

    async def count_users(self, search_term: Optional[str], include_inactive: bool) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            count = await conn.fetchval(
                f"SELECT COUNT(*) FROM users WHERE {USER_FILTER}",
                search_term,
                include_inactive,
            )

        return count

    async def add_refresh_token(self, token: RefreshToken) -> None:
        pool = await get_pool()

        async with pool.acquire() as conn:
            await self._insert_token(conn, token)

    @staticmethod
    async def _insert_token(conn, token: RefreshToken) -> None:
        try:
            await conn.execute(
                f"""
                INSERT INTO refresh_tokens ({TOKEN_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                token.id,
                token.token,
                token.user_id,
                token.expires_at,
                token.is_revoked,
                token.revoked_at,
                token.created_at,
            )
        except asyncpg.UniqueViolationError as e:
            raise TokenConflictError("refresh token collision") from e

    async def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {TOKEN_COLUMNS} FROM refresh_tokens WHERE token = $1",
                token,
            )

        return _row_to_token(row) if row is not None else None

    async def rotate_refresh_token(
        self, old_token: str, replacement: RefreshToken, now: datetime
    ) -> bool:
        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                # Row lock serializes concurrent rotations of the same token;
                # the loser re-reads is_revoked and matches nothing.
                revoked_id = await conn.fetchval(
                    """
                    UPDATE refresh_tokens
                    SET is_revoked = TRUE, revoked_at = $1
                    WHERE token = $2 AND NOT is_revoked AND expires_at > $1
                    RETURNING id
                    """,
                    now,
                    old_token,
                )
                if revoked_id is None:
                    return False
                await self._insert_token(conn, replacement)

        return True

    async def revoke_user_refresh_tokens(self, user_id: UUID, now: datetime) -> int:
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE refresh_tokens
                SET is_revoked = TRUE, revoked_at = $1
                WHERE user_id = $2 AND NOT is_revoked
                """,
                now,
                user_id,
            )

        return _affected_rows(result)

    async def health_check(self) -> bool:
        return await health_check()
