"""In-process credential store for development and tests."""

import asyncio
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from identityhub.exceptions import DuplicateEmailError, TokenConflictError
from identityhub.models.user import PROFILE_FIELDS, RefreshToken, User

logger = structlog.get_logger(__name__)


def _matches(user: User, search_term: Optional[str], include_inactive: bool) -> bool:
    if not include_inactive and not user.is_active:
        return False
    if not search_term:
        return True
    needle = search_term.lower()
    return any(
        field is not None and needle in field.lower()
        for field in (user.email, user.first_name, user.last_name)
    )


class InMemoryCredentialStore:
    """Dict-backed store with the same semantics as the Postgres store.

    A single lock serializes writes so rotation is atomic with respect to
    concurrent callers on the same event loop.
    """

    def __init__(self):
        self._users: dict[UUID, User] = {}
        self._tokens: dict[str, RefreshToken] = {}
        self._lock = asyncio.Lock()

    async def create_user(self, user: User) -> User:
        async with self._lock:
            for existing in self._users.values():
                if (
                    existing.email.lower() == user.email.lower()
                    or existing.username.lower() == user.username.lower()
                ):
                    raise DuplicateEmailError(user.email)
            self._users[user.id] = user.model_copy(deep=True)
        return user

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        for user in self._users.values():
            if user.email.lower() == email:
                return user.model_copy(deep=True)
        return None

    def _write(self, user_id: UUID, **fields) -> Optional[User]:
        # Caller holds the lock
        current = self._users.get(user_id)
        if current is None:
            return None
        updated = current.model_copy(update=fields, deep=True)
        self._users[user_id] = updated
        return updated.model_copy(deep=True)

    async def update_profile(
        self, user_id: UUID, changes: dict, updated_at: datetime
    ) -> Optional[User]:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Not profile fields: {sorted(unknown)}")
        async with self._lock:
            return self._write(user_id, **changes, updated_at=updated_at)

    async def set_password(
        self,
        user_id: UUID,
        password_hash: str,
        security_stamp: str,
        expected_stamp: str,
        updated_at: datetime,
    ) -> bool:
        async with self._lock:
            current = self._users.get(user_id)
            if current is None or current.security_stamp != expected_stamp:
                return False
            self._write(
                user_id,
                password_hash=password_hash,
                security_stamp=security_stamp,
                updated_at=updated_at,
            )
        return True

    async def mark_email_confirmed(self, user_id: UUID, updated_at: datetime) -> bool:
        async with self._lock:
            updated = self._write(user_id, email_confirmed=True, updated_at=updated_at)
        return updated is not None

    async def record_failed_access(
        self, user_id: UUID, max_attempts: int, lockout_end: datetime, now: datetime
    ) -> Optional[User]:
        async with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            if current.lockout_end is not None and current.lockout_end > now:
                return current.model_copy(deep=True)
            failed = current.access_failed_count + 1
            if failed >= max_attempts:
                return self._write(user_id, access_failed_count=0, lockout_end=lockout_end)
            return self._write(user_id, access_failed_count=failed)

    async def reset_access_failed(self, user_id: UUID) -> None:
        async with self._lock:
            self._write(user_id, access_failed_count=0, lockout_end=None)

    def _filtered(self, search_term: Optional[str], include_inactive: bool) -> list[User]:
        users = [u for u in self._users.values() if _matches(u, search_term, include_inactive)]
        return sorted(users, key=lambda u: (u.created_at, str(u.id)))

    async def list_users(
        self,
        search_term: Optional[str],
        include_inactive: bool,
        offset: int,
        limit: int,
    ) -> list[User]:
        page = self._filtered(search_term, include_inactive)[offset : offset + limit]
        return [u.model_copy(deep=True) for u in page]

    async def count_users(self, search_term: Optional[str], include_inactive: bool) -> int:
        return len(self._filtered(search_term, include_inactive))

    async def add_refresh_token(self, token: RefreshToken) -> None:
        async with self._lock:
            self._insert_token(token)

    def _insert_token(self, token: RefreshToken) -> None:
        if token.token in self._tokens:
            raise TokenConflictError("refresh token collision")
        self._tokens[token.token] = token.model_copy()

    async def get_refresh_token(self, token: str) -> Optional[RefreshToken]:
        row = self._tokens.get(token)
        return row.model_copy() if row else None

    async def rotate_refresh_token(
        self, old_token: str, replacement: RefreshToken, now: datetime
    ) -> bool:
        async with self._lock:
            row = self._tokens.get(old_token)
            if row is None or not row.is_active_at(now):
                return False
            self._insert_token(replacement)
            self._tokens[old_token] = row.model_copy(
                update={"is_revoked": True, "revoked_at": now}
            )
        return True

    async def revoke_user_refresh_tokens(self, user_id: UUID, now: datetime) -> int:
        revoked = 0
        async with self._lock:
            for key, row in list(self._tokens.items()):
                if row.user_id == user_id and not row.is_revoked:
                    self._tokens[key] = row.model_copy(
                        update={"is_revoked": True, "revoked_at": now}
                    )
                    revoked += 1
        return revoked

    async def health_check(self) -> bool:
        return True
