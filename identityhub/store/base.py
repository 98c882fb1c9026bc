"""Credential store interface."""

from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from identityhub.models.user import RefreshToken, User


class CredentialStore(Protocol):
    """Durable storage of users and refresh tokens.

    Email lookups are case-insensitive. Refresh token rows are only ever
    inserted or revoked.
    """

    async def create_user(self, user: User) -> User:
        """Insert a user.

        Raises:
            DuplicateEmailError: If the email or username is taken
        """
        ...

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]: ...

    async def get_user_by_email(self, email: str) -> Optional[User]: ...

    async def update_profile(
        self, user_id: UUID, changes: dict, updated_at: datetime
    ) -> Optional[User]:
        """Write only the given profile columns and return the stored user.

        Raises:
            ValueError: If ``changes`` names a column outside PROFILE_FIELDS
        """
        ...

    async def set_password(
        self,
        user_id: UUID,
        password_hash: str,
        security_stamp: str,
        expected_stamp: str,
        updated_at: datetime,
    ) -> bool:
        """Replace hash and stamp while the stored stamp is ``expected_stamp``.

        Returns False, with nothing written, when another password change
        got there first.
        """
        ...

    async def mark_email_confirmed(self, user_id: UUID, updated_at: datetime) -> bool: ...

    async def record_failed_access(
        self, user_id: UUID, max_attempts: int, lockout_end: datetime, now: datetime
    ) -> Optional[User]:
        """Count one failed sign-in in a single atomic write.

        The failure that reaches ``max_attempts`` sets ``lockout_end`` and
        zeroes the counter. Nothing changes while the account is locked at
        ``now``. Returns the user as stored afterwards.
        """
        ...

    async def reset_access_failed(self, user_id: UUID) -> None: ...

    async def list_users(
        self,
        search_term: Optional[str],
        include_inactive: bool,
        offset: int,
        limit: int,
    ) -> list[User]:
        """Filtered page of users ordered by (created_at, id)."""
        ...

    async def count_users(self, search_term: Optional[str], include_inactive: bool) -> int: ...

    async def add_refresh_token(self, token: RefreshToken) -> None:
        """Insert a refresh token row.

        Raises:
            TokenConflictError: If the token string already exists
        """
        ...

    async def get_refresh_token(self, token: str) -> Optional[RefreshToken]: ...

    async def rotate_refresh_token(
        self, old_token: str, replacement: RefreshToken, now: datetime
    ) -> bool:
        """Atomically revoke ``old_token`` and insert ``replacement``.

        Returns False, with nothing written, when ``old_token`` is no longer
        active (already revoked, expired or unknown).
        """
        ...

    async def revoke_user_refresh_tokens(self, user_id: UUID, now: datetime) -> int:
        """Revoke every active token of a user and return how many changed."""
        ...

    async def health_check(self) -> bool: ...
