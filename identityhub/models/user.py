"""User and refresh token models."""

from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Role:
    """Role names assigned to users."""

    ADMIN = "Admin"
    USER = "User"


def new_security_stamp() -> str:
    return uuid4().hex


# Columns a profile update may write
PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "profile_picture_url")


class User(BaseModel):
    """A registered user as persisted by the credential store."""

    id: UUID
    email: str
    username: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_active: bool = True
    email_confirmed: bool = False
    roles: list[str] = Field(default_factory=lambda: [Role.USER])
    security_stamp: str = Field(default_factory=new_security_stamp)
    access_failed_count: int = 0
    lockout_end: Optional[datetime] = None
    lockout_enabled: bool = True
    created_at: datetime
    updated_at: Optional[datetime] = None

    def has_role(self, role: str) -> bool:
        return role in self.roles


class RefreshToken(BaseModel):
    """A refresh token row. Rows are revoked, never deleted or reissued."""

    id: UUID
    token: str
    user_id: UUID
    expires_at: datetime
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def issue(
        cls, user_id: UUID, token: str, now: datetime, lifetime: timedelta
    ) -> "RefreshToken":
        """Build a fresh, active row for ``user_id``."""
        return cls(
            id=uuid4(),
            token=token,
            user_id=user_id,
            expires_at=now + lifetime,
            created_at=now,
        )

    def is_active_at(self, now: datetime) -> bool:
        return not self.is_revoked and self.expires_at > now


class UserProfile(BaseModel):
    """Public projection of a user for API responses."""

    id: UUID
    email: str
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    profile_picture_url: Optional[str] = None
    is_active: bool
    email_confirmed: bool
    roles: list[str]
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            phone_number=user.phone_number,
            profile_picture_url=user.profile_picture_url,
            is_active=user.is_active,
            email_confirmed=user.email_confirmed,
            roles=list(user.roles),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserPage(BaseModel):
    """One page of a filtered user listing."""

    users: list[UserProfile]
    total_count: int
    page: int
    page_size: int
