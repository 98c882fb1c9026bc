"""Uniform result envelopes returned by every auth operation."""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from identityhub.exceptions import ErrorKind
from identityhub.models.user import UserProfile

T = TypeVar("T")


class ApiResult(BaseModel, Generic[T]):
    """Outcome of a non-token operation.

    Attributes:
        success: Whether the operation succeeded
        message: Human-readable outcome
        data: Optional payload
        errors: Optional list of detailed failure reasons
        error: Failure kind, used by transports to pick a status and
            never serialized
    """

    success: bool
    message: str
    data: Optional[T] = None
    errors: Optional[list[str]] = None
    error: Optional[ErrorKind] = Field(default=None, exclude=True)

    @classmethod
    def ok(cls, message: str, data: Optional[T] = None) -> "ApiResult[T]":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        errors: Optional[list[str]] = None,
    ) -> "ApiResult[T]":
        return cls(success=False, message=message, errors=errors, error=kind)


class AuthResult(BaseModel):
    """Outcome of register, login and refresh.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Opaque token for obtaining a new pair
        expires_at: Access token expiry (UTC)
        user: Profile of the authenticated or registered user
    """

    success: bool
    message: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    user: Optional[UserProfile] = None
    errors: Optional[list[str]] = None
    error: Optional[ErrorKind] = Field(default=None, exclude=True)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        errors: Optional[list[str]] = None,
    ) -> "AuthResult":
        return cls(success=False, message=message, errors=errors, error=kind)
