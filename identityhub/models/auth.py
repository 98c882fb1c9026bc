"""Auth request models with validation."""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    """Strip surrounding whitespace and check the basic address shape."""
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class RegisterRequest(BaseModel):
    """New account registration.

    Attributes:
        email: Email address, also used as the username
        password: Password checked against the configured policy
        confirm_password: Must equal ``password``
        first_name: Optional given name (max 100 chars)
        last_name: Optional family name (max 100 chars)
        phone_number: Optional phone number
    """

    email: str = Field(..., max_length=256)
    password: str = Field(..., min_length=1)
    confirm_password: str = Field(..., min_length=1)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        """Ensure the email has a plausible address shape."""
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class LoginRequest(BaseModel):
    """Login credentials for authentication."""

    email: str = Field(..., max_length=256)
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return normalize_email(v)


class RefreshTokenRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair.

    Attributes:
        refresh_token: The refresh token to exchange
        access_token: The expired access token; accepted for client
            compatibility and ignored
    """

    refresh_token: str = Field(..., min_length=1)
    access_token: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=256)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return normalize_email(v)


class ResetPasswordRequest(BaseModel):
    """Password reset using a token delivered out of band."""

    email: str = Field(..., max_length=256)
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("new_password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=1)

    @field_validator("new_password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        """Ensure password is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Password cannot be empty or whitespace only")
        return v


class UpdateUserRequest(BaseModel):
    """Request to update profile fields.

    All fields are optional; only provided fields are updated.
    """

    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=32)
    profile_picture_url: Optional[str] = Field(default=None, max_length=500)
