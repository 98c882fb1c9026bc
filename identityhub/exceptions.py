"""Error taxonomy shared by the auth core and both transports."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Failure kinds an operation can report.

    Transports translate a kind into a wire status; the kind itself is
    never serialized into a response body.
    """

    VALIDATION_FAILURE = "validation_failure"
    DUPLICATE_EMAIL = "duplicate_email"
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    INVALID_CONFIRMATION_TOKEN = "invalid_confirmation_token"
    INVALID_RESET_TOKEN = "invalid_reset_token"
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INTERNAL_FAULT = "internal_fault"


class AuthError(Exception):
    """An expected, caller-visible failure of an auth operation."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        errors: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.errors = errors


class StoreError(Exception):
    """Base class for credential store failures."""


class DuplicateEmailError(StoreError):
    """A user with the same email or username already exists."""


class TokenConflictError(StoreError):
    """A refresh token string collided with an existing row."""


def validation_messages(errors: list[dict]) -> list[str]:
    """Flatten pydantic error dicts into "Field 'x': message" strings."""
    messages = []
    for error in errors:
        field = ".".join(str(loc) for loc in error.get("loc", ()) if loc != "body")
        message = error.get("msg", "Validation failed")
        messages.append(f"Field '{field}': {message}" if field else message)
    return messages
