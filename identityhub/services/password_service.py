"""Password hashing, complexity policy, lockout and purpose tokens."""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import bcrypt
import jwt
import structlog

from identityhub.config import Settings
from identityhub.models.user import User, new_security_stamp
from identityhub.store.base import CredentialStore

logger = structlog.get_logger(__name__)

PURPOSE_TOKEN_ALGORITHM = "HS256"
EMAIL_CONFIRMATION = "email_confirmation"
PASSWORD_RESET = "password_reset"
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; newer releases reject longer input
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class SignInOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCKED_OUT = "locked_out"


class PasswordService:
    """Credential checks and the bookkeeping that goes with them.

    Hashing runs in a worker thread so bcrypt never blocks the event loop.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._purpose_secret = settings.jwt_secret_key
        self._purpose_issuer = settings.jwt_issuer
        self._purpose_lifetime = timedelta(hours=settings.purpose_token_expiry_hours)

    # ------------------------------------------------------------------
    # Hashing
    # ------------------------------------------------------------------

    async def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        hashed = await asyncio.to_thread(
            bcrypt.hashpw, _encode(password), bcrypt.gensalt()
        )
        return hashed.decode("utf-8")

    async def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        A malformed stored hash counts as a mismatch.
        """
        try:
            return await asyncio.to_thread(
                bcrypt.checkpw,
                _encode(password),
                password_hash.encode("utf-8"),
            )
        except ValueError:
            logger.warning("password_hash_malformed")
            return False

    # ------------------------------------------------------------------
    # Complexity policy
    # ------------------------------------------------------------------

    def validate_policy(self, password: str) -> list[str]:
        """Return the policy rules ``password`` violates (empty if none)."""
        s = self._settings
        errors = []
        if len(password) < s.required_password_length:
            errors.append(
                f"Passwords must be at least {s.required_password_length} characters."
            )
        if s.password_requires_non_alphanumeric and password.isalnum():
            errors.append("Passwords must have at least one non alphanumeric character.")
        if s.password_require_digit and not any(c.isdigit() for c in password):
            errors.append("Passwords must have at least one digit ('0'-'9').")
        if s.password_require_lowercase and not any(c.islower() for c in password):
            errors.append("Passwords must have at least one lowercase ('a'-'z').")
        if s.password_require_uppercase and not any(c.isupper() for c in password):
            errors.append("Passwords must have at least one uppercase ('A'-'Z').")
        return errors

    # ------------------------------------------------------------------
    # Lockout bookkeeping
    # ------------------------------------------------------------------

    def lockout_applies(self, user: User) -> bool:
        return self._settings.lockout_enabled and user.lockout_enabled

    def is_locked_out(self, user: User, now: Optional[datetime] = None) -> bool:
        if not self.lockout_applies(user):
            return False
        now = now or datetime.now(timezone.utc)
        return user.lockout_end is not None and user.lockout_end > now

    async def check_password_sign_in(
        self,
        store: CredentialStore,
        user: User,
        password: str,
        now: Optional[datetime] = None,
    ) -> SignInOutcome:
        """Check a password and record the lockout bookkeeping in ``store``.

        Counters change through the store's atomic operations only, so a
        slow hash check never writes back a stale copy of ``user``.
        """
        now = now or datetime.now(timezone.utc)
        if self.is_locked_out(user, now):
            return SignInOutcome.LOCKED_OUT

        if await self.verify_password(password, user.password_hash):
            if user.access_failed_count or user.lockout_end:
                await store.reset_access_failed(user.id)
            return SignInOutcome.SUCCEEDED

        if not self.lockout_applies(user):
            return SignInOutcome.FAILED

        lockout_end = now + timedelta(minutes=self._settings.lockout_duration_minutes)
        counted = await store.record_failed_access(
            user.id, self._settings.max_failed_access_attempts, lockout_end, now
        )
        if counted is not None and self.is_locked_out(counted, now):
            logger.warning(
                "account_locked_out",
                user_id=str(user.id),
                lockout_end=counted.lockout_end.isoformat(),
            )
            return SignInOutcome.LOCKED_OUT
        return SignInOutcome.FAILED

    async def replace_password(self, user: User, new_password: str) -> User:
        """Return ``user`` with a new hash and a rotated security stamp."""
        return user.model_copy(
            update={
                "password_hash": await self.hash_password(new_password),
                "security_stamp": new_security_stamp(),
                "updated_at": datetime.now(timezone.utc),
            }
        )

    # ------------------------------------------------------------------
    # Purpose tokens (email confirmation, password reset)
    # ------------------------------------------------------------------

    def generate_email_confirmation_token(self, user: User) -> str:
        return self._generate_purpose_token(user, EMAIL_CONFIRMATION, bind=user.email.lower())

    def verify_email_confirmation_token(self, user: User, token: str) -> bool:
        return self._verify_purpose_token(user, token, EMAIL_CONFIRMATION, bind=user.email.lower())

    def generate_password_reset_token(self, user: User) -> str:
        """Reset tokens are bound to the security stamp, so any password
        change invalidates every outstanding reset token."""
        return self._generate_purpose_token(user, PASSWORD_RESET, bind=user.security_stamp)

    def verify_password_reset_token(self, user: User, token: str) -> bool:
        return self._verify_purpose_token(user, token, PASSWORD_RESET, bind=user.security_stamp)

    def _generate_purpose_token(self, user: User, purpose: str, bind: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "purpose": purpose,
            "bind": bind,
            "iss": self._purpose_issuer,
            "iat": now,
            "exp": now + self._purpose_lifetime,
        }
        return jwt.encode(payload, self._purpose_secret, algorithm=PURPOSE_TOKEN_ALGORITHM)

    def _verify_purpose_token(self, user: User, token: str, purpose: str, bind: str) -> bool:
        try:
            payload = jwt.decode(
                token,
                self._purpose_secret,
                algorithms=[PURPOSE_TOKEN_ALGORITHM],
                issuer=self._purpose_issuer,
                options={"require": ["exp", "sub"]},
            )
        except jwt.PyJWTError:
            return False
        return (
            payload.get("sub") == str(user.id)
            and payload.get("purpose") == purpose
            and payload.get("bind") == bind
        )
