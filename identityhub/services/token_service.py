"""Access token minting/validation and refresh token generation."""

import base64
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import jwt
import structlog

from identityhub.config import Settings
from identityhub.models.token import TokenClaims
from identityhub.models.user import User

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
REFRESH_TOKEN_BYTES = 32


class TokenService:
    """Stateless token engine.

    Access tokens are HS256 JWTs validated purely by signature, issuer,
    audience and expiry. Refresh tokens are opaque random strings whose
    lifecycle lives entirely in the credential store.
    """

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret_key
        self._issuer = settings.jwt_issuer
        self._audience = settings.jwt_audience
        self._expiry = timedelta(minutes=settings.access_token_expiry_minutes)

    def mint_access_token(self, user: User) -> tuple[str, datetime]:
        """Create a signed JWT access token for ``user``.

        Args:
            user: User whose identity and roles are embedded

        Returns:
            Tuple of (encoded JWT, expiry timestamp)
        """
        # exp is encoded in whole seconds
        now = datetime.now(timezone.utc).replace(microsecond=0)
        expires_at = now + self._expiry
        payload = {
            "sub": str(user.id),
            "unique_name": user.username,
            "email": user.email,
            "jti": str(uuid4()),
            "role": list(user.roles),
            "iss": self._issuer,
            "aud": self._audience,
            "iat": now,
            "nbf": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        logger.debug(
            "access_token_minted",
            user_id=str(user.id),
            jti=payload["jti"],
            expires_at=expires_at.isoformat(),
        )
        return token, expires_at

    @staticmethod
    def generate_refresh_token() -> str:
        """Return a base64-encoded 32-byte value from a CSPRNG."""
        return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")

    def validate_access_token(self, token: str) -> bool:
        """Return True if ``token`` is a valid, unexpired access token.

        Never raises: malformed, tampered, foreign and expired tokens all
        yield False.
        """
        return self.authenticate(token) is not None

    def authenticate(self, token: str) -> Optional[TokenClaims]:
        """Verify ``token`` and return its claims, or None if invalid."""
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                leeway=0,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.PyJWTError as e:
            logger.debug("access_token_rejected", reason=type(e).__name__)
            return None
        return self._claims_from_payload(payload)

    def decode_claims(self, token: str) -> TokenClaims:
        """Read the claims of an already-validated token.

        The signature is not checked here; callers on a security-sensitive
        path must use :meth:`authenticate` instead.

        Raises:
            ValueError: If the token cannot be parsed
        """
        try:
            payload = jwt.decode(
                token,
                options={"verify_signature": False},
                algorithms=[JWT_ALGORITHM],
            )
        except jwt.PyJWTError as e:
            raise ValueError(f"Unparsable access token: {e}") from e
        return self._claims_from_payload(payload)

    @staticmethod
    def _claims_from_payload(payload: dict) -> TokenClaims:
        roles = payload.get("role") or []
        if isinstance(roles, str):
            roles = [roles]
        exp = payload.get("exp")
        return TokenClaims(
            user_id=str(payload.get("sub") or ""),
            username=str(payload.get("unique_name") or ""),
            email=str(payload.get("email") or ""),
            roles=[str(r) for r in roles],
            jti=str(payload.get("jti") or ""),
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None,
        )
