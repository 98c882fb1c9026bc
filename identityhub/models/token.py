"""Access token claims and the authenticated principal built from them."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TokenClaims(BaseModel):
    """Identity facts carried by an access token."""

    user_id: str
    username: str = ""
    email: str = ""
    roles: list[str] = []
    jti: str = ""
    expires_at: Optional[datetime] = None


class Principal(BaseModel):
    """The caller of a request, as seen by the transport layer.

    Built by an adapter from a validated bearer token; the auth core only
    receives the plain user id and role list.
    """

    user_id: Optional[str] = None
    email: str = ""
    roles: list[str] = []
    is_authenticated: bool = False

    @classmethod
    def from_claims(cls, claims: TokenClaims) -> "Principal":
        return cls(
            user_id=claims.user_id,
            email=claims.email,
            roles=list(claims.roles),
            is_authenticated=True,
        )

    def is_in_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)
