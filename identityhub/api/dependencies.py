"""FastAPI dependencies for authentication and authorization."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from identityhub.exceptions import AuthError, ErrorKind
from identityhub.models.token import Principal
from identityhub.models.user import Role
from identityhub.services.auth_service import AuthService
from identityhub.services.token_service import TokenService
from identityhub.store.base import CredentialStore

# Missing headers are turned into our own envelope instead of FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


async def get_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> Principal:
    """Build the caller's principal from a JWT Bearer token.

    Raises:
        AuthError: UNAUTHENTICATED when the header is missing or the token
            fails validation
    """
    if credentials is None:
        raise AuthError(ErrorKind.UNAUTHENTICATED, "Authentication required")

    claims = tokens.authenticate(credentials.credentials)
    if claims is None or not claims.user_id:
        raise AuthError(ErrorKind.UNAUTHENTICATED, "Invalid or expired access token")

    return Principal.from_claims(claims)


def require_role(*roles: str):
    """Dependency factory requiring the principal to hold one of ``roles``."""

    async def dependency(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.is_in_role(*roles):
            raise AuthError(ErrorKind.FORBIDDEN, "Insufficient permissions")
        return principal

    return dependency


require_admin = require_role(Role.ADMIN)
