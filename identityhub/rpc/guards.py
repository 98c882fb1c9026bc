"""Bearer authentication and role checks for gRPC handlers."""

from typing import Optional

import grpc
import structlog

from identityhub.models.token import Principal
from identityhub.services.token_service import TokenService

logger = structlog.get_logger(__name__)

AUTHORIZATION_KEY = "authorization"
BEARER_PREFIX = "bearer "


def bearer_token(context) -> Optional[str]:
    """Extract the token from ``authorization: Bearer <token>`` metadata."""
    for key, value in context.invocation_metadata() or ():
        if key.lower() != AUTHORIZATION_KEY:
            continue
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        if value.lower().startswith(BEARER_PREFIX):
            token = value[len(BEARER_PREFIX) :].strip()
            return token or None
    return None


async def authenticate(context, tokens: TokenService) -> Principal:
    """Return the caller's principal or abort with UNAUTHENTICATED."""
    token = bearer_token(context)
    claims = tokens.authenticate(token) if token else None
    if claims is None or not claims.user_id:
        logger.info("rpc_unauthenticated")
        await context.abort(grpc.StatusCode.UNAUTHENTICATED, "Invalid or missing bearer token")
    return Principal.from_claims(claims)


async def require_role(context, principal: Principal, *roles: str) -> None:
    """Abort with PERMISSION_DENIED unless the principal holds one of ``roles``."""
    if not principal.is_in_role(*roles):
        logger.info("rpc_permission_denied", user_id=principal.user_id, required=list(roles))
        await context.abort(grpc.StatusCode.PERMISSION_DENIED, "Insufficient permissions")
