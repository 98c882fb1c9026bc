"""API package exports."""

from identityhub.api.auth import router as auth_router
from identityhub.api.health import router as health_router
from identityhub.api.middleware import CorrelationIdMiddleware
from identityhub.api.user import router as user_router

__all__ = ["auth_router", "health_router", "user_router", "CorrelationIdMiddleware"]
