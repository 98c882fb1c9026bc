"""Models package exports."""

from identityhub.models.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateUserRequest,
)
from identityhub.models.results import ApiResult, AuthResult
from identityhub.models.token import Principal, TokenClaims
from identityhub.models.user import RefreshToken, Role, User, UserPage, UserProfile

__all__ = [
    "ApiResult",
    "AuthResult",
    "ChangePasswordRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "Principal",
    "RefreshToken",
    "RefreshTokenRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "Role",
    "TokenClaims",
    "UpdateUserRequest",
    "User",
    "UserPage",
    "UserProfile",
]
