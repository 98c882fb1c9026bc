"""Authentication API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from identityhub.api.dependencies import get_auth_service, get_principal
from identityhub.api.responses import respond
from identityhub.exceptions import ErrorKind
from identityhub.models.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from identityhub.models.results import ApiResult
from identityhub.models.token import Principal
from identityhub.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Register a new account.

    Returns:
        201 with the new profile; 409 when the email is taken; 400 on
        mismatched passwords or policy violations
    """
    result = await auth.register(request)
    return respond(result, status.HTTP_201_CREATED)


@router.post("/login")
async def login(
    request: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Login with email and password.

    Returns:
        AuthResult with access and refresh tokens; 401 on bad credentials
        or a locked account
    """
    return respond(await auth.login(request))


@router.post("/refresh-token")
async def refresh_token(
    request: RefreshTokenRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Exchange a refresh token for a new pair.

    The presented refresh token is revoked; replaying it returns 401.
    """
    return respond(await auth.refresh_token(request))


@router.post("/logout")
async def logout(
    principal: Principal = Depends(get_principal),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Revoke all of the caller's refresh tokens."""
    return respond(await auth.logout(principal.user_id))


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    return respond(await auth.forgot_password(request))


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    return respond(await auth.reset_password(request))


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    principal: Principal = Depends(get_principal),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    return respond(await auth.change_password(principal.user_id, request))


@router.get("/confirm-email")
async def confirm_email(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    token: Optional[str] = Query(default=None),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Confirm an email address with the token from the confirmation link."""
    if not user_id or not token:
        return respond(
            ApiResult.fail(ErrorKind.VALIDATION_FAILURE, "Invalid confirmation parameters")
        )
    return respond(await auth.confirm_email(user_id, token))
