"""User profile and administration endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from identityhub.api.dependencies import get_auth_service, get_principal, require_admin
from identityhub.api.responses import respond
from identityhub.models.auth import UpdateUserRequest
from identityhub.models.token import Principal
from identityhub.services.auth_service import DEFAULT_PAGE_SIZE, AuthService

router = APIRouter(prefix="/user", tags=["User"])


@router.get("/profile")
async def get_profile(
    principal: Principal = Depends(get_principal),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Profile of the authenticated caller."""
    return respond(await auth.get_user(principal.user_id))


@router.put("/profile")
async def update_profile(
    request: UpdateUserRequest,
    principal: Principal = Depends(get_principal),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Update the caller's profile; omitted fields keep their values."""
    return respond(await auth.update_user(principal.user_id, request))


@router.get("")
async def list_users(
    page: int = Query(default=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE),
    search_term: Optional[str] = Query(default=None),
    include_inactive: bool = Query(default=False),
    admin: Principal = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """List users (admin only).

    Args:
        page: 1-based page number
        page_size: Users per page
        search_term: Case-insensitive match on email, first or last name
        include_inactive: Include deactivated accounts

    Returns:
        UserPage ordered by creation date
    """
    return respond(await auth.get_users(page, page_size, search_term, include_inactive))


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    admin: Principal = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Any user's profile by id (admin only)."""
    return respond(await auth.get_user(user_id))
