"""Translation of result envelopes into HTTP responses."""

from typing import Optional, Union

from fastapi import status
from fastapi.responses import JSONResponse

from identityhub.exceptions import ErrorKind
from identityhub.models.results import ApiResult, AuthResult

STATUS_BY_KIND = {
    ErrorKind.VALIDATION_FAILURE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_CONFIRMATION_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_RESET_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE_EMAIL: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.ACCOUNT_LOCKED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INVALID_OR_EXPIRED_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL_FAULT: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(kind: Optional[ErrorKind]) -> int:
    """Map a failure kind to its HTTP status (500 when unknown)."""
    return STATUS_BY_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def respond(
    result: Union[ApiResult, AuthResult],
    success_status: int = status.HTTP_200_OK,
) -> JSONResponse:
    """Render an envelope, choosing the status from its outcome."""
    code = success_status if result.success else status_for(result.error)
    headers = None
    if code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=code,
        content=result.model_dump(mode="json"),
        headers=headers,
    )
