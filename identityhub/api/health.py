"""Liveness endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from identityhub.api.dependencies import get_store
from identityhub.store.base import CredentialStore

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    request: Request,
    store: CredentialStore = Depends(get_store),
) -> JSONResponse:
    """Report service and credential store health.

    Returns:
        200 when the store answers, 503 otherwise
    """
    store_healthy = await store.health_check()
    body = {
        "status": "healthy" if store_healthy else "unhealthy",
        "store": request.app.state.settings.store_backend,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    code = status.HTTP_200_OK if store_healthy else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=code, content=body)
