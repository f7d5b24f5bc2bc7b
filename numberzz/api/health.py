"""
Health check endpoints.

Provides liveness and readiness probes with store connectivity checks.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from numberzz.api.dependencies import get_ledger
from numberzz.models.failure import CollaboratorUnavailable
from numberzz.services.ledger import Ledger

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    store: str | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    response: Response,
    ledger: Annotated[Ledger, Depends(get_ledger)],
) -> HealthResponse:
    """
    Readiness probe.

    Checks store connectivity. Returns 503 if the store is unavailable;
    the marketplace can still serve cached reads in that state.
    """
    try:
        await ledger.store.ping()
        return HealthResponse(status="ready", store="connected")
    except CollaboratorUnavailable:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not ready", store="disconnected")
