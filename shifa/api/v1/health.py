"""Health check endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from shifa.api.deps import Store
from shifa.core.config import settings
from shifa.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns service health status",
)
async def health_check() -> HealthResponse:
    """Check if the service is healthy.

    Returns:
        Health status response
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Returns 503 until the default triage profile loads",
)
async def readiness_check(store: Store) -> HealthResponse:
    """Check if the service is ready to run assessments.

    Returns:
        Readiness status response

    Raises:
        HTTPException: If the default triage profile cannot be loaded
    """
    try:
        await store.loader.aload_config(settings.default_profile)
    except ConfigError as exc:
        logger.error(f"Readiness check failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not load triage rules - retry",
        ) from exc
    return HealthResponse(status="ok")
