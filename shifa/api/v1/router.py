"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from shifa.api.v1 import health, profiles, sessions

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Triage profiles
api_router.include_router(
    profiles.router,
    prefix="/profiles",
    tags=["profiles"],
)

# Assessment sessions
api_router.include_router(
    sessions.router,
    prefix="/sessions",
    tags=["sessions"],
)
