"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shifa import __version__
from shifa.api.v1.router import api_router
from shifa.core.config import settings
from shifa.core.exceptions import AnswerValidationError, ConfigError, SessionStateError
from shifa.core.logging import setup_logging
from shifa.services.sessions import session_store

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting Shifa Triage API (env={settings.env})")

    if settings.preload_profiles:
        for profile in session_store.loader.profiles:
            try:
                await session_store.loader.aload_config(profile)
            except ConfigError as exc:
                # Sessions for this profile answer 503 until it loads
                logger.error(f"Could not load triage profile '{profile}': {exc}")

    yield

    # Shutdown
    logger.info("Shutting down Shifa Triage API")


# Create FastAPI application
app = FastAPI(
    title="Shifa Triage API",
    description="Rapid, rule-based medical triage with an adaptive questionnaire",
    version=__version__,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# CORS middleware (configure appropriately for production)
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:3001"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    """Triage rules could not be loaded."""
    logger.error(f"Triage configuration error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Could not load triage rules - retry"},
    )


@app.exception_handler(SessionStateError)
async def session_state_error_handler(request: Request, exc: SessionStateError) -> JSONResponse:
    """Operation not allowed in the session's current state."""
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": str(exc)},
    )


@app.exception_handler(AnswerValidationError)
async def answer_error_handler(request: Request, exc: AnswerValidationError) -> JSONResponse:
    """Answer does not fit its assessment step."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "field": exc.field},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint redirect to docs."""
    return {
        "service": "Shifa Triage API",
        "version": __version__,
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
