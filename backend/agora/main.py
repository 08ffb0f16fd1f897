"""
Agora Forum Backend Application.

FastAPI application for community discussions with voting,
reputation and moderation.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger

from agora.api.v1 import router as api_v1_router
from agora.core.background import drain
from agora.core.config import settings
from agora.core.database import close_db, init_db
from agora.core.exceptions import ForumError
from agora.modules.leaderboard.cache import close_leaderboard_cache


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Agora Forum Backend...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    logger.info("Agora Forum Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Agora Forum Backend...")

    # Let background side effects finish before the engine goes away
    await drain()
    await close_leaderboard_cache()
    await close_db()

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Agora Forum Backend

    ## Features

    - **Forum**: Categories, topics and threaded replies
    - **Voting & Reputation**: Up/down votes, reputation ledger, levels
    - **Moderation**: Pin, lock, move, merge, sanctions, reports
    - **Community**: Search, polls, leaderboards, badges, notifications

    ## Documentation

    - [API Docs](/docs) - Interactive Swagger UI
    - [ReDoc](/redoc) - Alternative documentation
    """,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    default_response_class=ORJSONResponse,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Error handlers ====================


def error_response(status_code: int, message: str) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"message": message}},
    )


@app.exception_handler(ForumError)
async def forum_error_handler(request: Request, exc: ForumError) -> ORJSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return error_response(400, message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/", tags=["System"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "api": settings.api_v1_prefix,
    }
