"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from peer_chat.api.common.auth_router import router as auth_router
from peer_chat.api.v1.proposal_router import router as proposal_router
from peer_chat.api.v1.realtime_router import router as realtime_router
from peer_chat.api.v1.session_router import router as session_router
from peer_chat.api.v1.specialist_router import router as specialist_router
from peer_chat.core.config import settings
from peer_chat.core.database import Base, engine
from peer_chat.core.exceptions import (
    AppException,
    app_exception_handler,
    error_body,
    validation_exception_handler,
)
from peer_chat.core.middleware import AuthMiddleware
from peer_chat.core.redis import close_redis, init_redis, redis_is_healthy
from peer_chat.schemas.response_schema import ApiResponse, success_response
from peer_chat.services.scheduler import StatusScheduler

logger = structlog.get_logger()

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info(
        "Starting application",
        app_name=settings.app.name,
        environment=settings.app.env,
    )
    await init_redis()
    if settings.app.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    scheduler: StatusScheduler | None = None
    if settings.scheduler.enabled:
        scheduler = StatusScheduler()
        scheduler.start()
    yield
    if scheduler is not None:
        scheduler.shutdown()
    await close_redis()
    await engine.dispose()
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.app.name,
    description="Peer support chat: help-seekers queue, specialists claim, both talk live",
    version=VERSION,
    lifespan=lifespan,
    debug=settings.app.debug,
)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.server.default_rate_limit],
    enabled=settings.server.rate_limit_enabled,
)
app.state.limiter = limiter


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Custom handler for rate limit exceeded errors."""
    return JSONResponse(
        status_code=429,
        content=error_body(429, "Rate limit exceeded", "RATE_LIMIT_EXCEEDED"),
    )


# Exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]

# Middleware (registration order: inner→outer, execution order: outer→inner)
app.add_middleware(AuthMiddleware)
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins_list,
    allow_credentials=settings.server.cors_origins_list != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=ApiResponse[dict])
async def health_check() -> dict:
    """Health check endpoint."""
    redis_ok = await redis_is_healthy()
    return success_response(
        {
            "status": "healthy" if redis_ok else "degraded",
            "redis": "up" if redis_ok else "down",
        }
    )


@app.get("/", response_model=ApiResponse[dict])
async def root() -> dict:
    """Root endpoint."""
    return success_response(
        {
            "app": settings.app.name,
            "version": VERSION,
            "docs": "/docs",
        }
    )


# Register routers
app.include_router(auth_router)
app.include_router(session_router)
app.include_router(specialist_router)
app.include_router(proposal_router)
app.include_router(realtime_router)
