"""FastAPI application entry point."""

import asyncio as _asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.api import chat_router, health_router
from chatrelay.core.config import get_settings
from chatrelay.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from chatrelay.core.logging import get_logger, setup_logging
from chatrelay.db.session import close_db, init_db
from chatrelay.services.chat import get_chat_orchestrator, shutdown_chat_orchestrator

# Initialize logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Startup:
    - Create the conversation table when memory lives in the database
    - Build the orchestrator so the first request skips backend setup

    Shutdown:
    - Close backend, throttle and cache HTTP clients
    - Close database connections
    """
    settings = get_settings()

    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    if settings.memory_enabled and settings.memory_storage == "database":
        # Retry for transient connection failures
        for _attempt in range(3):
            try:
                await init_db()
                break
            except Exception as exc:
                if _attempt == 2:
                    logger.error("Failed to initialize database after 3 attempts", error=str(exc))
                    raise
                logger.warning(
                    "Database init failed, retrying...",
                    attempt=_attempt + 1,
                    error=str(exc),
                )
                await _asyncio.sleep(2 ** _attempt)
        logger.info("Database initialized")

    get_chat_orchestrator()

    yield

    # Cleanup
    logger.info("Shutting down application")

    await shutdown_chat_orchestrator()
    logger.info("Orchestrator connections closed")

    await close_db()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Chat relay API with multi-provider LLM backends, caching and conversation memory",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
        expose_headers=["Retry-After"],
    )

    # Security headers middleware
    from starlette.middleware.base import BaseHTTPMiddleware

    class SecurityHeadersMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Any, call_next: Any) -> Any:
            response = await call_next(request)
            response.headers["X-Content-Type-Options"] = "nosniff"
            response.headers["X-Frame-Options"] = "DENY"
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
            if not settings.debug:
                response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
            return response

    app.add_middleware(SecurityHeadersMiddleware)

    # Register exception handlers
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(chat_router, prefix="/api/v1")

    return app


# Create application instance
app = create_app()
