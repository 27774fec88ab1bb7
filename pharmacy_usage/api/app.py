"""FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pharmacy_usage import __version__
from pharmacy_usage.utils.env_utils import parse_bool_env, parse_csv_env

from .middleware import add_middleware, register_exception_handlers
from .routers import admin_router, health_router, usage_router

logger = logging.getLogger(__name__)

# =============================================================================
# OpenAPI Configuration
# =============================================================================

OPENAPI_TAGS = [
    {
        "name": "Health",
        "description": "Service health checks",
    },
    {
        "name": "Usage",
        "description": "Reserve, complete and release metered AI messages; usage and billing status",
    },
    {
        "name": "Admin",
        "description": "System-wide user count aggregate (requires X-Admin-Key when ADMIN_API_KEY is set)",
    },
]

API_DESCRIPTION = """
Usage accounting and quota enforcement for the pharmacy assistant.

## Flow
1. `POST /usage/reserve` before calling the model (HTTP 402 when the quota is exhausted)
2. `POST /usage/complete` with the returned `mode` after a reply, or
   `POST /usage/release` if the AI call failed

## Headers
- `X-User-ID`: authenticated user id (required for usage endpoints)
- `X-Admin-Key`: admin key (admin endpoints)
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    from pharmacy_usage.core.usage.config import get_usage_config

    logger.info("Starting pharmacy usage API...")

    config = get_usage_config()
    if config.store_backend == "postgres":
        try:
            from pharmacy_usage.db.connection import db
            await db.get_engine_async()
            logger.info("Database connection pool initialized")
        except Exception as e:
            logger.warning(f"Database initialization skipped: {e}")

    if not config.billing_configured:
        logger.warning("AUTUMN_SECRET_KEY not set - paid AI usage is disabled")

    yield

    logger.info("Shutting down pharmacy usage API...")

    try:
        from pharmacy_usage.core.usage.service import get_usage_service
        await get_usage_service().close()
    except Exception as e:
        logger.warning(f"Usage service shutdown error: {e}")

    if config.store_backend == "postgres":
        try:
            from pharmacy_usage.db.connection import db
            await db.close_all()
        except Exception as e:
            logger.warning(f"Database cleanup error: {e}")

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    api_prefix = os.getenv("API_PREFIX", "/api/v1")
    debug = parse_bool_env("DEBUG", False)

    app = FastAPI(
        title="Pharmacy Usage API",
        description=API_DESCRIPTION,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        debug=debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_csv_env("CORS_ORIGINS", ["*"]),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_middleware(app)
    register_exception_handlers(app)

    app.include_router(
        health_router,
        tags=["Health"],
    )

    app.include_router(
        usage_router,
        prefix=f"{api_prefix}/usage",
        tags=["Usage"],
    )

    app.include_router(
        admin_router,
        prefix=f"{api_prefix}/admin",
        tags=["Admin"],
    )

    return app
