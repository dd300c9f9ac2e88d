"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy import text

from mohallahub.auth.router import router as auth_router
from mohallahub.config import get_settings
from mohallahub.database import close_db, get_engine, init_db
from mohallahub.health.router import router as health_router
from mohallahub.middleware import setup_middleware
from mohallahub.neighborhoods.router import router as neighborhoods_router
from mohallahub.redis_client import close_redis, init_redis
from mohallahub.users.router import router as users_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle. An unreachable database aborts startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.critical("database_unreachable", exc_info=True)
        await close_db()
        raise
    logger.info("database_connected")

    await init_redis(settings.redis_url)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MohallaHub API",
        description="Backend API for MohallaHub, a hyperlocal neighborhood community platform",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(neighborhoods_router)

    return app


app = create_app()
