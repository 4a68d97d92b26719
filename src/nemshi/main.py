"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from nemshi.config import get_settings
from nemshi.container import close_container, create_container, set_container
from nemshi.health.router import router as health_router
from nemshi.middleware import setup_middleware
from nemshi.redis_client import close_redis, get_redis, init_redis
from nemshi.triggers.publisher import RedisChangePublisher
from nemshi.walks.router import router as walks_router


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    container = await create_container(settings)
    set_container(container)

    # Writes made through the API feed the trigger worker via the change stream
    publishing = settings.publish_changes and settings.store_backend == "sql"
    if publishing:
        await init_redis(settings.redis_url)
        container.store.add_listener(
            RedisChangePublisher(get_redis(), settings.change_stream, settings.change_stream_maxlen)
        )

    yield

    await close_container(container, settings)
    set_container(None)
    if publishing:
        await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Nemshi API",
        description="Backend API for the Nemshi social walking app",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(walks_router)

    return app


app = create_app()
