from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from revisit_api.core.settings import settings
from revisit_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "REVISIT API starting",
        environment=settings.environment,
        point_expiration_enabled=settings.point_expiration_enabled,
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("REVISIT API stopped")


def create_app() -> FastAPI:
    """Application factory for the REVISIT loyalty API."""
    configure_logging(
        service_name="revisit-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="REVISIT Loyalty API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="revisit-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
