"""FastAPI application factory and configuration."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from model_discovery import __version__
from model_discovery.api.v1.endpoints import health
from model_discovery.api.v1.router import router as v1_router
from model_discovery.config import get_settings
from model_discovery.core.logging import configure_logging, get_logger
from model_discovery.dependencies import get_discovery_service


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()
    configure_logging(log_format=settings.log_format, log_level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Hydrates the discovery cache from the store on startup and flushes it
    back on shutdown.
    """
    setup_logging()
    logger = get_logger(__name__)
    settings = get_settings()

    logger.info(
        "Starting model discovery service",
        catalog_url=settings.hf_api_url,
        store_path=str(settings.store_path),
    )
    service = get_discovery_service()
    service.hydrate()

    yield

    logger.info("Shutting down model discovery service")
    service.flush()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Model Discovery Service",
        description=(
            "Cached, paginated search over remote model catalogs with filtering "
            "and offline fallback."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(v1_router, prefix=settings.api_prefix)

    # Health endpoints also at root level for probes
    app.include_router(health.router)

    return app


app = create_app()
