"""Traffic Investigation Service - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import health_router, investigation_router
from app.api.routes import set_orchestrator
from investigation.cache import CacheStore, FileKeyValueStore, MemoryKeyValueStore
from investigation.config import get_settings
from investigation.executor import ClickHouseExecutor
from investigation.orchestrator import InvestigationOrchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Builds the cache, executor and orchestrator on startup.
    """
    settings = get_settings()

    # Durable cache tier
    if settings.enable_file_storage:
        store = FileKeyValueStore(settings.storage_path)
    else:
        store = MemoryKeyValueStore()

    cache = CacheStore(store, settings)
    removed = cache.cleanup()
    if removed:
        logger.info("Removed stale cache entries on startup", extra={"count": removed})

    set_orchestrator(
        InvestigationOrchestrator(
            cache=cache,
            executor=ClickHouseExecutor(settings.executor),
            settings=settings,
        )
    )

    yield

    set_orchestrator(None)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Traffic Investigation Service",
        description=(
            "Investigates detected traffic anomalies by finding the dimension values "
            "(hosts, paths, user agents, ASNs and more) that disproportionately "
            "contributed to them, and caches results for repeated navigation."
        ),
        version=settings.service_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(investigation_router, prefix=settings.api_prefix)

    return app


# Application instance
app = create_app()


@app.get("/")
async def root() -> dict:
    """Root endpoint with service information."""
    settings = get_settings()
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "description": "Traffic anomaly investigation",
        "status": "operational",
        "cache_version": settings.cache_version,
    }
