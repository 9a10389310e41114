"""
FastAPI application with assembled routers.

Initializes FastAPI app with all API routers and configures uvicorn server.

Dependencies: fastapi, backup_pipeline.api.routers, uvicorn
System role: API entry point with router assembly and server launch
"""

from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import logging
from backup_pipeline.api.deps.dependencies import get_service_cache
from backup_pipeline.boundary.db import create_tables
from backup_pipeline.configs import get_settings
from backup_pipeline.observability import configure_logging
from backup_pipeline.observability.middleware import (
    CorrelationMiddleware,
    RequestLoggingMiddleware,
)
from .routers import backups_router, health_router, schedules_router

INTERRUPTED_REASON = "Backup interrupted by a service restart"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = logging.getLogger("uvicorn")

    # Startup
    Path(settings.dump_tools.work_dir).mkdir(parents=True, exist_ok=True)
    cache = get_service_cache()
    await create_tables(cache.engine)
    service = cache.backup_service
    interrupted = await service.store.fail_interrupted(INTERRUPTED_REASON)
    if interrupted:
        logger.warning(f"Marked {interrupted} interrupted backup(s) as failed")
    service.scheduler.start()
    logger.info("Backup service ready")

    yield

    # Shutdown
    await service.shutdown()
    await cache.engine.dispose()
    cache.clear()
    logger.info("Service cache cleared")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application with routers.

    Returns:
        FastAPI: Configured application instance with all routers registered
    """
    app = FastAPI(
        title="Backup Pipeline API",
        description="Streams database dumps to S3-compatible storage with live progress",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add observability middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationMiddleware)

    # Register all routers with /api/v1 prefix for versioning
    app.include_router(health_router, prefix="/api/v1")
    app.include_router(backups_router, prefix="/api/v1")
    app.include_router(schedules_router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "backup_pipeline.api.main:app",
        host="0.0.0.0",
        port=8000,
    )
