"""
FastAPI application entry point.

Sets up the application with:
- Lifespan management (storage startup/shutdown, auto-seed)
- Route registration
- Error handling
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.dependencies import set_data_access
from api.routes import health_router
from core.config import settings
from core.logging import configure_logging, get_logger
from core.seed import SeedEngine
from core.storage import DataAccess, StorageError


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Startup: bind storage (configuration and mandatory-remote connection
    errors propagate and stop the process), then auto-seed.
    Shutdown: close the MongoDB client.
    """
    configure_logging()

    logger.info(
        "Starting directory service...",
        storage_mode=settings.storage_mode,
    )

    data_access = DataAccess(settings)
    await data_access.initialize()
    set_data_access(data_access)

    seed_status = "disabled"
    if settings.seed_on_startup:
        try:
            report = await SeedEngine(data_access, settings).run()
            seed_status = "skipped" if report.skipped else "seeded"
        except StorageError as e:
            # Serve without seed data rather than refuse to start
            logger.error("Auto-seed failed", error=str(e))
            seed_status = "failed"

    logger.info(
        "Directory service started",
        host=settings.server_host,
        port=settings.server_port,
        storage=data_access.mode.value,
        connected=data_access.connected,
        seed=seed_status,
    )

    yield

    logger.info("Shutting down directory service...")
    await data_access.close()
    set_data_access(None)
    logger.info("Directory service stopped")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title="Directory Backend",
        description="Influencer directory and marketplace API.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.include_router(health_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.server:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
    )
