"""jobengine API - FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from jobengine import __version__
from jobengine.config import settings
from jobengine.dependencies import get_queue_manager
from jobengine.error_handling import install_error_handling
from jobengine.observability import configure_logging
from jobengine.observability.middleware import MetricsMiddleware
from jobengine.routes import health_router, jobs_router, metrics_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan manager."""
    configure_logging(settings)

    # Set JOBENGINE_WORKER_ENABLED=false to run API-only mode (workers run separately)
    manager = get_queue_manager()
    await manager.start(workers=settings.worker_enabled)

    yield

    await manager.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="jobengine API",
        description="Asynchronous job processing engine",
        version=__version__,
        lifespan=lifespan,
    )

    install_error_handling(app)
    app.add_middleware(MetricsMiddleware)

    app.include_router(jobs_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "jobengine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
