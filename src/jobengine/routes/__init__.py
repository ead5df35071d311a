"""API routes."""

from jobengine.routes.health import router as health_router
from jobengine.routes.jobs import router as jobs_router
from jobengine.routes.prometheus import router as metrics_router

__all__ = [
    "health_router",
    "jobs_router",
    "metrics_router",
]
