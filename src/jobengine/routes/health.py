"""Health and queue statistics routes."""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from jobengine import __version__
from jobengine.dependencies import get_queue_manager
from jobengine.domain.models import QueueStats
from jobengine.services.queue_manager import QueueManager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(manager: QueueManager = Depends(get_queue_manager)) -> JSONResponse:
    """Report store reachability and worker pool state.

    Returns 503 when the store cannot be reached.
    """
    report: dict[str, Any] = await manager.health()
    report["version"] = __version__
    return JSONResponse(status_code=200 if report["store"] else 503, content=report)


@router.get("/queues/stats", response_model=dict[str, QueueStats])
async def get_all_stats(
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, QueueStats]:
    return await manager.get_all_stats()


@router.get("/queues/{name}/stats", response_model=QueueStats)
async def get_queue_stats(
    name: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> QueueStats:
    return await manager.get_queue_stats(name)
