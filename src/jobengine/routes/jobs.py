"""Job submission, inspection, cleanup and dead-letter routes."""

from datetime import timedelta

from fastapi import APIRouter, Depends, Query

from jobengine.dependencies import get_queue_manager
from jobengine.domain.enums import JobStatus
from jobengine.domain.models import DeadLetterEntry, EnqueueRequest, EnqueueResponse, Job
from jobengine.errors import JobNotFoundError
from jobengine.queue.registry import coerce_queue_name
from jobengine.services.queue_manager import QueueManager

router = APIRouter(tags=["jobs"])


@router.post("/queues/{name}/jobs", response_model=EnqueueResponse, status_code=201)
async def enqueue_job(
    name: str,
    data: EnqueueRequest,
    manager: QueueManager = Depends(get_queue_manager),
) -> EnqueueResponse:
    """Enqueue a job.

    The payload is validated against the queue's payload model; a mismatch
    returns 400 with the field errors.
    """
    job_id = await manager.enqueue(name, data.job_type, data.payload, data.options)
    delayed = data.options is not None and data.options.delay_ms > 0
    return EnqueueResponse(
        job_id=job_id,
        queue_name=coerce_queue_name(name),
        status=JobStatus.DELAYED if delayed else JobStatus.WAITING,
    )


@router.get("/jobs/{job_id}", response_model=Job)
async def get_job(
    job_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> Job:
    job = await manager.get_job(job_id)
    if job is None:
        raise JobNotFoundError(f"Job not found: {job_id}")
    return job


@router.get("/queues/{name}/dead-letters", response_model=list[DeadLetterEntry])
async def list_dead_letters(
    name: str,
    limit: int = Query(100, ge=1, le=1000),
    manager: QueueManager = Depends(get_queue_manager),
) -> list[DeadLetterEntry]:
    """List dead-lettered jobs of a queue, newest first."""
    return await manager.list_dead_letters(name, limit=limit)


@router.post(
    "/queues/{name}/dead-letters/{job_id}/replay",
    response_model=EnqueueResponse,
    status_code=201,
)
async def replay_dead_letter(
    name: str,
    job_id: str,
    manager: QueueManager = Depends(get_queue_manager),
) -> EnqueueResponse:
    """Enqueue a dead-lettered job again as a new job."""
    new_id = await manager.replay_dead_letter(name, job_id)
    return EnqueueResponse(
        job_id=new_id,
        queue_name=coerce_queue_name(name),
        status=JobStatus.WAITING,
    )


@router.get("/queues/{name}/jobs", response_model=list[Job])
async def list_jobs(
    name: str,
    status: JobStatus = Query(JobStatus.WAITING),
    limit: int = Query(100, ge=1, le=1000),
    manager: QueueManager = Depends(get_queue_manager),
) -> list[Job]:
    """List jobs of a queue in one status, oldest first."""
    return await manager.list_jobs(name, status, limit=limit)


@router.post("/queues/clean", response_model=dict[str, dict[str, int]])
async def clean_old_jobs(
    completed_max_age_seconds: float | None = Query(None, ge=0),
    failed_max_age_seconds: float | None = Query(None, ge=0),
    manager: QueueManager = Depends(get_queue_manager),
) -> dict[str, dict[str, int]]:
    """Remove old completed and failed jobs from every queue.

    Without parameters the configured maximum ages apply (24h completed,
    7 days failed).
    """
    return await manager.clean_old_jobs(
        completed_max_age=_seconds(completed_max_age_seconds),
        failed_max_age=_seconds(failed_max_age_seconds),
    )


def _seconds(value: float | None) -> timedelta | None:
    return timedelta(seconds=value) if value is not None else None
