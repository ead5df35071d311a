"""Services: worker pools, scheduler, stats and the engine facade."""

from jobengine.services.queue_manager import QueueManager, generate_job_id
from jobengine.services.scheduler import MaintenanceScheduler
from jobengine.services.stats import StatsReporter
from jobengine.services.worker_pool import WorkerPool

__all__ = [
    "MaintenanceScheduler",
    "QueueManager",
    "StatsReporter",
    "WorkerPool",
    "generate_job_id",
]
