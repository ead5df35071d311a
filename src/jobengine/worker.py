"""Standalone worker process.

Runs the worker pools and the maintenance scheduler for every built-in queue
without the HTTP API, so job processing can be scaled separately.

Usage:
    python -m jobengine.worker

Environment variables:
    JOBENGINE_STORE_URL: Job store (default: memory://, use redis://... to share jobs)
    JOBENGINE_<QUEUE>_CONCURRENCY: Executors per queue, e.g. JOBENGINE_WEBHOOK_CONCURRENCY=20
    JOBENGINE_STALL_THRESHOLD_SECONDS: Heartbeat age after which a job counts as stalled
"""

from __future__ import annotations

import asyncio
import signal
import sys

from jobengine.config import settings
from jobengine.dependencies import build_queue_manager
from jobengine.observability import configure_logging, get_logger

logger = get_logger(__name__)


async def run_worker() -> None:
    """Run the worker process until SIGINT or SIGTERM."""
    configure_logging(settings)
    logger.info(
        "Starting jobengine worker",
        store_url=settings.store_url.split("@")[-1],
        stall_threshold_seconds=settings.stall_threshold_seconds,
    )

    manager = build_queue_manager(settings)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def handle_signal(signum: signal.Signals) -> None:
        logger.info("Received signal, initiating shutdown", signal=signum.name)
        shutdown_event.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, handle_signal, signum)

    await manager.start(workers=True)
    for name, pool in manager.pools.items():
        logger.info(
            "Worker pool running",
            queue=name,
            worker_id=pool.worker_id,
            concurrency=pool.concurrency,
        )

    await shutdown_event.wait()

    logger.info("Shutting down worker")
    await manager.close()
    logger.info("Worker stopped")


def main() -> None:
    """Entry point for the worker process."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")
    sys.exit(0)


if __name__ == "__main__":
    main()
