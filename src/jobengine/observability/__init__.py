"""Observability module for the job engine.

This module provides Prometheus metrics and structured logging.
"""

from jobengine.observability.logging import configure_logging, get_logger
from jobengine.observability.metrics import (
    HTTP_REQUEST_DURATION,
    HTTP_REQUESTS_TOTAL,
    JOB_DURATION,
    JOB_STALLED,
    JOB_TOTAL,
    QUEUE_LATENCY,
    QUEUE_SIZE,
    WEBHOOK_DELIVERIES,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "HTTP_REQUEST_DURATION",
    "HTTP_REQUESTS_TOTAL",
    "JOB_DURATION",
    "JOB_STALLED",
    "JOB_TOTAL",
    "QUEUE_LATENCY",
    "QUEUE_SIZE",
    "WEBHOOK_DELIVERIES",
]
