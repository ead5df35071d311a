"""Prometheus metrics definitions for the job engine.

Metrics follow the naming convention: jobengine_<subsystem>_<name>_<unit>

Categories:
- Queue metrics: jobs per queue and status, queue latency
- Job metrics: duration, total count by outcome, stalled jobs
- Webhook metrics: deliveries by outcome
- HTTP metrics: request duration, total count
"""

from prometheus_client import Counter, Gauge, Histogram

# -----------------------------------------------------------------------------
# Queue metrics
# -----------------------------------------------------------------------------

QUEUE_SIZE = Gauge(
    "jobengine_queue_jobs",
    "Current number of jobs per queue and status",
    ["queue", "status"],
)

QUEUE_LATENCY = Histogram(
    "jobengine_queue_latency_seconds",
    "Time jobs spend between enqueue and their first claim",
    ["queue"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
)

# -----------------------------------------------------------------------------
# Job metrics
# -----------------------------------------------------------------------------

JOB_DURATION = Histogram(
    "jobengine_job_duration_seconds",
    "Processor execution duration",
    ["queue", "outcome"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0),
)

JOB_TOTAL = Counter(
    "jobengine_jobs_total",
    "Total number of job attempts by outcome (completed, retried, failed, lock_lost)",
    ["queue", "outcome"],
)

JOB_STALLED = Counter(
    "jobengine_jobs_stalled_total",
    "Active jobs recovered after their executor stopped sending heartbeats",
    ["queue"],
)

# -----------------------------------------------------------------------------
# Webhook metrics
# -----------------------------------------------------------------------------

WEBHOOK_DELIVERIES = Counter(
    "jobengine_webhook_deliveries_total",
    "Webhook delivery attempts by outcome",
    ["outcome"],
)

# -----------------------------------------------------------------------------
# HTTP request metrics
# -----------------------------------------------------------------------------

HTTP_REQUEST_DURATION = Histogram(
    "jobengine_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint", "status_code"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

HTTP_REQUESTS_TOTAL = Counter(
    "jobengine_http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"],
)
