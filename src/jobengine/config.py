"""Configuration for the job engine."""

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root: src/jobengine/config.py -> root
_PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load .env file into os.environ
load_dotenv(_PROJECT_ROOT / ".env")


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        env_prefix="JOBENGINE_",
        extra="ignore",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Durable job store
    store_url: str = Field(
        default="memory://",
        description="Job store URL. 'memory://' for a single-process store, "
        "'redis://host:port/db' for the durable Redis store",
    )
    key_prefix: str = Field(default="jobengine", description="Redis key namespace")

    # Worker Configuration
    worker_enabled: bool = Field(
        default=True,
        description="Start worker pools inside the API process. Set to false for "
        "API-only mode (workers run as separate processes)",
    )
    worker_id_prefix: str = Field(
        default="worker", description="Prefix for auto-generated worker IDs"
    )
    claim_timeout_seconds: float = Field(
        default=1.0, description="How long an idle executor blocks waiting for a job"
    )
    heartbeat_interval_seconds: float = Field(
        default=5.0, description="Interval between heartbeats of a running job"
    )
    stall_threshold_seconds: float = Field(
        default=30.0,
        description="An active job without a heartbeat for this long is considered stalled",
    )
    scheduler_interval_seconds: float = Field(
        default=1.0, description="Interval of the delayed-job promoter and stall sweep"
    )

    # Per-queue concurrency
    email_concurrency: int = Field(default=5, ge=1)
    webhook_concurrency: int = Field(default=10, ge=1)
    analytics_concurrency: int = Field(default=3, ge=1)
    broadcast_concurrency: int = Field(default=1, ge=1)
    ai_concurrency: int = Field(default=2, ge=1)
    cleanup_concurrency: int = Field(default=1, ge=1)

    # Retry defaults
    default_max_attempts: int = Field(default=3, ge=1)
    default_backoff_ms: int = Field(default=2000, ge=0)
    backoff_jitter: float = Field(
        default=0.0,
        ge=0.0,
        lt=1.0,
        description="Jitter fraction applied to built-in queue backoff (0.2 = +/-20%)",
    )

    # Retention
    keep_completed: int = Field(default=100, ge=0)
    keep_failed: int = Field(default=50, ge=0)
    dead_letter_max: int = Field(
        default=1000, ge=0, description="Maximum dead-letter entries kept per queue"
    )
    clean_interval_seconds: float = Field(
        default=3600.0, ge=0, description="Interval of the age-based cleanup (0 disables it)"
    )
    completed_max_age_seconds: float = Field(
        default=24 * 3600.0, ge=0, description="Completed jobs older than this are removed"
    )
    failed_max_age_seconds: float = Field(
        default=7 * 24 * 3600.0, ge=0, description="Failed jobs older than this are removed"
    )

    # Webhook dispatcher
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    webhook_user_agent: str = Field(default="jobengine-webhooks/0.1")
    webhook_sign_payloads: bool = Field(
        default=False, description="Add an HMAC-SHA256 X-Webhook-Signature header"
    )
    webhook_signing_secret: str = Field(default="", description="HMAC key for signatures")

    def concurrency_for(self, queue_name: str) -> int:
        """Return the configured concurrency for a built-in queue."""
        return int(getattr(self, f"{queue_name}_concurrency", 1))


settings = Settings()
