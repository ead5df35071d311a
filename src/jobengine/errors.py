"""Engine error types.

This module defines a small exception hierarchy for engine and processor
errors. Engine errors carry an HTTP status so the API layer in
`jobengine.error_handling` can render them consistently; processor errors
tell the worker pool whether a failed attempt may be retried.
"""

from __future__ import annotations

from typing import Any


class JobEngineError(Exception):
    """Base exception for predictable engine errors.

    Note: Avoid frozen dataclasses for exceptions; some frameworks attempt to
    mutate ``__traceback__`` and other attributes during handling, which breaks
    with frozen/slots dataclass exceptions.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "UNKNOWN",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


class StoreUnavailableError(JobEngineError):
    """The durable job store cannot be reached (503)."""

    def __init__(
        self,
        message: str = "Job store unavailable",
        *,
        code: str = "STORE_UNAVAILABLE",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, code=code, status_code=503, details=details)


class QueueNotFoundError(JobEngineError):
    """Queue is not registered (404)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "QUEUE_NOT_FOUND",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, code=code, status_code=404, details=details)


class JobNotFoundError(JobEngineError):
    """Job or dead-letter entry not found (404)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "JOB_NOT_FOUND",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, code=code, status_code=404, details=details)


class ValidationError(JobEngineError):
    """Invalid producer input (400)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int = 400,
    ):
        super().__init__(message=message, code=code, status_code=status_code, details=details)


class LockLostError(JobEngineError):
    """The executor no longer owns the job it tried to transition (409)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "LOCK_LOST",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, code=code, status_code=409, details=details)


class JobProcessingError(Exception):
    """Base class for errors raised by processors."""

    retryable = True


class RetryableJobError(JobProcessingError):
    """A transient failure; the job is retried while attempts remain."""


class PermanentJobError(JobProcessingError):
    """A failure that will not go away on retry; the job fails immediately."""

    retryable = False


class WebhookDeliveryError(RetryableJobError):
    """Webhook endpoint returned non-2xx or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
