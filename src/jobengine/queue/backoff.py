"""Retry scheduling.

Decides, after a failed attempt, whether a job is retried and how long it
waits in the delayed state first.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime, timedelta

from jobengine.domain.enums import BackoffKind
from jobengine.domain.models import BackoffPolicy, Job
from jobengine.errors import JobProcessingError


def compute_delay(
    attempts_made: int,
    policy: BackoffPolicy,
    *,
    rng: random.Random | None = None,
) -> int:
    """Compute the delay before the next attempt, in milliseconds.

    Args:
        attempts_made: Attempts made so far, including the one that just failed.
        policy: Backoff policy of the job.
        rng: Random source for jitter (module-level random by default).

    Returns:
        Delay in milliseconds: ``base * 2^(attempts_made - 1)`` for exponential,
        ``base`` for fixed, spread by ``policy.jitter`` when set.
    """
    if attempts_made < 1:
        raise ValueError(f"attempts_made must be >= 1, got {attempts_made}")

    if policy.kind == BackoffKind.EXPONENTIAL:
        delay = float(policy.base_delay_ms * 2 ** (attempts_made - 1))
    else:
        delay = float(policy.base_delay_ms)

    if policy.jitter:
        spread = delay * policy.jitter
        delay += (rng or random).uniform(-spread, spread)

    return max(int(round(delay)), 0)


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of a failed attempt."""

    retry: bool
    delay_ms: int = 0
    reason: str = ""

    def next_attempt_at(self, now: datetime) -> datetime:
        return now + timedelta(milliseconds=self.delay_ms)


class RetryScheduler:
    """Applies the retry rules to a failed attempt."""

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._rng = rng

    def decide(self, job: Job, error: BaseException) -> RetryDecision:
        """Decide between DELAYED and FAILED for the attempt that just failed.

        ``job`` is the claimed (still active) job, so the failed attempt is not
        yet counted in ``job.attempts_made``.
        """
        attempts_made = job.attempts_made + 1

        if isinstance(error, JobProcessingError) and not error.retryable:
            return RetryDecision(retry=False, reason="permanent error")

        if attempts_made >= job.max_attempts:
            return RetryDecision(retry=False, reason="attempts exhausted")

        return RetryDecision(
            retry=True,
            delay_ms=compute_delay(attempts_made, job.backoff, rng=self._rng),
        )
