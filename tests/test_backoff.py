"""Tests for retry delay computation and retry decisions."""

from __future__ import annotations

import random
from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_job

from jobengine.domain.enums import BackoffKind
from jobengine.domain.models import BackoffPolicy
from jobengine.errors import PermanentJobError, RetryableJobError, WebhookDeliveryError
from jobengine.queue.backoff import RetryDecision, RetryScheduler, compute_delay


class TestComputeDelay:
    def test_exponential_doubles_per_attempt(self) -> None:
        policy = BackoffPolicy(kind=BackoffKind.EXPONENTIAL, base_delay_ms=1000)
        assert [compute_delay(n, policy) for n in (1, 2, 3)] == [1000, 2000, 4000]

    def test_default_policy_starts_at_two_seconds(self) -> None:
        assert compute_delay(1, BackoffPolicy()) == 2000
        assert compute_delay(2, BackoffPolicy()) == 4000

    def test_fixed_delay_is_constant(self) -> None:
        policy = BackoffPolicy(kind=BackoffKind.FIXED, base_delay_ms=750)
        assert [compute_delay(n, policy) for n in (1, 2, 5)] == [750, 750, 750]

    def test_jitter_stays_within_spread(self) -> None:
        policy = BackoffPolicy(base_delay_ms=1000, jitter=0.2)
        rng = random.Random(42)
        delays = [compute_delay(1, policy, rng=rng) for _ in range(200)]
        assert all(800 <= d <= 1200 for d in delays)
        assert len(set(delays)) > 1

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            compute_delay(0, BackoffPolicy())


class TestRetryScheduler:
    def test_first_failure_is_retried_after_base_delay(self) -> None:
        job = make_job(max_attempts=3, backoff=BackoffPolicy(base_delay_ms=1000))
        decision = RetryScheduler().decide(job, RuntimeError("boom"))
        assert decision.retry is True
        assert decision.delay_ms == 1000

    def test_four_attempts_wait_1000_2000_4000(self) -> None:
        scheduler = RetryScheduler()
        delays = []
        for attempts_made in range(3):
            job = make_job(
                max_attempts=4,
                attempts_made=attempts_made,
                backoff=BackoffPolicy(base_delay_ms=1000),
            )
            decision = scheduler.decide(job, RetryableJobError("try again"))
            assert decision.retry is True
            delays.append(decision.delay_ms)
        assert delays == [1000, 2000, 4000]

    def test_last_attempt_is_not_retried(self) -> None:
        job = make_job(max_attempts=3, attempts_made=2)
        decision = RetryScheduler().decide(job, WebhookDeliveryError("HTTP 500", status_code=500))
        assert decision.retry is False
        assert decision.reason == "attempts exhausted"

    def test_permanent_error_fails_on_first_attempt(self) -> None:
        job = make_job(max_attempts=5)
        decision = RetryScheduler().decide(job, PermanentJobError("bad input"))
        assert decision.retry is False
        assert decision.reason == "permanent error"

    def test_single_attempt_job_never_retries(self) -> None:
        job = make_job(max_attempts=1)
        assert RetryScheduler().decide(job, RuntimeError("boom")).retry is False

    def test_next_attempt_at_adds_delay(self) -> None:
        now = datetime(2024, 1, 1, tzinfo=UTC)
        decision = RetryDecision(retry=True, delay_ms=1500)
        assert decision.next_attempt_at(now) == now + timedelta(milliseconds=1500)
