"""Retry and backoff policy helpers for jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from services.lifecycle.jobs.config import JobSettings


class BackoffStrategy(StrEnum):
    NONE = "none"
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry/backoff configuration supplied per job.

    ``max_attempts`` counts executions, so ``3`` allows one run and two
    retries.
    """

    max_attempts: int = 3
    backoff_strategy: str = BackoffStrategy.NONE
    backoff_base_seconds: float = 0.0

    @staticmethod
    def from_settings(settings: JobSettings) -> RetryPolicy:
        """Build a retry policy from job settings."""
        return RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff_strategy=settings.backoff_strategy,
            backoff_base_seconds=settings.backoff_base_seconds,
        )


def resolve_retry_policy(
    policy: RetryPolicy | None, *, settings: JobSettings
) -> RetryPolicy:
    """Return a validated retry policy, defaulting to settings when unset."""
    resolved = policy or RetryPolicy.from_settings(settings)
    _validate_policy(resolved)
    return resolved


def should_retry(attempt_count: int, max_attempts: int) -> bool:
    """Return whether another attempt is permitted after ``attempt_count``."""
    return int(attempt_count) < int(max_attempts)


def compute_retry_at(
    failed_at: datetime,
    retry_count: int,
    *,
    backoff_strategy: str,
    backoff_base_seconds: float,
) -> datetime:
    """Compute the earliest time the next attempt may run."""
    delay_seconds = compute_backoff_delay_seconds(
        backoff_strategy,
        retry_count,
        backoff_base_seconds,
    )
    return failed_at + timedelta(seconds=delay_seconds)


def compute_backoff_delay_seconds(
    backoff_strategy: str,
    retry_count: int,
    backoff_base_seconds: float,
) -> float:
    """Compute a retry delay in seconds for a given backoff strategy."""
    if retry_count <= 0:
        raise ValueError("retry_count must be >= 1.")
    if backoff_base_seconds < 0:
        raise ValueError("backoff_base_seconds must be >= 0.")
    if backoff_strategy == BackoffStrategy.NONE:
        return 0.0
    if backoff_strategy == BackoffStrategy.FIXED:
        return float(backoff_base_seconds)
    if backoff_strategy == BackoffStrategy.EXPONENTIAL:
        return float(backoff_base_seconds * (2 ** (retry_count - 1)))
    raise ValueError("Unsupported backoff_strategy.")


def _validate_policy(policy: RetryPolicy) -> None:
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1.")
    if policy.backoff_strategy not in set(BackoffStrategy):
        raise ValueError("backoff_strategy must be valid.")
    if policy.backoff_base_seconds < 0:
        raise ValueError("backoff_base_seconds must be >= 0.")
