"""Job State Machine package exports."""

from services.lifecycle.jobs.archive import InMemoryJobArchive
from services.lifecycle.jobs.component import SERVICE_COMPONENT_ID
from services.lifecycle.jobs.config import JobSettings, resolve_job_settings
from services.lifecycle.jobs.domain import (
    TERMINAL_STATUSES,
    JobOutcome,
    JobResult,
    JobSnapshot,
    JobStatus,
    WorkExecutor,
)
from services.lifecycle.jobs.interfaces import JobArchive
from services.lifecycle.jobs.machine import Job
from services.lifecycle.jobs.retry_policy import (
    BackoffStrategy,
    RetryPolicy,
    compute_backoff_delay_seconds,
    compute_retry_at,
    resolve_retry_policy,
    should_retry,
)

__all__ = [
    "BackoffStrategy",
    "InMemoryJobArchive",
    "Job",
    "JobArchive",
    "JobOutcome",
    "JobResult",
    "JobSettings",
    "JobSnapshot",
    "JobStatus",
    "RetryPolicy",
    "SERVICE_COMPONENT_ID",
    "TERMINAL_STATUSES",
    "WorkExecutor",
    "compute_backoff_delay_seconds",
    "compute_retry_at",
    "resolve_job_settings",
    "resolve_retry_policy",
    "should_retry",
]
