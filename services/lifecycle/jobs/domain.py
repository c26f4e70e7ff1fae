"""Job status, result, and snapshot contracts."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from packages.botbox_shared.concurrency import CancellationToken
from services.lifecycle.jobs.retry_policy import should_retry

WorkExecutor = Callable[[CancellationToken], None]
"""Performs a job's work; raises (ideally ``WorkFailure``) to report failure."""


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED}
)


class JobOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class JobResult(BaseModel):
    """Outcome reported by ``execute``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    outcome: JobOutcome
    reason: str = ""

    @classmethod
    def success(cls) -> JobResult:
        return cls(outcome=JobOutcome.SUCCESS)

    @classmethod
    def failure(cls, reason: str) -> JobResult:
        return cls(outcome=JobOutcome.FAILURE, reason=reason)

    @classmethod
    def skipped(cls, reason: str) -> JobResult:
        return cls(outcome=JobOutcome.SKIPPED, reason=reason)


class JobSnapshot(BaseModel):
    """Consistent view of one job's multi-field state."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_id: str
    deployment_id: str
    status: JobStatus
    failure_reason: str = ""
    retry_count: int = Field(default=0, ge=0)
    max_attempts: int = Field(ge=1)
    result: JobResult | None = None
    retry_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    sequence: int = Field(default=0, ge=0)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def exhausted(self) -> bool:
        """Return whether a failed job has no attempts left."""
        return self.status == JobStatus.FAILED and not should_retry(
            self.retry_count + 1, self.max_attempts
        )

    @property
    def archivable(self) -> bool:
        """Completed, cancelled, and retry-exhausted jobs are final."""
        if self.status == JobStatus.FAILED:
            return self.exhausted
        return self.terminal
