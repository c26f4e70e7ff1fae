"""Protocols consumed by the Job State Machine."""

from __future__ import annotations

from typing import Protocol

from services.lifecycle.jobs.domain import JobSnapshot


class JobArchive(Protocol):
    """Store of final job snapshots; archived jobs are never deleted."""

    def record(self, snapshot: JobSnapshot) -> None:
        """Store or replace the final snapshot of one job."""

    def get(self, job_id: str) -> JobSnapshot | None:
        """Return one archived job, if present."""

    def list(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        """Return archived jobs, optionally for one deployment."""
