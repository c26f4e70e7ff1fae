"""In-memory job archive."""

from __future__ import annotations

from threading import Lock

from services.lifecycle.jobs.domain import JobSnapshot


class InMemoryJobArchive:
    """Thread-safe job archive keyed by job id, in insertion order."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: dict[str, JobSnapshot] = {}

    def record(self, snapshot: JobSnapshot) -> None:
        with self._lock:
            self._jobs[snapshot.job_id] = snapshot

    def get(self, job_id: str) -> JobSnapshot | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        with self._lock:
            return [
                item
                for item in self._jobs.values()
                if deployment_id is None or item.deployment_id == deployment_id
            ]
