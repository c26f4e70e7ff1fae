"""BotBox persistence repository implementations."""

from __future__ import annotations

from threading import Lock

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session, sessionmaker

from resources.substrates.sql import transactional_session
from services.lifecycle.jobs import JobSnapshot
from services.state.botbox.data.schema import archived_jobs, botboxes
from services.state.botbox.domain import BotBoxRecord


class InMemoryBotBoxRepository:
    """Thread-safe in-memory BotBox repository."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._records: dict[str, BotBoxRecord] = {}

    def save(self, record: BotBoxRecord) -> None:
        with self._lock:
            self._records[record.id] = record

    def load(self, botbox_id: str) -> BotBoxRecord | None:
        with self._lock:
            return self._records.get(botbox_id)

    def list_ids(self) -> list[str]:
        with self._lock:
            return list(self._records)


class SqlBotBoxRepository:
    """SQL repository storing each BotBox as one JSON document row."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def save(self, record: BotBoxRecord) -> None:
        with transactional_session(self._session_factory) as session:
            session.execute(delete(botboxes).where(botboxes.c.id == record.id))
            session.execute(
                insert(botboxes).values(
                    id=record.id,
                    name=record.name,
                    payload_json=record.model_dump_json(),
                    updated_at=record.updated_at,
                )
            )

    def load(self, botbox_id: str) -> BotBoxRecord | None:
        with transactional_session(self._session_factory) as session:
            payload = session.execute(
                select(botboxes.c.payload_json).where(botboxes.c.id == botbox_id)
            ).scalar_one_or_none()
        if payload is None:
            return None
        return BotBoxRecord.model_validate_json(payload)

    def list_ids(self) -> list[str]:
        with transactional_session(self._session_factory) as session:
            return list(
                session.execute(select(botboxes.c.id).order_by(botboxes.c.id)).scalars()
            )


class SqlJobArchive:
    """SQL job archive; re-recording a job replaces its row."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def record(self, snapshot: JobSnapshot) -> None:
        with transactional_session(self._session_factory) as session:
            session.execute(
                delete(archived_jobs).where(archived_jobs.c.job_id == snapshot.job_id)
            )
            session.execute(
                insert(archived_jobs).values(
                    job_id=snapshot.job_id,
                    deployment_id=snapshot.deployment_id,
                    status=str(snapshot.status),
                    retry_count=snapshot.retry_count,
                    payload_json=snapshot.model_dump_json(),
                    archived_at=snapshot.updated_at,
                )
            )

    def get(self, job_id: str) -> JobSnapshot | None:
        with transactional_session(self._session_factory) as session:
            payload = session.execute(
                select(archived_jobs.c.payload_json).where(
                    archived_jobs.c.job_id == job_id
                )
            ).scalar_one_or_none()
        return None if payload is None else JobSnapshot.model_validate_json(payload)

    def list(self, *, deployment_id: str | None = None) -> list[JobSnapshot]:
        statement = select(archived_jobs.c.payload_json).order_by(
            archived_jobs.c.job_id
        )
        if deployment_id is not None:
            statement = statement.where(archived_jobs.c.deployment_id == deployment_id)
        with transactional_session(self._session_factory) as session:
            payloads = list(session.execute(statement).scalars())
        return [JobSnapshot.model_validate_json(payload) for payload in payloads]
