"""SQL runtime wiring for BotBox persistence."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.botbox_shared.config import BotBoxSettings
from resources.substrates.sql import create_session_factory, create_sql_engine, ping
from services.state.botbox.config import resolve_botbox_settings
from services.state.botbox.data.repository import SqlBotBoxRepository, SqlJobArchive
from services.state.botbox.data.schema import metadata


@dataclass(frozen=True)
class BotBoxSqlRuntime:
    """Engine, sessions and repositories sharing one database."""

    engine: Engine
    session_factory: sessionmaker[Session]
    repository: SqlBotBoxRepository
    job_archive: SqlJobArchive

    @classmethod
    def from_url(cls, database_url: str) -> BotBoxSqlRuntime:
        """Connect to ``database_url`` and create missing tables."""
        engine = create_sql_engine(database_url)
        metadata.create_all(engine)
        session_factory = create_session_factory(engine)
        return cls(
            engine=engine,
            session_factory=session_factory,
            repository=SqlBotBoxRepository(session_factory),
            job_archive=SqlJobArchive(session_factory),
        )

    @classmethod
    def from_settings(cls, settings: BotBoxSettings) -> BotBoxSqlRuntime:
        """Build the runtime from ``components.service.botbox.database_url``."""
        return cls.from_url(resolve_botbox_settings(settings).database_url)

    def is_healthy(self) -> bool:
        return ping(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
